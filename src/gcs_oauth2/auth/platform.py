"""
Environment, filesystem and platform accessors used by credential discovery.

Resolution never reads os.environ or the filesystem directly; it goes
through a CredentialsEnvironment so tests can substitute every accessor.
"""

import os
import sys
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional

ADC_ENV_VAR = "GOOGLE_APPLICATION_CREDENTIALS"
ADC_PATH_OVERRIDE_ENV_VAR = "GOOGLE_GCLOUD_ADC_PATH_OVERRIDE"
ADC_FILE_SUFFIX = "gcloud/application_default_credentials.json"

DMI_PRODUCT_NAME_PATH = "/sys/class/dmi/id/product_name"
GCE_PRODUCT_NAME_PREFIX = "Google"


def running_on_compute_engine_vm(
    product_name_path: str = DMI_PRODUCT_NAME_PATH,
) -> bool:
    """
    Check whether this process runs on a Compute Engine VM.

    Reads the DMI product name, which Google sets on its VMs. Any failure
    to read it means "not on Compute Engine".
    """
    try:
        with open(product_name_path, "r", encoding="utf-8") as f:
            product_name = f.read().strip()
    except OSError:
        return False
    return product_name.startswith(GCE_PRODUCT_NAME_PREFIX)


def _read_bytes(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


@dataclass
class CredentialsEnvironment:
    """
    Accessors consulted while discovering credentials.

    Attributes:
        environ: Environment variables (default: os.environ)
        platform: sys.platform value deciding the well-known path layout
        path_exists: Returns True if a file exists at the path
        read_bytes: Returns the full contents of a file; raises OSError
        on_compute_engine: Platform check, called at most once per resolution
    """

    environ: Mapping[str, str] = field(default_factory=lambda: os.environ)
    platform: str = sys.platform
    path_exists: Callable[[str], bool] = os.path.exists
    read_bytes: Callable[[str], bytes] = _read_bytes
    on_compute_engine: Callable[[], bool] = running_on_compute_engine_vm

    def adc_file_path_from_env_var(self) -> Optional[str]:
        """Path named by GOOGLE_APPLICATION_CREDENTIALS, or None if unset/empty."""
        return self.environ.get(ADC_ENV_VAR) or None

    def adc_file_path_from_well_known_path(self) -> Optional[str]:
        """
        Path where ``gcloud auth application-default login`` writes credentials.

        Returns None when the home directory cannot be determined. The file
        may not exist.
        """
        override = self.environ.get(ADC_PATH_OVERRIDE_ENV_VAR)
        if override:
            return override

        if self.platform.startswith("win"):
            root = self.environ.get("APPDATA")
            if not root:
                return None
            return root.rstrip("\\") + "\\" + ADC_FILE_SUFFIX.replace("/", "\\")

        home = self.environ.get("HOME")
        if not home:
            return None
        return f"{home.rstrip('/')}/.config/{ADC_FILE_SUFFIX}"
