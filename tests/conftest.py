"""
pytest configuration for gcs_oauth2 tests.

Adds src directory to Python path for imports and sets up test environment.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))


@pytest.fixture(autouse=True)
def isolated_config():
    """
    Pin configuration to defaults with auditing disabled.

    Keeps tests independent of any config.yaml or GCS_OAUTH2_* variables
    on the machine running them.
    """
    from gcs_oauth2.config import AuthConfig, reset_config, set_config
    from gcs_oauth2.logging.audit import reset_audit_logger

    set_config(AuthConfig(audit_logging_enabled=False))
    reset_audit_logger()
    yield
    reset_audit_logger()
    reset_config()
