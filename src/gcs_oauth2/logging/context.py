"""Context variables injected into every log record."""

from contextvars import ContextVar
from typing import Dict, Optional

_component: ContextVar[Optional[str]] = ContextVar("component", default=None)
_credential_type: ContextVar[Optional[str]] = ContextVar(
    "credential_type", default=None
)
_principal: ContextVar[Optional[str]] = ContextVar("principal", default=None)


def set_log_context(
    component: Optional[str] = None,
    credential_type: Optional[str] = None,
    principal: Optional[str] = None,
) -> None:
    """Set logging context variables. Only non-None values are updated."""
    if component is not None:
        _component.set(component)
    if credential_type is not None:
        _credential_type.set(credential_type)
    if principal is not None:
        _principal.set(principal)


def get_log_context() -> Dict[str, Optional[str]]:
    """Get current logging context."""
    return {
        "component": _component.get(),
        "credential_type": _credential_type.get(),
        "principal": _principal.get(),
    }


def clear_log_context() -> None:
    """Clear all logging context variables."""
    _component.set(None)
    _credential_type.set(None)
    _principal.set(None)
