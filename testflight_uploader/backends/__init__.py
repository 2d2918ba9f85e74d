"""Upload backends.

Each backend is a tagged implementation registered under its name in
:data:`BACKENDS`; the orchestrator selects one by the ``backend`` setting.
"""

from __future__ import annotations

from testflight_uploader.backends.appstore_api import AppStoreApiBackend
from testflight_uploader.backends.base import Backend, BackendContext, BackendOutcome
from testflight_uploader.backends.transporter import TransporterBackend
from testflight_uploader.errors import BackendUnavailableError

BACKENDS: dict[str, Backend] = {
    backend.name: backend
    for backend in (AppStoreApiBackend(), TransporterBackend())
}


def list_backends() -> list[str]:
    """List registered backend names."""
    return sorted(BACKENDS)


def get_backend(name: str) -> Backend:
    """
    Look up a backend by name.

    Raises:
        BackendUnavailableError: If no backend is registered under the name
    """
    try:
        return BACKENDS[name]
    except KeyError:
        raise BackendUnavailableError(
            f"Unknown upload backend {name!r}; choose one of {', '.join(list_backends())}."
        ) from None


__all__ = [
    "Backend",
    "BackendContext",
    "BackendOutcome",
    "AppStoreApiBackend",
    "TransporterBackend",
    "BACKENDS",
    "get_backend",
    "list_backends",
]
