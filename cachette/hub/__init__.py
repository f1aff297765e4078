"""Hub acquisition (download/cache/skip/force)."""
from .acquire import (  # noqa: F401
    DEFAULT_REQUIRED_FILES,
    Acquirer,
    AcquisitionJob,
    ProgressCallback,
)
from .transport import HubTransport, TransportError  # noqa: F401

__all__ = [
    "Acquirer",
    "AcquisitionJob",
    "DEFAULT_REQUIRED_FILES",
    "HubTransport",
    "ProgressCallback",
    "TransportError",
]
