"""
Object Storage Gateway.
"""

__version__ = "0.1.0"

from .config import GatewaySettings, get_settings  # noqa: E402
from .enums import AddressMode, ErrorKind, ServiceEndpoint, status_code_for  # noqa: E402
from .errors import GatewayError  # noqa: E402


__all__ = [
    "AddressMode",
    "ErrorKind",
    "GatewayError",
    "GatewaySettings",
    "ServiceEndpoint",
    "__version__",
    "get_settings",
    "status_code_for",
]
