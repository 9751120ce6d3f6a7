"""
Gateway service module.

Routes object requests from the HTTP layer to the storage backends.
"""

from .orchestrator import GatewayOrchestrator
from .schemas import ErrorResponse, MessageResponse, StatusResponse


__all__ = ["ErrorResponse", "GatewayOrchestrator", "MessageResponse", "StatusResponse"]
