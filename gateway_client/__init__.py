"""Python consumer of the operation gateway."""

from .client import GatewayClient
from .data_service import ClientDataService
from .realtime import RealtimeAnalyzer
from .visibility import VisibilityGatedQueue, VisibilityTracker

__all__ = [
    "ClientDataService",
    "GatewayClient",
    "RealtimeAnalyzer",
    "VisibilityGatedQueue",
    "VisibilityTracker",
]
