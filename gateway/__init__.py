"""Operation gateway and its HTTP service."""

from .dispatcher import OperationGateway, parse_operation

__all__ = ["OperationGateway", "parse_operation"]
