"""HTTP client for a running operation gateway."""

from typing import Any, Optional

import httpx
from loguru import logger

from shared.errors import GatewayError, InvalidOperationError


class GatewayClient:
    """Posts tagged operations to the gateway and unwraps the results."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "GatewayClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self.client.aclose()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return "Operation failed"
        if isinstance(body, dict) and isinstance(body.get("error"), str):
            return body["error"]
        return "Operation failed"

    async def execute(self, operation: dict[str, Any]) -> Any:
        """
        Execute one operation on the gateway.

        Raises:
            InvalidOperationError: If the gateway rejected the operation shape
            GatewayError: On any other failure, including transport errors
        """
        operation_type = operation.get("type")
        try:
            response = await self.client.post("/v1/operations", json=operation)
        except httpx.HTTPError as e:
            logger.error(
                "Gateway request failed",
                operation_type=operation_type,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise GatewayError("Gateway unreachable") from e

        if response.status_code == 400:
            raise InvalidOperationError(self._error_message(response))
        if response.is_error:
            message = self._error_message(response)
            logger.error(
                "Gateway operation failed",
                operation_type=operation_type,
                status_code=response.status_code,
                error=message,
            )
            raise GatewayError(message)

        return response.json()

    async def get_image(self, image_id: str) -> Optional[bytes]:
        """Fetch a stored image; ``None`` when the gateway does not have it."""
        try:
            response = await self.client.get(f"/v1/images/{image_id}")
        except httpx.HTTPError as e:
            raise GatewayError("Gateway unreachable") from e

        if response.status_code == 404:
            return None
        if response.is_error:
            raise GatewayError("Error fetching image")
        return response.content

    async def health(self) -> dict[str, Any]:
        try:
            response = await self.client.get("/health")
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise GatewayError("Gateway health check failed") from e
        return response.json()
