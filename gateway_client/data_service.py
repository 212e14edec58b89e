"""
Client-side data service.

Puts a result cache in front of the analysis operations and wraps the
storage and feedback operations with the failure handling the UI expects:
feedback helpers report ``False`` or an empty list instead of raising.
"""

from typing import Any, Optional

from loguru import logger

from shared.cache import ResultCache, generate_cache_key
from shared.errors import GatewayError
from shared.schemas import FeedbackValue

from .client import GatewayClient

OUTFIT_PARAMS = "outfit-analysis"


def unwrap_record(record: Any) -> Any:
    """Return the result of a success record; raise for an error record."""
    if not isinstance(record, dict):
        raise GatewayError("Unexpected response from gateway")
    if record.get("status") == "error":
        raise GatewayError(f"Analysis failed: {record.get('error') or 'unknown error'}")
    return record.get("result")


class ClientDataService:
    def __init__(self, client: GatewayClient, cache: Optional[ResultCache] = None):
        self.client = client
        self.cache = cache if cache is not None else ResultCache()

    async def initialize_storage(self) -> bool:
        try:
            result = await self.client.execute({"type": "INIT_STORAGE"})
        except GatewayError as e:
            logger.error("Error initializing data storage", error=e.message)
            return False
        return bool(result.get("success"))

    async def _cached(self, cache_key: str, operation: dict[str, Any], pick) -> Any:
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("Using cached result", operation_type=operation["type"])
            return cached

        record = await self.client.execute(operation)
        value = pick(unwrap_record(record))
        self.cache.set(cache_key, value)
        return value

    async def analyze_outfit(self, image_data: str) -> dict[str, Any]:
        return await self._cached(
            generate_cache_key(image_data, OUTFIT_PARAMS),
            {"type": "ANALYZE_OUTFIT", "imageData": image_data},
            lambda result: result,
        )

    async def analyze_outfit_details(self, image_data: str) -> dict[str, Any]:
        """Detailed analysis is never cached on the client; the gateway caches it."""
        record = await self.client.execute({"type": "ANALYZE_DETAILS", "imageData": image_data})
        return unwrap_record(record)

    async def match_outfit_to_occasion(self, image_data: str, occasion: str) -> int:
        return await self._cached(
            generate_cache_key(image_data, {"occasion": occasion}),
            {"type": "MATCH_OCCASION", "imageData": image_data, "occasion": occasion},
            lambda result: result["score"],
        )

    async def get_style_suggestions(self, image_data: str, occasion: str) -> list[str]:
        return await self._cached(
            generate_cache_key(image_data, {"suggestion": occasion}),
            {"type": "GET_SUGGESTIONS", "imageData": image_data, "occasion": occasion},
            lambda result: result["suggestions"],
        )

    async def get_feedback(self) -> list[dict[str, Any]]:
        try:
            return await self.client.execute({"type": "GET_FEEDBACK"})
        except GatewayError as e:
            logger.error("Error fetching feedback", error=e.message)
            return []

    async def record_feedback(
        self, analysis: Optional[dict[str, Any]], feedback: Optional[FeedbackValue | str]
    ) -> bool:
        """
        Save or, when ``feedback`` is ``None``, remove feedback for an analysis.

        Args:
            analysis: The analysis record the feedback is about
            feedback: ``upvote``, ``downvote`` or ``None``

        Returns:
            Whether the gateway reported success
        """
        if not analysis or not analysis.get("id"):
            logger.error("Missing analysis or analysis ID for feedback")
            return False

        analysis_id = analysis["id"]
        if feedback is None:
            operation = {"type": "REMOVE_FEEDBACK", "analysisId": analysis_id}
        else:
            operation = {
                "type": "SAVE_FEEDBACK",
                "imageId": analysis.get("imageId") or "unknown",
                "analysisId": analysis_id,
                "feedback": FeedbackValue(feedback).value,
            }

        try:
            result = await self.client.execute(operation)
        except GatewayError as e:
            logger.error("Error recording feedback", analysis_id=analysis_id, error=e.message)
            return False
        return bool(result.get("success"))

    async def clear_feedback(self) -> bool:
        try:
            result = await self.client.execute({"type": "CLEAR_FEEDBACK"})
        except GatewayError as e:
            logger.error("Error clearing feedback", error=e.message)
            return False
        return bool(result.get("success"))

    async def save_image(self, image_data: str, image_id: Optional[str] = None) -> str:
        operation = {"type": "SAVE_IMAGE", "imageData": image_data}
        if image_id:
            operation["imageId"] = image_id
        result = await self.client.execute(operation)
        return result["imageId"]
