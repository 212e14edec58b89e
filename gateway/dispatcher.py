"""
Operation gateway: the single dispatch point for tagged operation requests.

Store and query operations raise ``GatewayError`` with a generic message on
failure. Analysis operations never raise for collaborator failures; they
persist and return an error-status record instead.
"""

import time
from typing import Any, Awaitable, Callable, Optional

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from analysis.service import AnalysisService
from shared.errors import CollaboratorError, GatewayError, InvalidOperationError, StoreError
from shared.scheduling import Clock, SystemClock
from shared.schemas import (
    AnalysisRecord,
    AnalysisStatus,
    AnalysisType,
    FeedbackEntry,
    Operation,
    generate_analysis_id,
)
from storage.query import build_query_tags, compute_stats, filter_records, search_records
from storage.record_store import RecordStore

_operation_adapter = TypeAdapter(Operation)

GENERIC_ANALYSIS_ERROR = "Analysis failed"


def parse_operation(payload: Any):
    """Validate a raw payload into one of the operation models."""
    try:
        return _operation_adapter.validate_python(payload)
    except ValidationError as e:
        logger.warning(
            "Rejected invalid operation",
            operation_type=payload.get("type") if isinstance(payload, dict) else None,
            errors=[".".join(str(p) for p in err["loc"]) for err in e.errors()],
        )
        raise InvalidOperationError() from e


def error_chain(exc: BaseException) -> str:
    """Summarize an exception and its causes without file paths or frames."""
    parts = []
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        parts.append(f"{type(current).__name__}: {current}")
        current = current.__cause__ or current.__context__
    return "\n  caused by ".join(parts)


class OperationGateway:
    """Routes each operation to the record store, the analysis service, or both."""

    def __init__(
        self,
        store: RecordStore,
        analysis: AnalysisService,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.analysis = analysis
        self.clock = clock or SystemClock()
        self._handlers: dict[str, Callable[[Any], Awaitable[Any]]] = {
            "INIT_STORAGE": self._init_storage,
            "SAVE_IMAGE": self._save_image,
            "ANALYZE_OUTFIT": self._analyze_outfit,
            "ANALYZE_DETAILS": self._analyze_details,
            "MATCH_OCCASION": self._match_occasion,
            "GET_SUGGESTIONS": self._get_suggestions,
            "FETCH_ANALYSES": self._fetch_analyses,
            "GET_ANALYSIS": self._get_analysis,
            "DELETE_ANALYSIS": self._delete_analysis,
            "CLEAR_ANALYSES": self._clear_analyses,
            "SEARCH_ANALYSES": self._search_analyses,
            "GET_STATS": self._get_stats,
            "SAVE_FEEDBACK": self._save_feedback,
            "REMOVE_FEEDBACK": self._remove_feedback,
            "GET_FEEDBACK": self._get_feedback,
            "CLEAR_FEEDBACK": self._clear_feedback,
        }

    async def execute(self, payload: Any) -> Any:
        """
        Execute one operation.

        Args:
            payload: Tagged operation object, either raw JSON or a parsed model

        Returns:
            JSON-ready result for the operation

        Raises:
            InvalidOperationError: If the payload does not match any operation
            GatewayError: If a store or query operation fails
        """
        operation = payload if hasattr(payload, "type") else parse_operation(payload)
        handler = self._handlers[operation.type]

        start_time = time.time()
        try:
            result = await handler(operation)
        except GatewayError:
            raise
        except Exception as e:
            logger.error(
                "Operation failed",
                operation_type=operation.type,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise GatewayError() from e

        logger.debug(
            "Operation completed",
            operation_type=operation.type,
            duration_ms=int((time.time() - start_time) * 1000),
        )
        return result

    # ------------------------------------------------------------------
    # Analysis operations
    # ------------------------------------------------------------------

    async def _run_analysis(
        self,
        operation,
        analysis_type: AnalysisType,
        run: Callable[[], Awaitable[Any]],
        occasion: Optional[str] = None,
    ) -> dict[str, Any]:
        image_id = await self.store.save_image(operation.image_data, operation.image_id)

        started_ms = self.clock.now_ms()
        metadata: dict[str, Any] = {}
        if occasion is not None:
            metadata["occasion"] = occasion

        try:
            result = await run()
        except Exception as e:
            message = str(e) if isinstance(e, CollaboratorError) else GENERIC_ANALYSIS_ERROR
            logger.error(
                "Analysis failed",
                analysis_type=analysis_type.value,
                image_id=image_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            finished_ms = self.clock.now_ms()
            record = AnalysisRecord(
                id=generate_analysis_id(finished_ms),
                image_id=image_id,
                timestamp=finished_ms,
                analysis_type=analysis_type,
                status=AnalysisStatus.ERROR,
                result=None,
                error=message,
                metadata={
                    **metadata,
                    "processingTimeMs": finished_ms - started_ms,
                    "errorStack": error_chain(e),
                },
                query_tags=build_query_tags(
                    analysis_type.value, AnalysisStatus.ERROR.value, occasion=occasion
                ),
            )
        else:
            finished_ms = self.clock.now_ms()
            record = AnalysisRecord(
                id=generate_analysis_id(finished_ms),
                image_id=image_id,
                timestamp=finished_ms,
                analysis_type=analysis_type,
                status=AnalysisStatus.SUCCESS,
                result=result,
                metadata={**metadata, "processingTimeMs": finished_ms - started_ms},
                query_tags=build_query_tags(
                    analysis_type.value, AnalysisStatus.SUCCESS.value, result, occasion
                ),
            )

        saved = await self.store.save_analysis(record)
        return saved.to_wire()

    async def _analyze_outfit(self, op) -> dict[str, Any]:
        return await self._run_analysis(
            op, AnalysisType.OUTFIT, lambda: self.analysis.analyze_outfit(op.image_data)
        )

    async def _analyze_details(self, op) -> dict[str, Any]:
        return await self._run_analysis(
            op, AnalysisType.DETAILED, lambda: self.analysis.analyze_outfit_details(op.image_data)
        )

    async def _match_occasion(self, op) -> dict[str, Any]:
        async def run():
            score = await self.analysis.match_outfit_to_occasion(op.image_data, op.occasion)
            return {"occasion": op.occasion, "score": score}

        return await self._run_analysis(op, AnalysisType.OCCASION, run, occasion=op.occasion)

    async def _get_suggestions(self, op) -> dict[str, Any]:
        async def run():
            suggestions = await self.analysis.get_style_suggestions(op.image_data, op.occasion)
            return {"occasion": op.occasion, "suggestions": suggestions}

        return await self._run_analysis(op, AnalysisType.SUGGESTION, run, occasion=op.occasion)

    # ------------------------------------------------------------------
    # Store operations
    # ------------------------------------------------------------------

    async def _init_storage(self, op) -> dict[str, Any]:
        return await self.store.init_storage()

    async def _save_image(self, op) -> dict[str, Any]:
        image_id = await self.store.save_image(op.image_data, op.image_id)
        return {"imageId": image_id}

    async def _fetch_analyses(self, op) -> list[dict[str, Any]]:
        records = await self.store.list_analyses()
        return [r.to_wire() for r in filter_records(records, op.filters)]

    async def _get_analysis(self, op) -> Optional[dict[str, Any]]:
        record = await self.store.get_analysis(op.id)
        return record.to_wire() if record is not None else None

    async def _delete_analysis(self, op) -> dict[str, bool]:
        success = await self.store.delete_analysis(op.id)
        if not success:
            raise StoreError("Failed to delete analysis")
        return {"success": True}

    async def _clear_analyses(self, op) -> dict[str, bool]:
        success = await self.store.clear_analyses()
        if not success:
            raise StoreError("Failed to clear analyses")
        return {"success": True}

    async def _search_analyses(self, op) -> list[dict[str, Any]]:
        records = await self.store.list_analyses()
        return [r.to_wire() for r in search_records(records, op.query)]

    async def _get_stats(self, op) -> dict[str, Any]:
        records = await self.store.list_analyses()
        return compute_stats(records).to_wire()

    async def _save_feedback(self, op) -> dict[str, bool]:
        entry = FeedbackEntry(
            image_id=op.image_id,
            analysis_id=op.analysis_id,
            feedback=op.feedback,
            timestamp=self.clock.now_ms(),
        )
        await self.store.save_feedback(entry)
        return {"success": True}

    async def _remove_feedback(self, op) -> dict[str, bool]:
        success = await self.store.remove_feedback(op.analysis_id)
        if not success:
            raise StoreError("Failed to remove feedback")
        return {"success": True}

    async def _get_feedback(self, op) -> list[dict[str, Any]]:
        return [entry.to_wire() for entry in await self.store.list_feedback()]

    async def _clear_feedback(self, op) -> dict[str, bool]:
        success = await self.store.clear_feedback()
        if not success:
            raise StoreError("Failed to clear feedback")
        return {"success": True}
