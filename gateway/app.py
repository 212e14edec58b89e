"""
HTTP service for the outfit analysis gateway.

Exposes the operation gateway plus image serving, a storage init shortcut
and the shared health endpoint.
"""

import asyncio
import os
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response

from analysis.collaborator import VisionCollaborator
from analysis.occasion import OccasionTable
from analysis.service import AnalysisService
from shared.base_service import BaseService
from shared.cache import ResultCache
from shared.config import ServiceSettings
from shared.errors import GatewayError, InvalidOperationError
from shared.scheduling import Clock, SystemClock
from storage.record_store import RecordStore, validate_record_id

from .dispatcher import OperationGateway

IMAGE_CACHE_CONTROL = "public, max-age=31536000"

CONTENT_TYPES = {
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


class GatewayService(BaseService):
    """Operation gateway exposed over HTTP."""

    def __init__(
        self,
        settings: Optional[ServiceSettings] = None,
        store: Optional[RecordStore] = None,
        analysis: Optional[AnalysisService] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__("outfit-gateway", "1.0.0", settings=settings)
        self.clock = clock or SystemClock()
        self.store = store or RecordStore(self.settings.get_storage_config())
        self.collaborator = None
        if analysis is None:
            self.collaborator = VisionCollaborator(self.settings.get_collaborator_config())
            analysis = AnalysisService(
                self.collaborator,
                cache=ResultCache(self.settings.cache_ttl_seconds, clock=self.clock),
                occasions=OccasionTable.load(self.settings.occasion_config_path),
            )
        self.analysis = analysis
        self.gateway = OperationGateway(self.store, self.analysis, clock=self.clock)

    def _add_routes(self, app: FastAPI) -> None:
        """Add gateway routes."""

        @app.post("/v1/operations")
        async def execute_operation(request: Request) -> JSONResponse:
            """Execute one tagged operation."""
            try:
                payload = await request.json()
            except ValueError:
                return JSONResponse(status_code=400, content={"error": "Invalid operation"})

            try:
                result = await self.gateway.execute(payload)
            except InvalidOperationError:
                return JSONResponse(status_code=400, content={"error": "Invalid operation"})
            except GatewayError as e:
                request.state.logger.error("Operation failed on server", error=e.message)
                return JSONResponse(
                    status_code=500, content={"error": "Operation failed on server"}
                )
            return JSONResponse(content=result)

        @app.post("/v1/init")
        async def init_storage() -> JSONResponse:
            result = await self.store.init_storage()
            return JSONResponse(status_code=200 if result["success"] else 500, content=result)

        @app.get("/v1/images/path")
        async def get_image_by_path(path: Optional[str] = Query(None)) -> Response:
            """Serve a file by path, restricted to the data directory."""
            if not path:
                return Response("Image path not provided", status_code=400)

            data_root = os.path.realpath(self.store.data_dir)
            try:
                resolved = os.path.realpath(os.path.normpath(path))
            except ValueError:
                return Response("Invalid image path", status_code=400)
            if os.path.commonpath([data_root, resolved]) != data_root:
                self.logger.warning("Rejected image path outside data directory")
                return Response("Invalid image path", status_code=403)

            target = Path(resolved)
            try:
                content = await asyncio.to_thread(target.read_bytes)
            except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
                return Response("Image not found", status_code=404)
            except OSError as e:
                self.logger.error("Error reading image file", error=str(e))
                return Response("Error serving image", status_code=500)

            return Response(
                content=content,
                media_type=CONTENT_TYPES.get(target.suffix.lower(), "image/jpeg"),
                headers={"Cache-Control": IMAGE_CACHE_CONTROL},
            )

        @app.get("/v1/images/{image_id}")
        async def get_image(image_id: str) -> Response:
            """Serve a stored image by id."""
            try:
                validate_record_id(image_id)
                content = await self.store.get_image(image_id)
            except InvalidOperationError:
                return Response("Invalid image id", status_code=400)
            except GatewayError:
                return Response("Error serving image", status_code=500)

            if content is None:
                return Response("Image not found", status_code=404)

            return Response(
                content=content,
                media_type="image/jpeg",
                headers={"Cache-Control": IMAGE_CACHE_CONTROL},
            )

    async def _initialize_service(self) -> None:
        """Create the data directories and record collaborator status."""
        result = await self.store.init_storage()
        self.set_health_detail("storage_writable", result["success"])
        self.set_health_detail("data_dir", str(self.store.data_dir))
        if not result["success"]:
            self.set_unhealthy(result["message"])
        if self.collaborator is not None and not self.collaborator.configured:
            self.logger.warning("XAI_API_KEY not set; analysis operations will record errors")
        self.set_health_detail(
            "vision_configured",
            self.collaborator.configured if self.collaborator is not None else True,
        )

    async def _cleanup_service(self) -> None:
        if self.collaborator is not None:
            self.collaborator.close()
            self.analysis.cache.clear()

    async def _check_service_health(self) -> bool:
        writable = await self.store.is_writable()
        self.set_health_detail("storage_writable", writable)
        if writable:
            self.set_healthy()
        return writable


def create_app(settings: Optional[ServiceSettings] = None) -> FastAPI:
    """Create the gateway FastAPI application."""
    service = GatewayService(settings=settings)
    return service.app


# For development/testing
if __name__ == "__main__":
    service = GatewayService()
    service.run()
