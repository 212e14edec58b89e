"""
File-per-record persistence for analysis records, feedback and images.

One root data directory holds three collections:

    <data_dir>/images/<imageId>.jpg
    <data_dir>/analysis/<analysisId>.json
    <data_dir>/feedback/<analysisId>.json

Blocking file I/O runs in worker threads so the event loop stays free.
Deleting an analysis record never deletes its image; orphaned images are
retained until removed by hand.
"""

import asyncio
import base64
import binascii
import io
import json
import os
import re
import uuid
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from PIL import Image, UnidentifiedImageError
from pydantic import ValidationError

from shared.errors import InvalidOperationError, StoreError
from shared.schemas import AnalysisRecord, FeedbackEntry, StorageConfig

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]+$")
_DATA_URL_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,")


def validate_record_id(record_id: str) -> str:
    """Reject identifiers that cannot be used verbatim as file names."""
    if not isinstance(record_id, str) or not _SAFE_ID.match(record_id):
        raise InvalidOperationError("Invalid identifier")
    return record_id


def decode_image_payload(image_data: str) -> bytes:
    """Decode a data URL or bare base64 payload into JPEG bytes.

    Images in other formats are re-encoded as JPEG so the stored file and the
    served content type agree.
    """
    encoded = _DATA_URL_PREFIX.sub("", image_data.strip(), count=1)
    try:
        raw = base64.b64decode(encoded, validate=False)
    except (binascii.Error, ValueError):
        raise InvalidOperationError("imageData is not valid base64")

    try:
        with Image.open(io.BytesIO(raw)) as img:
            if img.format == "JPEG":
                img.verify()
                return raw

            # Convert RGBA/P to RGB (JPEG has no transparency)
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            buffer = io.BytesIO()
            img.save(buffer, format="JPEG", quality=90)
            return buffer.getvalue()
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise InvalidOperationError("imageData is not a decodable image")


class RecordStore:
    """Directory-as-collection store for records and image blobs."""

    def __init__(self, config: StorageConfig):
        self.config = config
        self.data_dir = Path(config.data_dir)
        self.images_dir = self.data_dir / config.images_dirname
        self.analysis_dir = self.data_dir / config.analysis_dirname
        self.feedback_dir = self.data_dir / config.feedback_dirname

    @classmethod
    def from_path(cls, data_dir: str | os.PathLike) -> "RecordStore":
        return cls(StorageConfig(data_dir=str(Path(data_dir).resolve())))

    # ------------------------------------------------------------------
    # Directories
    # ------------------------------------------------------------------

    def _ensure_directories(self) -> None:
        for directory in (self.data_dir, self.images_dir, self.analysis_dir, self.feedback_dir):
            directory.mkdir(parents=True, exist_ok=True)

    async def ensure_directories(self) -> None:
        try:
            await asyncio.to_thread(self._ensure_directories)
        except OSError as e:
            logger.error("Failed to create data directories", error=str(e))
            raise StoreError(f"Failed to create data directories: {e.strerror or e}") from e

    def _probe_writable(self) -> None:
        self._ensure_directories()
        probe = self.images_dir / ".write-test"
        probe.write_text("test")
        probe.unlink()

    async def init_storage(self) -> dict[str, Any]:
        """
        Create the data directories and check they are writable.

        Returns:
            ``{"success": True}`` or ``{"success": False, "message": ...}``
        """
        try:
            await asyncio.to_thread(self._probe_writable)
        except OSError as e:
            logger.error(
                "Data directories are not writable",
                data_dir=str(self.data_dir),
                error=str(e),
            )
            return {"success": False, "message": "Storage directories are not writable"}

        logger.info(
            "Data directories verified writable",
            data_dir=str(self.data_dir),
            images_dir=str(self.images_dir),
            analysis_dir=str(self.analysis_dir),
            feedback_dir=str(self.feedback_dir),
        )
        return {"success": True}

    async def is_writable(self) -> bool:
        result = await self.init_storage()
        return result["success"]

    # ------------------------------------------------------------------
    # Low-level helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _write_json(path: Path, data: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        # One temp file per write; concurrent writers of an id each replace atomically
        tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
            os.replace(tmp_path, path)
        finally:
            tmp_path.unlink(missing_ok=True)

    @staticmethod
    def _read_json(path: Path) -> Any:
        return json.loads(path.read_text(encoding="utf-8"))

    @staticmethod
    def _list_json(directory: Path) -> list[Path]:
        if not directory.exists():
            return []
        return [p for p in directory.iterdir() if p.is_file() and p.suffix == ".json"]

    @staticmethod
    def _unlink(path: Path) -> bool:
        """Delete a file; a missing file counts as deleted."""
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning("File not found for deletion", path=str(path))
        return True

    async def _load_collection(self, directory: Path, label: str) -> list[dict]:
        """Read every JSON file in a collection, skipping unreadable ones."""
        try:
            paths = await asyncio.to_thread(self._list_json, directory)
        except OSError as e:
            logger.error(f"Failed to list {label} data", error=str(e))
            raise StoreError(f"Failed to list {label} data") from e

        items = []
        for path in paths:
            try:
                items.append(await asyncio.to_thread(self._read_json, path))
            except (OSError, ValueError) as e:
                logger.error(f"Error parsing {label} file", file=path.name, error=str(e))
        return items

    async def _clear_collection(self, directory: Path, label: str) -> bool:
        def clear() -> None:
            if not directory.exists():
                return
            for path in directory.iterdir():
                if path.is_file():
                    path.unlink(missing_ok=True)

        try:
            await asyncio.to_thread(clear)
        except OSError as e:
            logger.error(f"Error clearing {label} data", error=str(e))
            return False

        logger.info(f"All {label} data cleared")
        return True

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def image_path(self, image_id: str) -> Path:
        return self.images_dir / f"{validate_record_id(image_id)}.jpg"

    async def save_image(self, image_data: str, image_id: Optional[str] = None) -> str:
        """
        Persist an image payload as ``<imageId>.jpg``.

        Args:
            image_data: Data URL or bare base64 image payload
            image_id: Caller-supplied id; a uuid4 is generated when omitted

        Returns:
            The confirmed image id
        """
        image_id = image_id or str(uuid.uuid4())
        path = self.image_path(image_id)
        content = await asyncio.to_thread(decode_image_payload, image_data)

        def write() -> int:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
            return path.stat().st_size

        try:
            size = await asyncio.to_thread(write)
        except OSError as e:
            logger.error("Error saving image", image_id=image_id, error=str(e))
            raise StoreError(f"Failed to save image: {e.strerror or e}") from e

        logger.debug("Image saved", image_id=image_id, size_bytes=size)
        return image_id

    async def get_image(self, image_id: str) -> Optional[bytes]:
        """Read an image; ``None`` when the id is unknown."""
        path = self.image_path(image_id)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            logger.info("Image not found", image_id=image_id)
            return None
        except OSError as e:
            logger.error("Error reading image", image_id=image_id, error=str(e))
            raise StoreError("Failed to read image") from e

    async def image_exists(self, image_id: str) -> bool:
        return await asyncio.to_thread(self.image_path(image_id).is_file)

    # ------------------------------------------------------------------
    # Analysis records
    # ------------------------------------------------------------------

    async def save_analysis(self, record: AnalysisRecord | dict) -> AnalysisRecord:
        """
        Write one analysis record as ``<id>.json``.

        Any embedded ``imageData`` is stripped before serialization; images
        live in the images collection only.
        """
        if isinstance(record, dict):
            record = AnalysisRecord.model_validate(record)
        analysis_id = validate_record_id(record.id)

        data = record.to_wire()
        if data.pop("imageData", None) is not None:
            logger.warning("Removing imageData from analysis before saving", analysis_id=analysis_id)

        path = self.analysis_dir / f"{analysis_id}.json"
        try:
            await asyncio.to_thread(self._write_json, path, data)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Error saving analysis", analysis_id=analysis_id, error=str(e))
            raise StoreError(f"Failed to save analysis: {e}") from e

        logger.info("Analysis data saved", analysis_id=analysis_id, status=record.status.value)
        return AnalysisRecord.model_validate(data)

    async def get_analysis(self, analysis_id: str) -> Optional[AnalysisRecord]:
        """Point lookup; ``None`` when the record does not exist."""
        path = self.analysis_dir / f"{validate_record_id(analysis_id)}.json"
        try:
            data = await asyncio.to_thread(self._read_json, path)
        except FileNotFoundError:
            logger.info("Analysis data not found", analysis_id=analysis_id)
            return None
        except (OSError, ValueError) as e:
            logger.error("Error reading analysis", analysis_id=analysis_id, error=str(e))
            raise StoreError("Failed to get analysis") from e

        try:
            return AnalysisRecord.model_validate(data)
        except ValidationError as e:
            logger.error("Stored analysis has an invalid shape", analysis_id=analysis_id, error=str(e))
            raise StoreError("Failed to get analysis") from e

    async def list_analyses(self) -> list[AnalysisRecord]:
        """All readable analysis records, in directory order."""
        records = []
        for data in await self._load_collection(self.analysis_dir, "analysis"):
            try:
                records.append(AnalysisRecord.model_validate(data))
            except ValidationError as e:
                logger.error(
                    "Skipping analysis with an invalid shape",
                    analysis_id=data.get("id") if isinstance(data, dict) else None,
                    error=str(e),
                )
        return records

    async def delete_analysis(self, analysis_id: str) -> bool:
        """
        Delete one analysis record.

        Returns:
            True when the record is gone (including when it never existed),
            False on a genuine I/O failure
        """
        path = self.analysis_dir / f"{validate_record_id(analysis_id)}.json"
        try:
            await asyncio.to_thread(self._unlink, path)
        except OSError as e:
            logger.error("Error deleting analysis", analysis_id=analysis_id, error=str(e))
            return False

        logger.info("Analysis deleted", analysis_id=analysis_id)
        return True

    async def clear_analyses(self) -> bool:
        return await self._clear_collection(self.analysis_dir, "analysis")

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    async def save_feedback(self, entry: FeedbackEntry) -> None:
        """Upsert the feedback entry for ``entry.analysis_id``."""
        path = self.feedback_dir / f"{validate_record_id(entry.analysis_id)}.json"
        try:
            await asyncio.to_thread(self._write_json, path, entry.to_wire())
        except OSError as e:
            logger.error("Error saving feedback", analysis_id=entry.analysis_id, error=str(e))
            raise StoreError(f"Failed to save feedback: {e.strerror or e}") from e

        logger.info(
            "Feedback saved",
            analysis_id=entry.analysis_id,
            feedback=entry.feedback.value,
        )

    async def list_feedback(self) -> list[FeedbackEntry]:
        """All readable feedback entries, newest first."""
        entries = []
        for data in await self._load_collection(self.feedback_dir, "feedback"):
            try:
                entries.append(FeedbackEntry.model_validate(data))
            except ValidationError as e:
                logger.error("Skipping feedback with an invalid shape", error=str(e))
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries

    async def remove_feedback(self, analysis_id: str) -> bool:
        path = self.feedback_dir / f"{validate_record_id(analysis_id)}.json"
        try:
            await asyncio.to_thread(self._unlink, path)
        except OSError as e:
            logger.error("Error removing feedback", analysis_id=analysis_id, error=str(e))
            return False

        logger.info("Feedback removed", analysis_id=analysis_id)
        return True

    async def clear_feedback(self) -> bool:
        return await self._clear_collection(self.feedback_dir, "feedback")
