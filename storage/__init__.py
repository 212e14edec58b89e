"""File-per-record persistence and record queries."""

from .query import build_query_tags, compute_stats, filter_records, search_records
from .record_store import RecordStore, decode_image_payload, validate_record_id

__all__ = [
    "RecordStore",
    "build_query_tags",
    "compute_stats",
    "decode_image_payload",
    "filter_records",
    "search_records",
    "validate_record_id",
]
