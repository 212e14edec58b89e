"""
Record queries over the analysis collection.

All functions are pure: they take already-loaded records and return new
lists, so the gateway can recompute listings and stats on every call.
"""

import json
from typing import Any, Iterable, Optional

from shared.schemas import (
    AnalysisFilters,
    AnalysisRecord,
    AnalysisStats,
    AnalysisStatus,
    SortDirection,
    SortField,
)

# Result keys whose string values make useful search tags
_TAG_KEYS = ("season", "occasion", "type", "dominant")
_TAG_LIST_KEYS = ("occasions", "patterns", "dominantColors")


def _tag_values(result: Any) -> Iterable[str]:
    if not isinstance(result, dict):
        return

    for key in _TAG_KEYS:
        value = result.get(key)
        if isinstance(value, str):
            yield value

    for key in _TAG_LIST_KEYS:
        values = result.get(key)
        if isinstance(values, list):
            yield from (v for v in values if isinstance(v, str))

    for item_key in ("clothingItems", "accessories"):
        items = result.get(item_key)
        if isinstance(items, list):
            for item in items:
                if isinstance(item, dict) and isinstance(item.get("type"), str):
                    yield item["type"]

    color_analysis = result.get("colorAnalysis")
    if isinstance(color_analysis, dict):
        yield from _tag_values(color_analysis)


def build_query_tags(
    analysis_type: str,
    status: str,
    result: Any = None,
    occasion: Optional[str] = None,
) -> list[str]:
    """
    Derive the lowercase search tags stored alongside a record.

    Tags come from the record's type and status, the occasion it was run for,
    and salient fields of the result such as garment types and season.
    """
    candidates = [analysis_type, status]
    if occasion:
        candidates.append(occasion)
    candidates.extend(_tag_values(result))

    tags = []
    for candidate in candidates:
        tag = candidate.strip().lower()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def _sort_key(field: SortField):
    attribute = {
        SortField.TIMESTAMP: lambda r: r.timestamp,
        SortField.ANALYSIS_TYPE: lambda r: r.analysis_type.value,
        SortField.STATUS: lambda r: r.status.value,
    }
    return attribute[field]


def filter_records(
    records: list[AnalysisRecord], filters: Optional[AnalysisFilters] = None
) -> list[AnalysisRecord]:
    """
    Filter, sort and paginate analysis records.

    Args:
        records: Records in directory order
        filters: Optional filters; ``None`` means every record

    Returns:
        Matching records, newest first unless ``sort_by`` says otherwise.
        Ties keep their directory order.
    """
    filters = filters or AnalysisFilters()
    results = list(records)

    if filters.analysis_type is not None:
        results = [r for r in results if r.analysis_type == filters.analysis_type]

    if filters.start_date is not None:
        results = [r for r in results if r.timestamp >= filters.start_date]

    if filters.end_date is not None:
        results = [r for r in results if r.timestamp <= filters.end_date]

    if filters.status is not None:
        results = [r for r in results if r.status == filters.status]

    if filters.tag:
        tag = filters.tag.lower()
        results = [r for r in results if tag in r.query_tags]

    if filters.sort_by is not None:
        descending = filters.sort_direction != SortDirection.ASC
        results.sort(key=_sort_key(filters.sort_by), reverse=descending)
    else:
        results.sort(key=lambda r: r.timestamp, reverse=True)

    offset = filters.offset or 0
    if filters.limit is not None:
        results = results[offset:offset + filters.limit]
    elif offset:
        results = results[offset:]

    return results


def _searchable_text(record: AnalysisRecord) -> str:
    parts = [
        json.dumps(record.result, default=str),
        json.dumps(record.metadata, default=str),
        record.analysis_type.value,
        record.error or "",
        " ".join(record.query_tags),
    ]
    return " ".join(parts).lower()


def search_records(records: list[AnalysisRecord], query: str) -> list[AnalysisRecord]:
    """Case-insensitive substring search, newest first.

    An empty query matches every record.
    """
    needle = query.strip().lower()
    matches = [r for r in records if not needle or needle in _searchable_text(r)]
    matches.sort(key=lambda r: r.timestamp, reverse=True)
    return matches


def compute_stats(records: list[AnalysisRecord]) -> AnalysisStats:
    by_type: dict[str, int] = {}
    for record in records:
        key = record.analysis_type.value
        by_type[key] = by_type.get(key, 0) + 1

    successful = [r for r in records if r.status == AnalysisStatus.SUCCESS]
    timings = []
    for record in successful:
        value = record.metadata.get("processingTimeMs")
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
            timings.append(value)

    return AnalysisStats(
        total_analyses=len(records),
        successful_analyses=len(successful),
        failed_analyses=sum(1 for r in records if r.status == AnalysisStatus.ERROR),
        processing_analyses=sum(1 for r in records if r.status == AnalysisStatus.PROCESSING),
        by_type=by_type,
        average_processing_time=sum(timings) / len(timings) if timings else 0.0,
    )
