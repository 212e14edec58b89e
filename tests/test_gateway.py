"""Tests for the operation gateway dispatcher."""

import pytest

from analysis.occasion import OccasionTable
from analysis.service import AnalysisService
from gateway.dispatcher import OperationGateway, error_chain
from shared.cache import ResultCache
from shared.errors import CollaboratorError, GatewayError, InvalidOperationError


@pytest.mark.asyncio
async def test_init_storage(gateway, data_dir):
    assert await gateway.execute({"type": "INIT_STORAGE"}) == {"success": True}
    assert (data_dir / "analysis").is_dir()


@pytest.mark.asyncio
async def test_save_image_returns_id(gateway, image_data, store):
    result = await gateway.execute({"type": "SAVE_IMAGE", "imageData": image_data, "imageId": "cam-1"})

    assert result == {"imageId": "cam-1"}
    assert await store.image_exists("cam-1")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        None,
        [],
        {},
        {"type": "NOT_A_THING"},
        {"type": "ANALYZE_OUTFIT"},
        {"type": "MATCH_OCCASION", "imageData": "abc"},
        {"type": "SAVE_FEEDBACK", "imageId": "i", "analysisId": "a", "feedback": "meh"},
        {"type": "FETCH_ANALYSES", "filters": {"limit": -1}},
    ],
)
async def test_invalid_operations_are_rejected(gateway, payload):
    with pytest.raises(InvalidOperationError):
        await gateway.execute(payload)


@pytest.mark.asyncio
async def test_analyze_outfit_persists_success_record(gateway, image_data, store, collaborator):
    record = await gateway.execute({"type": "ANALYZE_OUTFIT", "imageData": image_data})

    assert record["status"] == "success"
    assert record["analysisType"] == "outfit"
    assert record["id"].startswith("analysis_")
    assert record["result"]["comfort"] == 80
    assert "error" not in record
    assert "processingTimeMs" in record["metadata"]
    assert {"outfit", "success", "navy"} <= set(record["queryTags"])
    assert await store.image_exists(record["imageId"])

    stored = await store.get_analysis(record["id"])
    assert stored.to_wire() == record


@pytest.mark.asyncio
async def test_repeat_analysis_is_served_from_cache(gateway, image_data, collaborator):
    await gateway.execute({"type": "ANALYZE_OUTFIT", "imageData": image_data})
    await gateway.execute({"type": "ANALYZE_OUTFIT", "imageData": image_data})

    assert collaborator.calls == ["basic_scores"]


@pytest.mark.asyncio
async def test_injected_cache_ttl_and_clock_are_used(collaborator, clock, image_data):
    cache = ResultCache(ttl_seconds=10, clock=clock)
    service = AnalysisService(collaborator, cache=cache, occasions=OccasionTable())

    assert service.cache is cache

    await service.analyze_outfit(image_data)
    clock.advance(5)
    await service.analyze_outfit(image_data)
    assert collaborator.calls == ["basic_scores"]

    clock.advance(6)
    await service.analyze_outfit(image_data)
    assert collaborator.calls == ["basic_scores", "basic_scores"]


@pytest.mark.asyncio
async def test_analyze_details_fetches_basic_scores_first(gateway, image_data, collaborator):
    record = await gateway.execute({"type": "ANALYZE_DETAILS", "imageData": image_data})

    assert collaborator.calls == ["basic_scores", "itemized_analysis"]
    assert record["analysisType"] == "detailed"
    assert record["result"]["season"] == "Autumn"
    assert record["result"]["fitConfidence"] == 90
    assert "blazer" in record["queryTags"]


@pytest.mark.asyncio
async def test_match_occasion_records_score(gateway, image_data):
    record = await gateway.execute(
        {"type": "MATCH_OCCASION", "imageData": image_data, "occasion": "wedding"}
    )

    assert record["analysisType"] == "occasion"
    assert record["result"] == {"occasion": "wedding", "score": 79}
    assert record["metadata"]["occasion"] == "wedding"
    assert "wedding" in record["queryTags"]


@pytest.mark.asyncio
async def test_get_suggestions_records_list(gateway, image_data):
    record = await gateway.execute(
        {"type": "GET_SUGGESTIONS", "imageData": image_data, "occasion": "date night"}
    )

    assert record["analysisType"] == "suggestion"
    assert record["result"]["suggestions"] == ["Add a belt", "Consider darker shoes"]


@pytest.mark.asyncio
async def test_collaborator_failure_becomes_error_record(store, failing_collaborator, clock, image_data):
    service = AnalysisService(
        failing_collaborator, cache=ResultCache(clock=clock), occasions=OccasionTable()
    )
    gateway = OperationGateway(store, service, clock=clock)

    record = await gateway.execute({"type": "ANALYZE_OUTFIT", "imageData": image_data})

    assert record["status"] == "error"
    assert record["result"] is None
    assert record["error"] == "Vision API request timed out after 30s"
    assert "CollaboratorError" in record["metadata"]["errorStack"]
    assert "error" in record["queryTags"]

    stats = await gateway.execute({"type": "GET_STATS"})
    assert stats["failedAnalyses"] == 1


@pytest.mark.asyncio
async def test_unexpected_failure_gets_generic_message(store, collaborator, clock, image_data):
    collaborator.fail_with = KeyError("/secret/path")
    service = AnalysisService(collaborator, cache=ResultCache(clock=clock), occasions=OccasionTable())
    gateway = OperationGateway(store, service, clock=clock)

    record = await gateway.execute({"type": "ANALYZE_OUTFIT", "imageData": image_data})

    assert record["status"] == "error"
    assert record["error"] == "Analysis failed"


@pytest.mark.asyncio
async def test_fetch_get_delete_flow(gateway, image_data, clock):
    first = await gateway.execute({"type": "ANALYZE_OUTFIT", "imageData": image_data})
    clock.advance(1)
    second = await gateway.execute(
        {"type": "MATCH_OCCASION", "imageData": image_data, "occasion": "workout"}
    )

    listed = await gateway.execute({"type": "FETCH_ANALYSES"})
    assert [r["id"] for r in listed] == [second["id"], first["id"]]

    filtered = await gateway.execute(
        {"type": "FETCH_ANALYSES", "filters": {"analysisType": "occasion"}}
    )
    assert [r["id"] for r in filtered] == [second["id"]]

    assert await gateway.execute({"type": "GET_ANALYSIS", "id": first["id"]}) == first
    assert await gateway.execute({"type": "DELETE_ANALYSIS", "id": first["id"]}) == {"success": True}
    assert await gateway.execute({"type": "DELETE_ANALYSIS", "id": first["id"]}) == {"success": True}
    assert await gateway.execute({"type": "GET_ANALYSIS", "id": first["id"]}) is None

    assert await gateway.execute({"type": "CLEAR_ANALYSES"}) == {"success": True}
    assert await gateway.execute({"type": "FETCH_ANALYSES"}) == []


@pytest.mark.asyncio
async def test_search_and_stats(gateway, image_data, clock):
    await gateway.execute({"type": "ANALYZE_OUTFIT", "imageData": image_data})
    clock.advance(1)
    await gateway.execute({"type": "MATCH_OCCASION", "imageData": image_data, "occasion": "wedding"})

    found = await gateway.execute({"type": "SEARCH_ANALYSES", "query": "Wedding"})
    assert [r["analysisType"] for r in found] == ["occasion"]

    stats = await gateway.execute({"type": "GET_STATS"})
    assert stats["totalAnalyses"] == 2
    assert stats["successfulAnalyses"] == 2
    assert stats["byType"] == {"outfit": 1, "occasion": 1}


@pytest.mark.asyncio
async def test_feedback_operations(gateway, clock):
    save = {"type": "SAVE_FEEDBACK", "imageId": "img", "analysisId": "analysis_1_a", "feedback": "upvote"}
    assert await gateway.execute(save) == {"success": True}
    clock.advance(1)
    assert await gateway.execute({**save, "analysisId": "analysis_2_b", "feedback": "downvote"}) == {
        "success": True
    }

    feedback = await gateway.execute({"type": "GET_FEEDBACK"})
    assert [f["analysisId"] for f in feedback] == ["analysis_2_b", "analysis_1_a"]

    assert await gateway.execute({"type": "REMOVE_FEEDBACK", "analysisId": "analysis_1_a"}) == {
        "success": True
    }
    assert await gateway.execute({"type": "CLEAR_FEEDBACK"}) == {"success": True}
    assert await gateway.execute({"type": "GET_FEEDBACK"}) == []


@pytest.mark.asyncio
async def test_unsafe_identifier_is_invalid(gateway):
    with pytest.raises(InvalidOperationError):
        await gateway.execute({"type": "GET_ANALYSIS", "id": "../../etc/passwd"})


@pytest.mark.asyncio
async def test_store_failure_raises_generic_gateway_error(tmp_path, analysis_service, clock):
    from storage.record_store import RecordStore

    blocker = tmp_path / "blocker"
    blocker.write_text("file")
    gateway = OperationGateway(RecordStore.from_path(blocker), analysis_service, clock=clock)

    with pytest.raises(GatewayError):
        await gateway.execute(
            {"type": "SAVE_FEEDBACK", "imageId": "i", "analysisId": "a", "feedback": "upvote"}
        )


def test_error_chain_includes_causes_without_paths():
    try:
        try:
            raise OSError("disk full")
        except OSError as e:
            raise CollaboratorError("Vision API call failed") from e
    except CollaboratorError as exc:
        chain = error_chain(exc)

    assert chain.startswith("CollaboratorError: Vision API call failed")
    assert "OSError: disk full" in chain
    assert ".py" not in chain
