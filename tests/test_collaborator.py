"""Tests for the vision collaborator with the OpenAI client mocked."""

import json
from unittest.mock import MagicMock, patch

import httpx
import openai
import pytest

from analysis.collaborator import VisionCollaborator, to_data_url
from conftest import BASIC_SCORES, ITEMIZED
from shared.errors import CollaboratorError, InvalidShapeError
from shared.schemas import BasicScores, CollaboratorConfig

REQUEST = httpx.Request("POST", "https://api.x.ai/v1/chat/completions")


def completion(content):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


@pytest.fixture
def config():
    return CollaboratorConfig(api_key="test-key")


@pytest.fixture
def mock_openai():
    with patch("analysis.collaborator.OpenAI") as mock_class:
        client = MagicMock()
        mock_class.return_value = client
        yield mock_class, client


@pytest.mark.asyncio
async def test_basic_scores_request_shape(config, mock_openai):
    mock_class, client = mock_openai
    client.chat.completions.create.return_value = completion(
        f"```json\n{json.dumps(BASIC_SCORES)}\n```"
    )
    collaborator = VisionCollaborator(config)

    scores = await collaborator.basic_scores("QUJD")

    assert scores.comfort == 80
    mock_class.assert_called_once_with(
        api_key="test-key", base_url="https://api.x.ai/v1", max_retries=0
    )
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "grok-2-vision"
    assert kwargs["temperature"] == 0.2
    assert kwargs["timeout"] == 30
    assert kwargs["messages"][0] == {"role": "system", "content": "You are a fashion analysis assistant."}
    image_part = kwargs["messages"][1]["content"][1]
    assert image_part["image_url"]["url"] == "data:image/jpeg;base64,QUJD"


@pytest.mark.asyncio
async def test_itemized_analysis_uses_longer_timeout(config, mock_openai):
    _, client = mock_openai
    client.chat.completions.create.return_value = completion(json.dumps(ITEMIZED))
    collaborator = VisionCollaborator(config)

    details = await collaborator.itemized_analysis("data:image/png;base64,QUJD", BasicScores.model_validate(BASIC_SCORES))

    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["timeout"] == 45
    assert kwargs["temperature"] == 0.1
    assert details.season == "Autumn"
    assert details.comfort == 80


@pytest.mark.asyncio
async def test_style_suggestions_prompt_includes_occasion(config, mock_openai):
    _, client = mock_openai
    client.chat.completions.create.return_value = completion("- Add a structured blazer\n- Try loafers instead")
    collaborator = VisionCollaborator(config)

    suggestions = await collaborator.style_suggestions("QUJD", "job interview")

    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["temperature"] == 0.7
    assert '"job interview"' in kwargs["messages"][1]["content"][0]["text"]
    assert suggestions.suggestions == ["Add a structured blazer", "Try loafers instead"]


@pytest.mark.asyncio
async def test_invalid_shape_is_reported(config, mock_openai):
    _, client = mock_openai
    client.chat.completions.create.return_value = completion('{"comfort": "high"}')

    with pytest.raises(InvalidShapeError):
        await VisionCollaborator(config).basic_scores("QUJD")


@pytest.mark.asyncio
async def test_timeout_maps_to_collaborator_error(config, mock_openai):
    _, client = mock_openai
    client.chat.completions.create.side_effect = openai.APITimeoutError(request=REQUEST)

    with pytest.raises(CollaboratorError, match="timed out"):
        await VisionCollaborator(config).basic_scores("QUJD")


@pytest.mark.asyncio
async def test_status_error_hides_provider_body(config, mock_openai):
    _, client = mock_openai
    client.chat.completions.create.side_effect = openai.APIStatusError(
        "upstream exploded",
        response=httpx.Response(502, request=REQUEST),
        body={"error": "internal provider detail"},
    )

    with pytest.raises(CollaboratorError) as exc_info:
        await VisionCollaborator(config).basic_scores("QUJD")

    assert "502" in str(exc_info.value)
    assert "internal provider detail" not in str(exc_info.value)


@pytest.mark.asyncio
async def test_missing_api_key_raises_collaborator_error(mock_openai):
    mock_class, _ = mock_openai
    collaborator = VisionCollaborator(CollaboratorConfig(api_key=None))

    assert collaborator.configured is False
    with pytest.raises(CollaboratorError):
        await collaborator.basic_scores("QUJD")
    mock_class.assert_not_called()


def test_to_data_url_keeps_existing_prefix():
    assert to_data_url("data:image/png;base64,AAAA") == "data:image/png;base64,AAAA"
    assert to_data_url(" AAAA ") == "data:image/jpeg;base64,AAAA"
