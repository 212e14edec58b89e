"""
Pytest configuration and shared fixtures for the outfit gateway tests.

Provides an isolated record store under ``tmp_path``, a manual clock and a
scripted vision collaborator so no test touches the network.
"""

import base64
import io
import sys
from pathlib import Path

import pytest
from PIL import Image

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from analysis.occasion import OccasionTable  # noqa: E402
from analysis.service import AnalysisService  # noqa: E402
from gateway.dispatcher import OperationGateway  # noqa: E402
from shared.cache import ResultCache  # noqa: E402
from shared.errors import CollaboratorError  # noqa: E402
from shared.scheduling import ManualClock  # noqa: E402
from shared.schemas import BasicScores, OutfitDetails, StyleSuggestions  # noqa: E402
from storage.record_store import RecordStore  # noqa: E402

BASIC_SCORES = {
    "categories": {"casual": 0.7, "formal": 0.3},
    "styleAttributes": {"formal": 0.9, "elegant": 0.8, "casual": 0.1, "trendy": 0.5},
    "colorAnalysis": {"dominant": "navy", "palette": ["navy", "white"], "contrast": "medium"},
    "comfort": 80,
    "fitConfidence": 90,
    "colorHarmony": 75,
}

ITEMIZED = {
    "style": {"formal": 0.9, "elegant": 0.8},
    "clothingItems": [
        {"type": "Blazer", "color": "navy", "pattern": "solid", "material": "wool", "confidence": 0.9}
    ],
    "accessories": [{"type": "watch", "color": "silver", "position": "wrist", "confidence": 0.8}],
    "dominantColors": ["#1f2a44", "#ffffff"],
    "patterns": ["solid"],
    "season": "Autumn",
    "occasions": ["wedding", "business meeting"],
    "hasBottomGarment": True,
}


def make_image_bytes(fmt: str = "JPEG", size=(8, 8), color=(20, 40, 80)) -> bytes:
    mode = "RGBA" if fmt == "PNG" else "RGB"
    fill = color + (255,) if mode == "RGBA" else color
    buffer = io.BytesIO()
    Image.new(mode, size, fill).save(buffer, format=fmt)
    return buffer.getvalue()


def to_data_url(content: bytes, mime: str = "image/jpeg") -> str:
    return f"data:{mime};base64,{base64.b64encode(content).decode('ascii')}"


class FakeCollaborator:
    """Scripted stand-in for the vision collaborator."""

    def __init__(self):
        self.calls = []
        self.basic = dict(BASIC_SCORES)
        self.itemized = dict(ITEMIZED)
        self.suggestions = ["Add a belt", "Consider darker shoes"]
        self.fail_with = None

    def _record(self, name):
        self.calls.append(name)
        if self.fail_with is not None:
            raise self.fail_with

    async def basic_scores(self, image_data):
        self._record("basic_scores")
        return BasicScores.model_validate(self.basic)

    async def itemized_analysis(self, image_data, basic):
        self._record("itemized_analysis")
        return OutfitDetails.model_validate(
            {
                **self.itemized,
                "comfort": basic.comfort,
                "fitConfidence": basic.fit_confidence,
                "colorHarmony": basic.color_harmony,
            }
        )

    async def style_suggestions(self, image_data, occasion):
        self._record("style_suggestions")
        return StyleSuggestions(suggestions=self.suggestions)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def store(data_dir):
    return RecordStore.from_path(data_dir)


@pytest.fixture
def jpeg_bytes():
    return make_image_bytes("JPEG")


@pytest.fixture
def image_data(jpeg_bytes):
    return to_data_url(jpeg_bytes)


@pytest.fixture
def collaborator():
    return FakeCollaborator()


@pytest.fixture
def failing_collaborator():
    fake = FakeCollaborator()
    fake.fail_with = CollaboratorError("Vision API request timed out after 30s")
    return fake


@pytest.fixture
def analysis_service(collaborator, clock):
    return AnalysisService(collaborator, cache=ResultCache(clock=clock), occasions=OccasionTable.load())


@pytest.fixture
def gateway(store, analysis_service, clock):
    return OperationGateway(store, analysis_service, clock=clock)
