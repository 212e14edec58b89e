"""
Occasion-fit scoring.

The score blends how well an outfit's style attributes match the ideal
weights for an occasion with its comfort and fit confidence scores.
"""

import math
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from loguru import logger

DEFAULT_OCCASIONS_PATH = Path(__file__).parent / "occasions.yml"

DEFAULT_WEIGHTS: dict[str, float] = {
    "casual": 0.5,
    "trendy": 0.5,
    "formal": 0.5,
    "elegant": 0.5,
}

STYLE_WEIGHT = 0.6
COMFORT_WEIGHT = 0.2
FIT_WEIGHT = 0.2
MISSING_SCORE = 50


class OccasionTable:
    """Ideal style weights per occasion, with a balanced default."""

    def __init__(
        self,
        occasions: Optional[Mapping[str, Mapping[str, float]]] = None,
        default: Optional[Mapping[str, float]] = None,
    ):
        self.occasions = {
            name.lower(): dict(weights) for name, weights in (occasions or {}).items()
        }
        self.default = dict(default or DEFAULT_WEIGHTS)

    def weights_for(self, occasion: str) -> dict[str, float]:
        return self.occasions.get(occasion.strip().lower(), self.default)

    @classmethod
    def load(cls, config_path: Optional[str | Path] = None) -> "OccasionTable":
        """Load the table from YAML; fall back to default weights only."""
        config_path = Path(config_path) if config_path else DEFAULT_OCCASIONS_PATH

        try:
            with open(config_path, "r") as f:
                config = yaml.safe_load(f) or {}

            table = cls(config.get("occasions"), config.get("default"))
            logger.info(
                "Occasion weights loaded",
                config_file=str(config_path),
                occasions=list(table.occasions.keys()),
            )
            return table

        except (OSError, yaml.YAMLError, AttributeError, TypeError, ValueError) as e:
            logger.error(
                "Failed to load occasion weights, using defaults",
                config_file=str(config_path),
                error=str(e),
            )
            return cls()


def _score_value(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def score_occasion_fit(
    style_attributes: Optional[Mapping[str, Any]],
    occasion: str,
    comfort: Optional[float] = None,
    fit_confidence: Optional[float] = None,
    table: Optional[OccasionTable] = None,
) -> int:
    """
    Compute the 0-100 fit score of an outfit for an occasion.

    Args:
        style_attributes: Style scores in [0, 1]; absent attributes count as 0
        occasion: Occasion name, matched case-insensitively
        comfort: Comfort score 0-100, 50 when missing
        fit_confidence: Fit confidence 0-100, 50 when missing
        table: Occasion weights; the balanced default applies to unknown names

    Returns:
        Integer score clamped to [0, 100]
    """
    table = table or OccasionTable()
    weights = table.weights_for(occasion)
    style_attributes = style_attributes or {}

    style_score = float(MISSING_SCORE)
    total_weight = sum(weights.values())
    if total_weight > 0:
        weighted_sum = sum(
            _score_value(style_attributes.get(attr)) * weight
            for attr, weight in weights.items()
        )
        style_score = weighted_sum / total_weight * 100

    comfort = MISSING_SCORE if comfort is None else comfort
    fit_confidence = MISSING_SCORE if fit_confidence is None else fit_confidence

    score = (
        style_score * STYLE_WEIGHT
        + comfort * COMFORT_WEIGHT
        + fit_confidence * FIT_WEIGHT
    )
    return _round_half_up(min(100.0, max(0.0, score)))
