"""
Cached analysis operations built on the vision collaborator.

Each operation checks the result cache first; only fresh misses reach the
external model. Results are returned in their camelCase wire form.
"""

from typing import Any, Optional

from loguru import logger

from shared.cache import ResultCache, generate_cache_key
from shared.schemas import BasicScores

from .collaborator import VisionCollaborator
from .occasion import OccasionTable, score_occasion_fit

OUTFIT_PARAMS = "outfit-analysis"
DETAILED_PARAMS = "detailed-analysis"


class AnalysisService:
    def __init__(
        self,
        collaborator: VisionCollaborator,
        cache: Optional[ResultCache] = None,
        occasions: Optional[OccasionTable] = None,
    ):
        self.collaborator = collaborator
        self.cache = cache if cache is not None else ResultCache()
        self.occasions = occasions or OccasionTable.load()

    async def basic_scores(self, image_data: str) -> BasicScores:
        cache_key = generate_cache_key(image_data, OUTFIT_PARAMS)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("Using cached outfit analysis")
            return cached

        scores = await self.collaborator.basic_scores(image_data)
        self.cache.set(cache_key, scores)
        return scores

    async def analyze_outfit(self, image_data: str) -> dict[str, Any]:
        """Basic outfit scores."""
        scores = await self.basic_scores(image_data)
        return scores.to_wire()

    async def analyze_outfit_details(self, image_data: str) -> dict[str, Any]:
        """Itemized outfit analysis; basic scores are fetched first."""
        cache_key = generate_cache_key(image_data, DETAILED_PARAMS)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("Using cached detailed analysis")
            return cached

        basic = await self.basic_scores(image_data)
        details = await self.collaborator.itemized_analysis(image_data, basic)
        result = details.to_wire()
        self.cache.set(cache_key, result)
        return result

    async def match_outfit_to_occasion(self, image_data: str, occasion: str) -> int:
        cache_key = generate_cache_key(image_data, {"occasion": occasion})
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("Using cached occasion match", occasion=occasion)
            return cached

        basic = await self.basic_scores(image_data)
        score = score_occasion_fit(
            basic.style_attributes,
            occasion,
            comfort=basic.comfort,
            fit_confidence=basic.fit_confidence,
            table=self.occasions,
        )
        logger.info("Occasion score calculated", occasion=occasion, score=score)
        self.cache.set(cache_key, score)
        return score

    async def get_style_suggestions(self, image_data: str, occasion: str) -> list[str]:
        cache_key = generate_cache_key(image_data, {"suggestion": occasion})
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("Using cached style suggestions", occasion=occasion)
            return cached

        suggestions = await self.collaborator.style_suggestions(image_data, occasion)
        self.cache.set(cache_key, suggestions.suggestions)
        return suggestions.suggestions
