"""Outfit analysis: vision collaborator, response parsing and occasion scoring."""

from .collaborator import VisionCollaborator
from .occasion import OccasionTable, score_occasion_fit
from .service import AnalysisService

__all__ = ["AnalysisService", "OccasionTable", "VisionCollaborator", "score_occasion_fit"]
