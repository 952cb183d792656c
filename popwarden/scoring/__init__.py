"""Confidence scoring for candidate popup elements."""

from popwarden.scoring.characteristics import Characteristics, Dimensions, Position
from popwarden.scoring.extract import ElementSnapshot, extract_characteristics
from popwarden.scoring.scorer import AnalysisResult, ConfidenceScorer

__all__ = [
    "Characteristics", "Dimensions", "Position",
    "ElementSnapshot", "extract_characteristics",
    "AnalysisResult", "ConfidenceScorer",
]
