"""
popwarden Adaptive Learning

Learns per-pattern close/keep preferences from user decisions and suggests
them for similar popups later.

Features:
- Weighted similarity over close button, ad content, links, modality,
  z-index and size
- Confidence reinforcement, penalties and decision flips
- Bounded pattern set with staleness and confidence eviction
"""

__all__ = [
    "PatternStore", "LearningPattern", "PatternSuggestion",
    "calculate_similarity", "average_characteristics",
]


# Lazy imports: popwarden.config.models reads learning.thresholds, and the
# store itself depends on popwarden.config.
def __getattr__(name):
    if name in ("PatternStore", "average_characteristics"):
        from popwarden.learning.store import PatternStore, average_characteristics
        return {"PatternStore": PatternStore, "average_characteristics": average_characteristics}[name]
    if name in ("LearningPattern", "PatternSuggestion"):
        from popwarden.learning.schemas import LearningPattern, PatternSuggestion
        return {"LearningPattern": LearningPattern, "PatternSuggestion": PatternSuggestion}[name]
    if name == "calculate_similarity":
        from popwarden.learning.similarity import calculate_similarity
        return calculate_similarity
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
