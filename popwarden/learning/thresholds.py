"""
popwarden Learning Thresholds

Named constants governing how observations become patterns and how patterns
turn into suggestions. Every value is overridable from the `learning`
config section.

Rules:
1. A stored pattern matches new characteristics at similarity >= 0.7
2. A suggestion is only offered at similarity >= 0.8
3. Suggestions are actionable at confidence >= 0.7, auto-applicable at >= 0.8
4. Disagreement costs twice what agreement earns; a pattern that falls
   below 0.3 flips its decision and restarts at 0.6
"""

# Similarity gates
MATCH_SIMILARITY = 0.7
SUGGESTION_SIMILARITY = 0.8

# Suggestion gates
ACTIONABLE_CONFIDENCE = 0.7
AUTO_APPLY_CONFIDENCE = 0.8

# Confidence dynamics
INITIAL_CONFIDENCE = 0.6
REINFORCE_STEP = 0.1
PENALTY_STEP = 0.2
MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 1.0
FLIP_THRESHOLD = 0.3
FLIP_RESET_CONFIDENCE = 0.6

# Booleans are only generalized from the first few observations
BOOLEAN_ADOPTION_LIMIT = 2

# Cleanup
CLEANUP_MIN_CONFIDENCE = 0.3
MAX_PATTERNS = 100
MAX_AGE_DAYS = 30

# Confidence is rounded after every update so repeated steps land on
# exact thresholds (0.6 + 0.1 + 0.1 == 0.8).
CONFIDENCE_PRECISION = 4

HIGH_CONFIDENCE = 0.8

LEARNABLE_DECISIONS = frozenset({"close", "keep"})
