"""Application-wide constants.

This module centralizes magic numbers and configuration values that are
used across multiple modules. Values that need to be configurable at
runtime should go in config.py instead.
"""

# ===================
# Preferences
# ===================

# Adaptivity level range (1 = barely adaptive, 10 = fully adaptive)
MIN_ADAPTIVITY_LEVEL = 1
MAX_ADAPTIVITY_LEVEL = 10
DEFAULT_ADAPTIVITY_LEVEL = 5

DEFAULT_ENABLE_ADAPTIVE_LEARNING = True


# ===================
# Difficulty / Mastery
# ===================

# Difficulty level range (1 = easiest, 5 = hardest)
MIN_DIFFICULTY_LEVEL = 1
MAX_DIFFICULTY_LEVEL = 5

# Mastery level range (percentage)
MIN_MASTERY_LEVEL = 0
MAX_MASTERY_LEVEL = 100

# Mastery points covered by one difficulty step
MASTERY_PER_DIFFICULTY_STEP = 20

# Success rate range (percentage)
MIN_SUCCESS_RATE = 0.0
MAX_SUCCESS_RATE = 100.0

# Success rate assumed for questions that carry none
DEFAULT_SUCCESS_RATE = 50.0


# ===================
# Learning Gaps
# ===================

MIN_GAP_SEVERITY = 1
MAX_GAP_SEVERITY = 10


# ===================
# Question Scoring
# ===================

DIFFICULTY_WEIGHT = 2
GAP_WEIGHT = 3
RECENT_ATTEMPT_PENALTY = -15

# Upper bound (exclusive) of the random tie-breaker
RANDOM_FACTOR_MAX = 5.0

# difficulty_score above this is tagged appropriate_difficulty
APPROPRIATE_DIFFICULTY_SCORE = 7

# success_rate_score above this is tagged reinforcing_weak_area
WEAK_AREA_SCORE = 5


# ===================
# Recommendations
# ===================

LOW_MASTERY_THRESHOLD = 50
PROGRESSION_MASTERY_THRESHOLD = 70


# ===================
# Distributed Locks
# ===================

DISTRIBUTED_LOCK_TTL_SECONDS = 30
DISTRIBUTED_LOCK_RETRY_DELAY_SECONDS = 0.1
DISTRIBUTED_LOCK_MAX_RETRIES = 50


# ===================
# Database
# ===================

# Database health check retries
DB_HEALTH_CHECK_MAX_RETRIES = 3
DB_HEALTH_CHECK_RETRY_DELAY_SECONDS = 1.0
