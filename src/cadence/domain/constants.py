"""Centralized constants for the Cadence engine.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- Interval Scheduler ----------
DEFAULT_INITIAL_EASE = 2.5
DEFAULT_EASE_FLOOR = 1.3
DEFAULT_EASE_CEILING = 3.0
DEFAULT_EASE_PENALTY = 0.2  # again
DEFAULT_HARD_PENALTY = 0.15
DEFAULT_EASE_BONUS = 0.15  # easy
DEFAULT_LEARNING_STEP_DAYS = 1.0
DEFAULT_GRADUATING_INTERVAL_DAYS = 1.0
DEFAULT_EASY_INTERVAL_DAYS = 4.0
DEFAULT_HARD_MULTIPLIER = 0.8
DEFAULT_EASY_MULTIPLIER = 1.3
DEFAULT_GRADUATION_REPETITIONS = 2
DEFAULT_MASTERY_THRESHOLD_DAYS = 21.0
DEFAULT_MASTERY_MIN_REPETITIONS = 3
DEFAULT_MAX_INTERVAL_DAYS = 240.0  # ~8 months

# ---------- Slot Calendar ----------
SLOT_SEARCH_DAYS = 14
DAYS_PER_WEEK = 7

# ---------- Queue Builder ----------
DEFAULT_NEW_CARDS_PER_QUEUE = 5
CRITICAL_OVERDUE_DAYS = 7

# ---------- Analytics ----------
DEFAULT_ANALYTICS_WINDOW_DAYS = 30
WEEKLY_WINDOW_DAYS = 7
MONTHLY_WINDOW_DAYS = 30

# ---------- HTTP ----------
REQUEST_TIMEOUT = 10.0
RESPONSIVENESS_TIMEOUT = 2.0
