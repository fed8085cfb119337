"""Cadence: spaced-repetition review scheduling for homeschool learners."""

from cadence.consts import VERSION

__version__ = VERSION
