"""Flashcard review core for the study portal."""

__version__ = "0.1.0"
