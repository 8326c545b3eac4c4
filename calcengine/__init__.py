"""Calculation template execution and comparison engine."""

__version__ = "1.0.0"
