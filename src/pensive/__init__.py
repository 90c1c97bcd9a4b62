"""Pensive: indexed record store and concept-graph engine."""

__version__ = "0.1.0"
