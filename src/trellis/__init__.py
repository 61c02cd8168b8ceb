"""Trellis: constraint-propagating edit engine for Gantt schedules."""

__version__ = "0.1.0"
