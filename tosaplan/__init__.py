"""Liveness analysis and static memory planning for TOSA tensor programs."""

__version__ = "0.1.0"