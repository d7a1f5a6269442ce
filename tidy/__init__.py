"""Tidy - AI code review backend for the Tidy editor"""

from __future__ import annotations

__version__ = "1.0.0"
