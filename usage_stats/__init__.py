"""
Usage Stats

FastAPI + MongoDB service that records chat client API usage events and
reports on them: totals, breakdowns, timelines and shared-credential checks.
"""

__version__ = "0.1.0"

from .app import app
from .config import config

__all__ = ["app", "config"]
