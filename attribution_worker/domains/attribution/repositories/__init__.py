"""
Store-backed repositories for the attribution domain
"""

from .conversion_repository import ConversionRepository
from .journey_repository import JourneyRepository
from .pageview_repository import PageviewRepository
from .progress_repository import ProgressRepository

__all__ = [
    "ConversionRepository",
    "JourneyRepository",
    "PageviewRepository",
    "ProgressRepository",
]
