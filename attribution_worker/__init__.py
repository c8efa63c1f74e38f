"""
Attribution Worker

Background worker that reconstructs multi-touch marketing attribution and
customer journeys from conversion and pageview records.
"""

__version__ = "0.1.0"
