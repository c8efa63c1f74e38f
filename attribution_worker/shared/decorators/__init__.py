"""
Decorators module for the Attribution Worker
"""

from .timing import async_timing

__all__ = ["async_timing"]
