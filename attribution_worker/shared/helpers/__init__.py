"""
Shared helper functions for the Attribution Worker
"""
