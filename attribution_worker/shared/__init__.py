"""
Shared utilities and constants for the Attribution Worker
"""
