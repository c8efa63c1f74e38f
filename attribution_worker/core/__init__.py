"""
Core infrastructure for the Attribution Worker
"""
