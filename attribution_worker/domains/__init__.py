"""
Business domains for the Attribution Worker
"""
