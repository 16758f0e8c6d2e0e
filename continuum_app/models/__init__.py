"""
Data models module.

Period records, their metadata and query filters.
"""
