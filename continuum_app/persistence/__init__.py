"""
Persistence module.

Durable transactional storage for period records and configuration.
"""
