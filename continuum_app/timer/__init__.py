"""
Timer module.

Elapsed-time projection of the active period for display consumers.
"""
