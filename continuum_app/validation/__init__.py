"""
Validation module.

Boundary checks applied to caller-supplied period metadata.
"""
