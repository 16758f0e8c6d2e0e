"""
Continuum - Continuous Period Tracking Engine

Tracks time as an unbroken sequence of labeled periods. Exactly one period
is open at any moment; ending it atomically opens the next one, so the
timeline never has gaps or overlaps, even across crashes and restarts.
"""

__version__ = "0.1.0"
__author__ = "Continuum Team"
