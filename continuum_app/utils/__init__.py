"""
Utility functions module.

Clock sources and duration formatting shared across the system.

Time Semantics:
- All period boundaries are integer milliseconds since the Unix epoch
- The injected clock is the only source of truth for ordering
- Wall-clock readings never move backwards within one process
"""
