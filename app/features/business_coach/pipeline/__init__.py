"""
Pipeline components for the business coach.

Pure transformations from raw gateway rows to snapshot sections:
classification first, then recommendation ranking.
"""

__all__ = ["classification", "ranking"]
