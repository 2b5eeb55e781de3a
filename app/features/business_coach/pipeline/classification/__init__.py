"""
Classification package.

Derives per-domain statistics, stale lists and health issues from raw
gateway rows.
"""

from .service import ClassificationService, ClassifiedData, classification_service

__all__ = ["ClassificationService", "ClassifiedData", "classification_service"]
