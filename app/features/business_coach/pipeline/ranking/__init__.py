"""
Recommendation ranking package.

Turns classified data into at most five priority-ordered recommendations.
"""

from .service import RankingService, ranking_service

__all__ = ["RankingService", "ranking_service"]
