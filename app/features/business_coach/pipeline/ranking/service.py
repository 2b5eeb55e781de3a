"""
Recommendation ranking service - converts classified data into a short,
priority-ordered list of actions the coach can offer.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from app.features.business_coach.domain.snapshot import (
    PRIORITY_ORDER,
    EntityRef,
    Recommendation,
    RecommendationAction,
)
from app.features.business_coach.pipeline.classification.service import ClassifiedData
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class RankingService:
    MAX_RECOMMENDATIONS = 5
    MAX_LEAD_FOLLOW_UPS = 3
    MAX_CAMPAIGN_PAUSES = 2
    MAX_PROPERTY_UPDATES = 2
    OVERDUE_TASK_TRIGGER = 3
    PAUSABLE_ISSUES = frozenset({"overspend", "no_traffic"})

    def rank(self, classified: ClassifiedData, now: datetime) -> tuple[Recommendation, ...]:
        """
        Build recommendations in generation order, dedupe by id, cap and sort.

        When more than MAX_RECOMMENDATIONS are generated, the first
        recommendation of every type is kept before the remaining slots are
        filled by priority, so one busy domain cannot crowd out the others.
        """
        generated = self._generate(classified, now)

        unique: list[Recommendation] = []
        seen: set[str] = set()
        for recommendation in generated:
            if recommendation.id in seen:
                continue
            seen.add(recommendation.id)
            unique.append(recommendation)

        selected = self._select(unique)
        logger.debug("Recommendations ranked", generated=len(unique), kept=len(selected))
        return tuple(selected)

    def _select(self, recommendations: list[Recommendation]) -> list[Recommendation]:
        order = {rec.id: index for index, rec in enumerate(recommendations)}

        def sort_key(rec: Recommendation) -> tuple[int, int]:
            return (PRIORITY_ORDER[rec.priority], order[rec.id])

        if len(recommendations) <= self.MAX_RECOMMENDATIONS:
            return sorted(recommendations, key=sort_key)

        chosen: list[Recommendation] = []
        types_seen: set[str] = set()
        for rec in recommendations:
            if rec.type not in types_seen:
                types_seen.add(rec.type)
                chosen.append(rec)

        chosen_ids = {rec.id for rec in chosen}
        for rec in sorted(recommendations, key=sort_key):
            if len(chosen) >= self.MAX_RECOMMENDATIONS:
                break
            if rec.id not in chosen_ids:
                chosen.append(rec)
                chosen_ids.add(rec.id)

        return sorted(chosen, key=sort_key)[: self.MAX_RECOMMENDATIONS]

    def _generate(self, classified: ClassifiedData, now: datetime) -> list[Recommendation]:
        recommendations: list[Recommendation] = []
        recommendations.extend(self._lead_follow_ups(classified))
        recommendations.extend(self._campaign_pauses(classified))
        recommendations.extend(self._property_updates(classified))
        recommendations.extend(self._connection_fixes(classified))
        recommendations.extend(self._task_review(classified, now))
        return recommendations

    def _lead_follow_ups(self, classified: ClassifiedData) -> list[Recommendation]:
        recommendations = []
        for lead in classified.leads.stale_list[: self.MAX_LEAD_FOLLOW_UPS]:
            name = lead.name or "lead"
            waiting = (
                lead.days_since_contact
                if lead.days_since_contact is not None
                else lead.days_since_created
            )
            recommendations.append(
                Recommendation(
                    id=f"follow_up_lead_{lead.id}",
                    type="follow_up_lead",
                    priority="high" if lead.score == "HOT" else "medium",
                    title=f"Follow up with {name}",
                    description=f"{lead.name or 'Lead'} has been waiting {waiting} days for contact ({lead.score} lead)",
                    action=RecommendationAction(
                        tool_name="update_lead_status",
                        params={
                            "lead_id": lead.id,
                            "status": "CONTACTED",
                            "note": "Coach-recommended follow-up",
                        },
                    ),
                    entity_ref=EntityRef(entity_type="lead", entity_id=lead.id),
                )
            )
        return recommendations

    def _campaign_pauses(self, classified: ClassifiedData) -> list[Recommendation]:
        recommendations = []
        campaigns_seen: set[str] = set()
        for issue in classified.campaigns.issues:
            if len(recommendations) >= self.MAX_CAMPAIGN_PAUSES:
                break
            if issue.issue_kind not in self.PAUSABLE_ISSUES or issue.campaign_id in campaigns_seen:
                continue
            campaigns_seen.add(issue.campaign_id)
            recommendations.append(
                Recommendation(
                    id=f"pause_campaign_{issue.campaign_id}",
                    type="pause_campaign",
                    priority="high" if issue.severity == "high" else "medium",
                    title=f'Consider pausing campaign "{issue.name}"',
                    description=issue.suggestion,
                    action=RecommendationAction(
                        tool_name="pause_campaign",
                        params={
                            "campaign_id": issue.campaign_id,
                            "reason": f"Coach recommendation: {issue.issue_kind}",
                        },
                    ),
                    entity_ref=EntityRef(entity_type="campaign", entity_id=issue.campaign_id),
                )
            )
        return recommendations

    def _property_updates(self, classified: ClassifiedData) -> list[Recommendation]:
        recommendations = []
        for prop in classified.properties.stale_list[: self.MAX_PROPERTY_UPDATES]:
            description = f"Property hasn't been updated in {prop.days_since_update} days"
            if prop.missing_fields:
                description += f" and is missing: {', '.join(prop.missing_fields)}"
            recommendations.append(
                Recommendation(
                    id=f"update_property_{prop.id}",
                    type="update_property",
                    priority="medium",
                    title=f'Update property "{prop.title or prop.address or prop.id}"',
                    description=description,
                    action=RecommendationAction(
                        tool_name="open_entity",
                        params={"entity_type": "property", "entity_id": prop.id},
                    ),
                    entity_ref=EntityRef(entity_type="property", entity_id=prop.id),
                )
            )
        return recommendations

    def _connection_fixes(self, classified: ClassifiedData) -> list[Recommendation]:
        return [
            Recommendation(
                id=f"fix_connection_{issue.id}",
                type="fix_connection",
                priority="high",
                title=f"Fix {issue.provider} connection",
                description=(
                    f"{issue.provider} connection has been {issue.status.lower()} "
                    f"for {issue.days_since_update} days"
                ),
                action=RecommendationAction(
                    tool_name="open_entity",
                    params={"entity_type": "connection", "entity_id": issue.id},
                ),
                entity_ref=EntityRef(entity_type="connection", entity_id=issue.id),
            )
            for issue in classified.connections.issues
        ]

    def _task_review(self, classified: ClassifiedData, now: datetime) -> list[Recommendation]:
        overdue = classified.tasks.stats.overdue
        if overdue <= self.OVERDUE_TASK_TRIGGER:
            return []
        return [
            Recommendation(
                id="create_task_overdue_review",
                type="create_task",
                priority="medium",
                title="Review overdue tasks",
                description=f"You have {overdue} overdue tasks that need attention",
                action=RecommendationAction(
                    tool_name="create_task",
                    params={
                        "title": "Review and prioritize overdue tasks",
                        "due_date": (now + timedelta(days=1)).isoformat(),
                        "tags": ["coach-generated", "task-management"],
                    },
                ),
            )
        ]


# Singleton instance for application use
ranking_service = RankingService()
