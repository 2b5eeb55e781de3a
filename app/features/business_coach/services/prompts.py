"""
Prompt construction and localized copy for the business coach.

Everything here is a pure function of a Snapshot (and session history), so
prompts can be asserted on directly in tests.
"""

from typing import Any, Literal

from app.features.business_coach.domain.chat import ChatMessage, Language, Suggestion
from app.features.business_coach.domain.snapshot import Snapshot

FallbackKind = Literal["welcome", "chat_error"]

MAX_SUGGESTIONS = 3

_ROLE_PROMPT: dict[Language, str] = {
    "en": """You are the user's personal business coach for this platform. You help them manage their business efficiently.

Guidelines:
- Always be concise, practical, and actionable
- Use the user's actual data to provide specific recommendations
- Don't ask generic questions - you already know their data
- Respond in English only
- Suggest concrete actions the user can take

Role: Personal Business Coach
Language: English
Tone: Friendly but professional
Response length: Short and practical (max 3 sentences)
""",
    "he": """אתה המאמן העסקי האישי של המשתמש. אתה עוזר לו לנהל את העסק שלו בפלטפורמה הזו.

הנחיות:
- תמיד תהיה תמציתי, פרקטי ופעיל
- תשתמש בנתונים של המשתמש כדי לתת המלצות ספציפיות
- אל תשאל שאלות כלליות - אתה כבר מכיר את הנתונים
- תענה בעברית בלבד
- תציע פעולות קונקרטיות שהמשתמש יכול לבצע

רול: מאמן עסקי אישי
שפה: עברית
טון: ידידותי אבל מקצועי
אורך תשובות: קצר ומעשי (עד 3 משפטים)
""",
}

_FALLBACK_TEXT: dict[Language, dict[FallbackKind, str]] = {
    "en": {
        "welcome": "Hello! I'm your business coach. How can I help you manage your business today?",
        "chat_error": "Sorry, I'm experiencing technical difficulties. Please try again in a moment.",
    },
    "he": {
        "welcome": "שלום! אני המאמן העסקי שלך. איך אוכל לעזור לך היום לנהל את העסק שלך?",
        "chat_error": "מצטער, יש לי בעיה טכנית. נסה שוב בעוד רגע.",
    },
}


def _data_context(language: Language, snapshot: Snapshot) -> str:
    leads = snapshot.leads.stats
    campaigns = snapshot.campaigns.stats
    properties = snapshot.properties.stats
    tasks = snapshot.tasks.stats
    issues = len(snapshot.campaigns.issues)
    recommendations = len(snapshot.recommendations)
    urgent = snapshot.urgent_issue_count()

    if language == "he":
        return f"""
נתוני המשתמש (נכון לעכשיו):
- לידים: {leads.total} סה"כ, {leads.stale} מיושנים, {leads.hot} חמים
- קמפיינים: {campaigns.total} סה"כ, {campaigns.active} פעילים, {issues} עם בעיות
- נכסים: {properties.total} סה"כ, {properties.stale} מיושנים
- משימות: {tasks.total} סה"כ, {tasks.overdue} באיחור
- המלצות זמינות: {recommendations}

בעיות דחופות: {urgent}
"""
    return f"""
User Data (current):
- Leads: {leads.total} total, {leads.stale} stale, {leads.hot} hot
- Campaigns: {campaigns.total} total, {campaigns.active} active, {issues} with issues
- Properties: {properties.total} total, {properties.stale} stale
- Tasks: {tasks.total} total, {tasks.overdue} overdue
- Recommendations available: {recommendations}

Urgent issues: {urgent}
"""


def build_system_prompt(language: Language, snapshot: Snapshot) -> str:
    """Role framing plus a localized summary of the account's snapshot."""
    return _ROLE_PROMPT[language] + "\n" + _data_context(language, snapshot)


def build_welcome_prompt(language: Language, snapshot: Snapshot) -> str:
    """
    Templated opening request, enriched with at most one stale-lead example
    and one campaign-issue example.
    """
    stale_count = snapshot.leads.stats.stale
    stale_lead = snapshot.leads.stale_list[0] if snapshot.leads.stale_list else None
    issue = snapshot.campaigns.issues[0] if snapshot.campaigns.issues else None

    if language == "he":
        prompt = "הכן הודעת פתיחה אישית למשתמש. תציין 2-3 פרטים ספציפיים מהנתונים שלו ותציע פעולות מיידיות."
        if stale_count > 0:
            prompt += f" למשל: יש לך {stale_count} לידים שמחכים למעקב"
            if stale_lead and stale_lead.name:
                prompt += f", כולל {stale_lead.name}"
            prompt += "."
        if issue:
            prompt += f' קמפיין "{issue.name}" צריך תשומת לב ({issue.issue_kind}).'
        return prompt

    prompt = (
        "Create a personalized welcome message for the user. "
        "Mention 2-3 specific items from their data and suggest immediate actions."
    )
    if stale_count > 0:
        prompt += f" For example: You have {stale_count} leads waiting for follow-up"
        if stale_lead and stale_lead.name:
            prompt += f", including {stale_lead.name}"
        prompt += "."
    if issue:
        prompt += f' Campaign "{issue.name}" needs attention ({issue.issue_kind}).'
    return prompt


def build_chat_messages(
    system_prompt: str,
    history: list[ChatMessage],
    user_message: str,
    history_window: int = 8,
) -> list[dict[str, Any]]:
    """System prompt, the last ``history_window`` session messages, then the new user message."""
    recent = history[-history_window:] if history_window > 0 else []
    return [
        {"role": "system", "content": system_prompt},
        *({"role": message.role, "content": message.content} for message in recent),
        {"role": "user", "content": user_message},
    ]


def build_quick_actions(snapshot: Snapshot, language: Language) -> list[Suggestion]:
    """Up to three one-tap follow-ups derived from the snapshot."""
    hebrew = language == "he"
    actions: list[Suggestion] = []

    stale_count = snapshot.leads.stats.stale
    if stale_count > 0 and snapshot.leads.stale_list:
        top_lead = snapshot.leads.stale_list[0]
        actions.append(
            Suggestion(
                text=f"עקוב אחרי {stale_count} לידים" if hebrew else f"Follow up {stale_count} leads",
                action="open_entity",
                params={"entity_type": "lead", "entity_id": top_lead.id},
            )
        )

    if snapshot.campaigns.issues:
        issue = snapshot.campaigns.issues[0]
        actions.append(
            Suggestion(
                text=f'בדוק קמפיין "{issue.name}"' if hebrew else f'Check campaign "{issue.name}"',
                action="open_entity",
                params={"entity_type": "campaign", "entity_id": issue.campaign_id},
            )
        )

    if snapshot.recommendations:
        actions.append(
            Suggestion(
                text="צפה בכל ההמלצות" if hebrew else "View all recommendations",
                action="list_user_data",
                params={"window_days": 30},
            )
        )

    return actions[:MAX_SUGGESTIONS]


def fallback_message(language: Language, kind: FallbackKind = "welcome") -> str:
    return _FALLBACK_TEXT[language][kind]


def rate_limited_message(language: Language, retry_after_seconds: int) -> str:
    if language == "he":
        return f"אתה שולח בקשות מהר מדי. נסה שוב בעוד {retry_after_seconds} שניות."
    return f"You're sending requests too quickly. Please try again in {retry_after_seconds} seconds."
