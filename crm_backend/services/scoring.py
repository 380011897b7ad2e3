"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  CRM - Heuristic scoring                                                     ║
║                                                                              ║
║  Lead score  = 50 + min(interactions*2, 20) + min(positive*3, 15)            ║
║                   + min(task completion rate*15, 15), capped at 100          ║
║  Churn risk  = fixed penalties, level <=40 Low, <=70 Medium, else High       ║
║  Sentiment / chatbot / email replies are keyword lookups                     ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from datetime import datetime, timezone, timedelta
from typing import List, Dict, Any, Optional

from crm_backend.config import to_iso

logger = logging.getLogger("scoring")

BASE_LEAD_SCORE = 50
DEFAULT_CHURN_RISK = {"riskScore": 0, "riskLevel": "Unknown", "factors": {}}
RECENT_WINDOW_DAYS = 30

POSITIVE_WORDS = {"good", "great", "excellent", "happy", "satisfied", "thanks", "love"}
NEGATIVE_WORDS = {"bad", "poor", "unhappy", "dissatisfied", "issue", "problem", "hate"}

# Checked in order, first keyword found wins
CHATBOT_RESPONSES = {
    "pricing": "Our pricing plans start from $99/month. Would you like to speak with a sales representative?",
    "support": "Our support team is available 24/7. Please describe your issue and we'll help you right away.",
    "features": "Our CRM includes contact management, task tracking, and analytics. Would you like a demo?",
}
CHATBOT_DEFAULT = "Thank you for your message. How can I assist you today?"

EMAIL_TEMPLATES = {
    "inquiry": "Thank you for your inquiry. We'll review your request and get back to you shortly.",
    "support": "We're sorry to hear you're experiencing issues. Our team will investigate and respond soon.",
    "feedback": "Thank you for your feedback. We greatly value your input and will use it to improve our services.",
}
EMAIL_DEFAULT = "Thank you for your message. We'll respond to you as soon as possible."


def task_completion_rate(tasks: List[dict]) -> float:
    if not tasks:
        return 0.0
    completed = sum(1 for t in tasks if t.get("status") == "completed")
    return completed / len(tasks)


def calculate_lead_score(interactions: List[dict], tasks: List[dict]) -> float:
    score = BASE_LEAD_SCORE
    score += min(len(interactions) * 2, 20)

    positive = sum(1 for i in interactions if i.get("outcome") == "positive")
    score += min(positive * 3, 15)

    if tasks:
        score += min(task_completion_rate(tasks) * 15, 15)

    return round(min(score, 100), 2)


def churn_level(score: int) -> str:
    if score > 70:
        return "High"
    if score > 40:
        return "Medium"
    return "Low"


def predict_churn_risk(
    customer: dict,
    interactions: List[dict],
    tasks: List[dict],
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    since = to_iso(now - timedelta(days=RECENT_WINDOW_DAYS))

    recent = [i for i in interactions if (i.get("date") or "") > since]
    recent_negative = [i for i in recent if i.get("outcome") == "negative"]
    completion = task_completion_rate(tasks)

    risk = 0
    if not recent:
        risk += 30
    elif len(recent) < 3:
        risk += 15

    risk += len(recent_negative) * 10

    if completion < 0.5:
        risk += 20

    history = customer.get("statusHistory") or []
    recent_changes = [h for h in history if (h.get("date") or "") > since]
    if len(recent_changes) > 2:
        risk += 15

    risk = min(risk, 100)
    return {
        "riskScore": risk,
        "riskLevel": churn_level(risk),
        "factors": {
            "lowInteraction": len(recent) == 0,
            "negativeInteractions": len(recent_negative) > 0,
            "poorTaskCompletion": completion < 0.5,
        }
    }


def analyze_sentiment(text: str) -> str:
    score = 0
    for word in (text or "").lower().split():
        if word in POSITIVE_WORDS:
            score += 1
        if word in NEGATIVE_WORDS:
            score -= 1

    if score > 0:
        return "positive"
    if score < 0:
        return "negative"
    return "neutral"


def generate_chatbot_response(message: str) -> str:
    lowered = (message or "").lower()
    for keyword, response in CHATBOT_RESPONSES.items():
        if keyword in lowered:
            return response
    return CHATBOT_DEFAULT


def generate_email_response(interaction: Optional[dict]) -> str:
    kind = ((interaction or {}).get("type") or "").lower()
    return EMAIL_TEMPLATES.get(kind, EMAIL_DEFAULT)


# ==================== LOADERS (default on read error) ====================

async def _load_customer_activity(db, customer_id: str):
    interactions = await db.interactions.find({"customer": customer_id}, {"_id": 0}).to_list(None)
    tasks = await db.tasks.find({"customer": customer_id}, {"_id": 0}).to_list(None)
    return interactions, tasks


async def lead_score_for_customer(db, customer_id: str) -> float:
    try:
        interactions, tasks = await _load_customer_activity(db, customer_id)
        return calculate_lead_score(interactions, tasks)
    except Exception as e:
        logger.error(f"Lead score failed for customer {customer_id}: {e}")
        return BASE_LEAD_SCORE


async def churn_risk_for_customer(db, customer_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    try:
        customer = await db.customers.find_one({"id": customer_id}, {"_id": 0}) or {}
        interactions, tasks = await _load_customer_activity(db, customer_id)
        return predict_churn_risk(customer, interactions, tasks, now)
    except Exception as e:
        logger.error(f"Churn risk failed for customer {customer_id}: {e}")
        return dict(DEFAULT_CHURN_RISK)
