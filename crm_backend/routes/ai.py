"""
CRM - Routes AI
Rule-based lead score, churn risk, sentiment and canned replies.
Scores are stored back on the customer when computed.
"""

from fastapi import APIRouter, Depends

from crm_backend.config import get_db, now_iso
from crm_backend.models.ai import SentimentRequest, ChatbotRequest, EmailResponseRequest
from crm_backend.services.permissions import AuthContext
from crm_backend.services.scoring import (
    lead_score_for_customer,
    churn_risk_for_customer,
    analyze_sentiment,
    generate_chatbot_response,
    generate_email_response,
)
from crm_backend.routes.auth import get_current_user
from crm_backend.routes.customers import load_customer

router = APIRouter(prefix="/ai", tags=["AI"])


@router.get("/lead-score/{customer_id}")
async def get_lead_score(customer_id: str, auth: AuthContext = Depends(get_current_user), db=Depends(get_db)):
    await load_customer(db, customer_id, auth)
    score = await lead_score_for_customer(db, customer_id)

    await db.customers.update_one(
        {"id": customer_id},
        {"$set": {"leadScore": {"score": score, "lastUpdated": now_iso()}}}
    )
    return {"success": True, "data": {"score": score}}


@router.get("/churn-risk/{customer_id}")
async def get_churn_risk(customer_id: str, auth: AuthContext = Depends(get_current_user), db=Depends(get_db)):
    await load_customer(db, customer_id, auth)
    risk = await churn_risk_for_customer(db, customer_id)

    await db.customers.update_one(
        {"id": customer_id},
        {"$set": {"churnRisk": {
            "score": risk["riskScore"],
            "level": risk["riskLevel"],
            "factors": risk["factors"],
            "lastUpdated": now_iso(),
        }}}
    )
    return {"success": True, "data": risk}


@router.post("/analyze-sentiment")
async def post_analyze_sentiment(
    data: SentimentRequest,
    auth: AuthContext = Depends(get_current_user),
    db=Depends(get_db)
):
    sentiment = analyze_sentiment(data.text)

    if data.customerId:
        await load_customer(db, data.customerId, auth, "update")
        await db.customers.update_one(
            {"id": data.customerId},
            {"$push": {"sentimentHistory": {
                "sentiment": sentiment,
                "source": data.source,
                "text": data.text,
                "date": now_iso(),
            }}}
        )
    return {"success": True, "data": {"sentiment": sentiment}}


@router.post("/chatbot")
async def post_chatbot(data: ChatbotRequest, auth: AuthContext = Depends(get_current_user)):
    return {"success": True, "data": {"response": generate_chatbot_response(data.message)}}


@router.post("/email-response")
async def post_email_response(data: EmailResponseRequest, auth: AuthContext = Depends(get_current_user)):
    return {"success": True, "data": {"response": generate_email_response(data.interaction)}}
