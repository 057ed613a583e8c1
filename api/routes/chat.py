"""
Chat API Routes for the Career Funnel widget.
"""

import asyncio
import logging
import random
import time
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..middleware.metrics import record_chat_reply, record_lead_score
from ..services import Services, get_services
from lead_funnel.chat_advisor import apply_message

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Request / Response Models ─────────────────────────────────────

class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)
    conversation_id: Optional[str] = None
    lead_id: Optional[str] = None


class ChatResponse(BaseModel):
    response: str
    conversation_id: str
    flow: str
    query: str
    lead_id: Optional[str] = None
    lead_score: Optional[float] = None
    interests_added: List[str] = []
    goals_added: List[str] = []
    processing_time_ms: float
    timestamp: str


# ── Endpoints ─────────────────────────────────────────────────────

@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, services: Services = Depends(get_services)):
    """
    Answer a widget message.

    1. Pick the canned reply for the conversation's flow
    2. Pull interest and goal tags into the lead, if one is attached
    3. Wait out the simulated typing delay
    """
    start = time.time()
    session = services.chat.get_or_create(request.conversation_id, request.lead_id)
    reply = services.chat.handle(session, request.message)
    record_chat_reply(reply.flow.value)

    interests: List[str] = []
    goals: List[str] = []
    lead_score = None
    lead = services.leads.get(session.lead_id) if session.lead_id else None
    if lead is not None:
        interests, goals = apply_message(lead, request.message)
        if interests or goals:
            lead.score = services.scorer.score(lead.engagement, lead.qualification)
            lead.status = services.scorer.status_for(lead, lead.score)
            record_lead_score(lead.score)
        lead_score = round(lead.score, 2)

    services.analytics.log({
        "event": "chat.reply",
        "conversation_id": session.conversation_id,
        "lead_id": session.lead_id,
        "flow": reply.flow.value,
        "bucket": reply.bucket,
    })

    low, high = services.settings.typing_delay_range
    if high > 0:
        await asyncio.sleep(random.uniform(low, high))

    return ChatResponse(
        response=reply.text,
        conversation_id=session.conversation_id,
        flow=reply.flow.value,
        query=request.message,
        lead_id=session.lead_id,
        lead_score=lead_score,
        interests_added=interests,
        goals_added=goals,
        processing_time_ms=round((time.time() - start) * 1000, 2),
        timestamp=datetime.utcnow().isoformat(),
    )


@router.get("/chat/{conversation_id}")
async def chat_history(conversation_id: str, services: Services = Depends(get_services)):
    session = services.chat.get(conversation_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {
        "conversation_id": session.conversation_id,
        "lead_id": session.lead_id,
        "flow": session.flow.value,
        "messages": [m.to_dict() for m in session.messages],
        "turn_count": sum(1 for m in session.messages if m.role == "user"),
    }
