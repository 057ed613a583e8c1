"""
Lead Management API Routes for the Career Funnel.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ..middleware.metrics import record_lead_score, record_routing_action
from ..services import Services, get_services
from lead_funnel.models import (
    ContentEngagement,
    Lead,
    LeadStatus,
    QualificationData,
    UserAction,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# Models
class TerminalStatus(str, Enum):
    """Statuses set by business events rather than the scorer."""
    CONVERTED = "converted"
    LOST = "lost"


class LeadCreate(BaseModel):
    """Lead creation request. Every field is optional: visitors start anonymous."""
    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    source: str = "website"
    interests: List[str] = []


class LeadUpdate(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[TerminalStatus] = None
    interests: List[str] = []


class ContentViewRequest(BaseModel):
    content_id: str = Field(..., min_length=1)
    content_type: str = "blog"
    title: str = ""
    time_spent: float = Field(default=0, ge=0)
    completion: float = Field(default=0, ge=0, le=100)
    engagement_score: float = Field(default=0, ge=0, le=100)
    view_date: Optional[datetime] = None


class ActionRequest(BaseModel):
    type: str
    target: str
    value: Optional[str] = None
    timestamp: Optional[datetime] = None


class SessionRequest(BaseModel):
    time_spent: float = Field(default=0, ge=0)


class QualificationRequest(BaseModel):
    experience: Optional[str] = None
    current_role: Optional[str] = None
    goals: List[str] = []
    timeline: Optional[str] = None
    budget: Optional[str] = None
    challenges: List[str] = []


# Helpers
def _get_lead_or_404(services: Services, lead_id: str) -> Lead:
    lead = services.leads.get(lead_id)
    if lead is None:
        raise HTTPException(status_code=404, detail="Lead not found")
    return lead


def _rescore(services: Services, lead: Lead) -> Lead:
    """Recompute score and status after an engagement update."""
    now = datetime.utcnow()
    lead.score = services.scorer.score(lead.engagement, lead.qualification, now)
    lead.status = services.scorer.status_for(lead, lead.score)
    lead.updated_at = now
    record_lead_score(lead.score)
    return lead


# Endpoints
@router.post("/leads")
async def create_lead(request: LeadCreate, services: Services = Depends(get_services)):
    """Create a lead, anonymous (score 0, cold) unless contact info is given."""
    lead = Lead.anonymous(source=request.source)
    lead.email = request.email
    lead.name = request.name
    lead.phone = request.phone
    lead.add_interests(request.interests)
    services.leads.save(lead)

    logger.info(f"Lead created: {lead.id} (source {lead.source})")
    return lead.to_dict()


@router.get("/leads")
async def list_leads(
    status: Optional[LeadStatus] = None,
    min_score: Optional[float] = Query(None, ge=0, le=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    services: Services = Depends(get_services),
):
    """List leads with filtering and pagination, highest score first."""
    filtered = services.leads.all()

    if status:
        filtered = [l for l in filtered if l.status == status]

    if min_score is not None:
        filtered = [l for l in filtered if l.score >= min_score]

    filtered.sort(key=lambda l: l.score, reverse=True)

    total = len(filtered)
    start = (page - 1) * page_size
    end = start + page_size

    return {
        "leads": [l.to_dict() for l in filtered[start:end]],
        "total": total,
        "page": page,
        "page_size": page_size,
        "has_next": end < total,
    }


@router.get("/leads/stats")
async def lead_stats(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Funnel metrics across all known leads."""
    return services.analytics.funnel_metrics(services.leads.all())


@router.get("/leads/{lead_id}")
async def get_lead(lead_id: str, services: Services = Depends(get_services)):
    return _get_lead_or_404(services, lead_id).to_dict()


@router.patch("/leads/{lead_id}")
async def update_lead(lead_id: str, update: LeadUpdate, services: Services = Depends(get_services)):
    """Update contact details, or record a conversion/loss."""
    lead = _get_lead_or_404(services, lead_id)

    if update.email:
        lead.email = update.email
    if update.name:
        lead.name = update.name
    if update.phone:
        lead.phone = update.phone
    if update.interests:
        lead.add_interests(update.interests)
    if update.status:
        lead.status = LeadStatus(update.status.value)
        services.analytics.log({"event": f"lead.{update.status.value}", "lead_id": lead.id})

    lead.updated_at = datetime.utcnow()
    logger.info(f"Lead updated: {lead_id}")
    return lead.to_dict()


@router.post("/leads/{lead_id}/content")
async def record_content(lead_id: str, request: ContentViewRequest, services: Services = Depends(get_services)):
    lead = _get_lead_or_404(services, lead_id)
    lead.engagement.record_content(ContentEngagement(
        content_id=request.content_id,
        content_type=request.content_type,
        title=request.title,
        time_spent=request.time_spent,
        completion=request.completion,
        engagement_score=request.engagement_score,
        view_date=request.view_date or datetime.utcnow(),
    ))
    return _rescore(services, lead).to_dict()


@router.post("/leads/{lead_id}/actions")
async def record_action(lead_id: str, request: ActionRequest, services: Services = Depends(get_services)):
    lead = _get_lead_or_404(services, lead_id)
    lead.engagement.record_action(UserAction(
        type=request.type,
        target=request.target,
        value=request.value,
        timestamp=request.timestamp or datetime.utcnow(),
    ))
    return _rescore(services, lead).to_dict()


@router.post("/leads/{lead_id}/sessions")
async def record_session(lead_id: str, request: SessionRequest, services: Services = Depends(get_services)):
    lead = _get_lead_or_404(services, lead_id)
    lead.engagement.start_session()
    if request.time_spent:
        lead.engagement.add_time(request.time_spent)
    return _rescore(services, lead).to_dict()


@router.put("/leads/{lead_id}/qualification")
async def set_qualification(lead_id: str, request: QualificationRequest, services: Services = Depends(get_services)):
    """Store self-reported survey answers. Unknown categories fall back to defaults."""
    lead = _get_lead_or_404(services, lead_id)
    lead.qualification = QualificationData(
        experience=request.experience or "unknown",
        current_role=request.current_role,
        goals=list(dict.fromkeys(request.goals)),
        timeline=request.timeline or "unknown",
        budget=request.budget or "unknown",
        challenges=request.challenges,
        ai_generated=False,
    )
    return _rescore(services, lead).to_dict()


@router.post("/leads/{lead_id}/route")
async def route_lead(lead_id: str, services: Services = Depends(get_services)):
    """Rescore the lead and run it through the routing rules."""
    lead = _get_lead_or_404(services, lead_id)
    result = services.router.route(lead)
    services.leads.save(result.updated_lead)

    record_lead_score(result.updated_lead.score)
    for action in result.triggered_actions:
        record_routing_action(action.type.value)

    return result.to_dict()


@router.get("/leads/{lead_id}/recommendations")
async def lead_recommendations(lead_id: str, services: Services = Depends(get_services)):
    lead = _get_lead_or_404(services, lead_id)
    assessment = services.scorer.assess(lead)
    return assessment.to_dict()


@router.get("/leads/{lead_id}/score")
async def lead_score_breakdown(lead_id: str, services: Services = Depends(get_services)):
    lead = _get_lead_or_404(services, lead_id)
    breakdown = services.scorer.breakdown(lead.engagement, lead.qualification)
    return {"lead_id": lead.id, **breakdown.to_dict(), "status": services.scorer.status_for(lead, breakdown.total).value}
