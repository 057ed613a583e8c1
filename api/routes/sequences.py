"""
Email sequence API routes for the Career Funnel.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..services import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/sequences")
async def list_sequences(services: Services = Depends(get_services)):
    return {"sequences": [s.to_dict() for s in services.email_engine.list_sequences()]}


@router.get("/sequences/{sequence_id}/stats")
async def sequence_stats(sequence_id: str, services: Services = Depends(get_services)):
    if services.email_engine.get_sequence(sequence_id) is None:
        raise HTTPException(status_code=404, detail="Sequence not found")
    return {"sequence_id": sequence_id, **services.email_engine.sequence_stats(sequence_id)}


@router.get("/sequences/{sequence_id}/preview")
async def preview_sequence(sequence_id: str, lead_id: str, services: Services = Depends(get_services)):
    """Render every email of a sequence for a lead, without sending anything."""
    sequence = services.email_engine.get_sequence(sequence_id)
    if sequence is None:
        raise HTTPException(status_code=404, detail="Sequence not found")
    lead = services.leads.get(lead_id)
    if lead is None:
        raise HTTPException(status_code=404, detail="Lead not found")

    emails = []
    for template in sequence.templates:
        email = services.email_engine.personalize(template, lead)
        emails.append({**email.to_dict(), "would_send": email.conditions_met(lead) and bool(lead.email)})
    return {"sequence_id": sequence.id, "lead_id": lead.id, "emails": emails}


@router.get("/leads/{lead_id}/sequence")
async def selected_sequence(lead_id: str, services: Services = Depends(get_services)):
    """The sequence the selector would pick for a lead right now."""
    lead = services.leads.get(lead_id)
    if lead is None:
        raise HTTPException(status_code=404, detail="Lead not found")
    sequence = services.email_engine.select_sequence(lead)
    return {"lead_id": lead.id, "sequence_id": sequence.id if sequence else None}
