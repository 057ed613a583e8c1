"""
Routing rule management API for the Career Funnel.

Conditions are code and cannot be changed over HTTP; priority, activation,
action parameters and delay can.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..services import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


class RuleUpdate(BaseModel):
    name: Optional[str] = None
    priority: Optional[int] = None
    active: Optional[bool] = None
    parameters: Optional[Dict[str, Any]] = None
    delay_ms: Optional[int] = Field(default=None, ge=0)


@router.get("/rules")
async def list_rules(include_inactive: bool = False, services: Services = Depends(get_services)):
    table = services.router.rules
    rules = table.all_rules() if include_inactive else table.active_rules()
    return {"version": table.version, "rules": [r.to_dict() for r in rules]}


@router.get("/rules/performance")
async def rule_performance(services: Services = Depends(get_services)):
    return services.router.rule_performance()


@router.patch("/rules/{rule_id}")
async def update_rule(rule_id: str, update: RuleUpdate, services: Services = Depends(get_services)):
    rule = services.router.rules.get(rule_id)
    if rule is None:
        raise HTTPException(status_code=404, detail="Rule not found")

    changes: Dict[str, Any] = {}
    if update.name is not None:
        changes["name"] = update.name
    if update.priority is not None:
        changes["priority"] = update.priority
    if update.active is not None:
        changes["active"] = update.active
    if update.parameters is not None or update.delay_ms is not None:
        parameters = {**rule.action.parameters, **(update.parameters or {})}
        delay_ms = update.delay_ms if update.delay_ms is not None else rule.action.delay_ms
        changes["action"] = replace(rule.action, parameters=parameters, delay_ms=delay_ms)

    if changes:
        services.router.update_rule(rule_id, **changes)
    return services.router.rules.get(rule_id).to_dict()


@router.post("/rules/{rule_id}/deactivate")
async def deactivate_rule(rule_id: str, services: Services = Depends(get_services)):
    if not services.router.deactivate_rule(rule_id):
        raise HTTPException(status_code=404, detail="Rule not found")
    return {"message": "Rule deactivated", "rule_id": rule_id}
