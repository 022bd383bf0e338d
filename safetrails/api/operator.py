"""SOS desk endpoints. Operator role required."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Body, Depends, Query

from safetrails.api.sos import STATUS_PATTERN, transition_response
from safetrails.core.deps import get_sos_manager, require_operator
from safetrails.core.security import Actor
from safetrails.schemas.sos import SOS_TYPE_PATTERN, SosNote, SosTicketResponse, SosTransitionResponse
from safetrails.services.sos_service import SosLifecycleManager

router = APIRouter(prefix="/operator/sos", tags=["operator"])

SosManager = Annotated[SosLifecycleManager, Depends(get_sos_manager)]
Operator = Annotated[Actor, Depends(require_operator)]


@router.get("", response_model=list[SosTicketResponse])
def list_tickets(
    sos: SosManager,
    operator: Operator,
    ticket_status: str | None = Query(default=None, alias="status", pattern=STATUS_PATTERN),
    sos_type: str | None = Query(default=None, pattern=SOS_TYPE_PATTERN),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
):
    """The SOS queue across all travelers, newest first."""
    return sos.list_all(ticket_status, sos_type, limit, offset)


@router.post("/{ticket_id}/acknowledge", response_model=SosTransitionResponse)
def acknowledge(ticket_id: str, sos: SosManager, operator: Operator):
    return transition_response(sos.acknowledge(ticket_id, operator))


@router.post("/{ticket_id}/begin-work", response_model=SosTransitionResponse)
def begin_work(ticket_id: str, sos: SosManager, operator: Operator):
    return transition_response(sos.begin_work(ticket_id, operator))


@router.post("/{ticket_id}/resolve", response_model=SosTransitionResponse)
def resolve(
    ticket_id: str,
    sos: SosManager,
    operator: Operator,
    data: SosNote | None = Body(default=None),
):
    return transition_response(sos.resolve(ticket_id, operator, note=data.note if data else None))


@router.post("/{ticket_id}/false-alarm", response_model=SosTransitionResponse)
def false_alarm(
    ticket_id: str,
    sos: SosManager,
    operator: Operator,
    data: SosNote | None = Body(default=None),
):
    return transition_response(sos.mark_false_alarm(ticket_id, operator, note=data.note if data else None))
