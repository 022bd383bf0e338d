"""SOS API for travelers."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query, status

from safetrails.core.deps import get_current_actor, get_dispatcher, get_sos_manager
from safetrails.core.security import Actor
from safetrails.schemas.sos import (
    ContactTestRequest,
    ContactTestResponse,
    SosCancel,
    SosNote,
    SosStatsResponse,
    SosTicketResponse,
    SosTransitionResponse,
    SosTrigger,
)
from safetrails.services.notifications import NotificationDispatcher
from safetrails.services.sos_service import SosLifecycleManager, SosTransitionResult

router = APIRouter(prefix="/sos", tags=["sos"])

SosManager = Annotated[SosLifecycleManager, Depends(get_sos_manager)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]

STATUS_PATTERN = "^(NEW|ACKNOWLEDGED|IN_PROGRESS|RESOLVED|FALSE_ALARM)$"


def transition_response(result: SosTransitionResult) -> SosTransitionResponse:
    return SosTransitionResponse(
        ticket=SosTicketResponse.model_validate(result.ticket),
        applied=result.applied,
        outcome=result.outcome,
    )


@router.post("", response_model=SosTicketResponse, status_code=status.HTTP_201_CREATED)
def trigger_sos(
    data: SosTrigger,
    background_tasks: BackgroundTasks,
    sos: SosManager,
    dispatcher: Annotated[NotificationDispatcher, Depends(get_dispatcher)],
    actor: CurrentActor,
):
    """Raise an SOS. Contacts are notified after the ticket is stored."""
    ticket = sos.trigger(
        actor.user_id,
        location=data.location,
        latitude=data.latitude,
        longitude=data.longitude,
        contacts=data.emergency_contacts,
        sos_type=data.sos_type,
        description=data.description,
        trip_id=data.trip_id,
    )
    background_tasks.add_task(dispatcher.dispatch, ticket)
    return ticket


@router.get("/me", response_model=list[SosTicketResponse])
def my_tickets(
    sos: SosManager,
    actor: CurrentActor,
    ticket_status: str | None = Query(default=None, alias="status", pattern=STATUS_PATTERN),
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
):
    return sos.list_for_owner(actor.user_id, ticket_status, limit, offset)


@router.get("/stats", response_model=SosStatsResponse)
def my_stats(sos: SosManager, actor: CurrentActor):
    """Counts of the caller's tickets by status and type."""
    return sos.stats_for_owner(actor.user_id)


@router.post("/test-contacts", response_model=ContactTestResponse)
def test_contacts(data: ContactTestRequest, actor: CurrentActor):
    """Validate an emergency-contact list without alerting anyone."""
    masked = SosLifecycleManager.test_contacts(data.emergency_contacts)
    return {"contacts_tested": len(masked), "contacts": masked}


@router.get("/{ticket_id}", response_model=SosTicketResponse)
def get_ticket(ticket_id: str, sos: SosManager, actor: CurrentActor):
    return sos.get(ticket_id, actor)


@router.post("/{ticket_id}/resolve", response_model=SosTransitionResponse)
def resolve_ticket(
    ticket_id: str,
    sos: SosManager,
    actor: CurrentActor,
    data: SosNote | None = Body(default=None),
):
    return transition_response(sos.resolve(ticket_id, actor, note=data.note if data else None))


@router.post("/{ticket_id}/false-alarm", response_model=SosTransitionResponse)
def false_alarm(
    ticket_id: str,
    sos: SosManager,
    actor: CurrentActor,
    data: SosNote | None = Body(default=None),
):
    return transition_response(sos.mark_false_alarm(ticket_id, actor, note=data.note if data else None))


@router.post("/{ticket_id}/cancel", response_model=SosTransitionResponse)
def cancel_ticket(
    ticket_id: str,
    sos: SosManager,
    actor: CurrentActor,
    data: SosCancel | None = Body(default=None),
):
    """Withdraw an accidental SOS while it is still NEW."""
    return transition_response(sos.cancel(ticket_id, actor, reason=data.reason if data else None))
