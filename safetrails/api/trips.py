"""Trips API."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Body, Depends, Query, status

from safetrails.core.deps import get_current_actor, get_location_sampler, get_trip_manager
from safetrails.core.security import Actor
from safetrails.schemas.trip import (
    Coordinates,
    LocationReport,
    LocationSampleResponse,
    TripCancel,
    TripCreate,
    TripResponse,
    TripStatsResponse,
)
from safetrails.services.location_service import LocationSampler
from safetrails.services.trip_service import TripLifecycleManager

router = APIRouter(prefix="/trips", tags=["trips"])

TripManager = Annotated[TripLifecycleManager, Depends(get_trip_manager)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]


@router.post("", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
def create_trip(data: TripCreate, trips: TripManager, actor: CurrentActor):
    """Plan a new trip."""
    return trips.create(actor.user_id, data)


@router.get("", response_model=list[TripResponse])
def list_trips(
    trips: TripManager,
    actor: CurrentActor,
    trip_status: str | None = Query(default=None, alias="status", pattern="^(PLANNED|ACTIVE|COMPLETED|CANCELLED|EMERGENCY)$"),
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
):
    """List current user's trips, newest first."""
    return trips.list_for_owner(actor.user_id, trip_status, limit, offset)


@router.get("/{trip_id}", response_model=TripResponse)
def get_trip(trip_id: str, trips: TripManager, actor: CurrentActor):
    return trips.get(trip_id, actor.user_id)


@router.get("/{trip_id}/stats", response_model=TripStatsResponse)
def trip_stats(trip_id: str, trips: TripManager, actor: CurrentActor):
    """Duration, straight-line distance and counters for a trip."""
    return trips.stats(trip_id, actor.user_id)


@router.post("/{trip_id}/start", response_model=TripResponse)
def start_trip(trip_id: str, data: Coordinates, trips: TripManager, actor: CurrentActor):
    return trips.start(trip_id, actor.user_id, data.latitude, data.longitude)


@router.post("/{trip_id}/end", response_model=TripResponse)
def end_trip(trip_id: str, data: Coordinates, trips: TripManager, actor: CurrentActor):
    return trips.end(trip_id, actor.user_id, data.latitude, data.longitude)


@router.post("/{trip_id}/cancel", response_model=TripResponse)
def cancel_trip(
    trip_id: str,
    trips: TripManager,
    actor: CurrentActor,
    data: TripCancel | None = Body(default=None),
):
    reason = data.reason if data else None
    return trips.cancel(trip_id, actor.user_id, reason)


@router.post("/{trip_id}/location", response_model=LocationSampleResponse, status_code=status.HTTP_201_CREATED)
def report_location(
    trip_id: str,
    data: LocationReport,
    sampler: Annotated[LocationSampler, Depends(get_location_sampler)],
    actor: CurrentActor,
):
    """Record a position report for an ACTIVE trip."""
    return sampler.report(
        trip_id,
        actor.user_id,
        data.latitude,
        data.longitude,
        timestamp=data.timestamp,
        accuracy=data.accuracy,
        speed=data.speed,
        heading=data.heading,
        altitude=data.altitude,
    )
