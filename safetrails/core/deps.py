"""FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from safetrails.core.clock import Clock, system_clock
from safetrails.core.config import settings
from safetrails.core.security import ROLE_OPERATOR, ROLE_TRAVELER, Actor, decode_access_token
from safetrails.db.session import SessionLocal
from safetrails.db.store import EntityStore
from safetrails.services.location_service import LocationSampler
from safetrails.services.notifications import NotificationDispatcher, build_dispatcher
from safetrails.services.sos_service import SosLifecycleManager
from safetrails.services.trip_service import TripLifecycleManager

security = HTTPBearer(auto_error=False)


@lru_cache
def get_store() -> EntityStore:
    return EntityStore(SessionLocal)


def get_clock() -> Clock:
    return system_clock


@lru_cache
def get_dispatcher() -> NotificationDispatcher:
    return build_dispatcher(settings)


def get_trip_manager(
    store: Annotated[EntityStore, Depends(get_store)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> TripLifecycleManager:
    return TripLifecycleManager(store, clock)


def get_sos_manager(
    store: Annotated[EntityStore, Depends(get_store)],
    clock: Annotated[Clock, Depends(get_clock)],
    trips: Annotated[TripLifecycleManager, Depends(get_trip_manager)],
) -> SosLifecycleManager:
    return SosLifecycleManager(store, clock, trips)


def get_location_sampler(
    store: Annotated[EntityStore, Depends(get_store)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> LocationSampler:
    return LocationSampler(store, clock)


def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Actor:
    """Require an identity-provider token. Raises 401 if not authenticated."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = decode_access_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    role = payload.get("role") or ROLE_TRAVELER
    if role not in (ROLE_TRAVELER, ROLE_OPERATOR):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Unsupported role {role!r}",
        )
    return Actor(user_id=str(payload["sub"]), role=role)


def require_operator(current_actor: Annotated[Actor, Depends(get_current_actor)]) -> Actor:
    """Require the caller to be an SOS desk operator."""
    if not current_actor.is_operator:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only operators can manage the SOS queue",
        )
    return current_actor
