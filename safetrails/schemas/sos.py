"""SOS ticket schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, TypeAdapter

SOS_TYPE_PATTERN = "^(GENERAL|MEDICAL|SECURITY|ACCIDENT|NATURAL_DISASTER)$"


class EmergencyContact(BaseModel):
    """One entry of a traveler's emergency-contact list."""

    name: str = Field(..., min_length=1, max_length=120)
    phone: str = Field(..., pattern=r"^\+?[0-9][0-9 ()\-]{5,24}$")
    relation: str = Field(..., min_length=1, max_length=60)


contact_list_adapter = TypeAdapter(list[EmergencyContact])


class SosTrigger(BaseModel):
    location: str = Field(..., min_length=1, max_length=255)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    sos_type: str = Field(default="GENERAL", pattern=SOS_TYPE_PATTERN)
    description: str | None = Field(default=None, max_length=2000)
    trip_id: str | None = None
    emergency_contacts: list[EmergencyContact] = Field(default_factory=list)


class SosNote(BaseModel):
    """Optional free-text note attached to a status change."""

    note: str | None = Field(default=None, max_length=2000)


class SosCancel(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class ContactTestRequest(BaseModel):
    emergency_contacts: list[EmergencyContact] = Field(default_factory=list)


class MaskedContact(BaseModel):
    name: str
    relation: str
    phone: str


class ContactTestResponse(BaseModel):
    contacts_tested: int
    contacts: list[MaskedContact]


class SosTicketResponse(BaseModel):
    id: str
    user_id: str
    trip_id: str | None
    status: str
    sos_type: str
    description: str | None
    location: str
    latitude: float
    longitude: float
    contact_snapshot: list[EmergencyContact]
    resolved_by: str | None
    resolution_note: str | None
    dispatch_requested_at: datetime | None
    created_at: datetime
    updated_at: datetime
    resolved_at: datetime | None
    version: int

    model_config = {"from_attributes": True}


class SosTransitionResponse(BaseModel):
    ticket: SosTicketResponse
    applied: bool
    outcome: str  # ok | already_terminal


class SosStatsResponse(BaseModel):
    total: int
    by_status: dict[str, int]
    by_type: dict[str, int]
