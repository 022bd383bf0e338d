"""SOS lifecycle tests."""

import pytest
from conftest import auth

from safetrails.core.errors import ForbiddenError, NotFoundError, StateConflictError, ValidationError
from safetrails.core.security import ROLE_OPERATOR, Actor
from safetrails.services.sos_service import mask_phone

ALICE = Actor(user_id="alice")
BOB = Actor(user_id="bob")
DESK = Actor(user_id="op-1", role=ROLE_OPERATOR)

CONTACTS = [{"name": "Mum", "phone": "+44 7700 900123", "relation": "parent"}]


def raise_sos(sos, trip_id=None, owner="alice", contacts=CONTACTS, **kwargs):
    return sos.trigger(
        owner,
        location="Main square",
        latitude=12.97,
        longitude=77.59,
        contacts=contacts,
        trip_id=trip_id,
        **kwargs,
    )


def test_sos_puts_active_trip_into_emergency_and_resolve_clears_it(sos, trips, make_trip):
    trip = make_trip(start=True)

    ticket = raise_sos(sos, trip.id)

    assert ticket.status == "NEW"
    assert ticket.dispatch_requested_at is not None
    assert trips.get(trip.id, "alice").status == "EMERGENCY"

    result = sos.resolve(ticket.id, DESK, note="Tourist police on site")

    assert result.applied
    assert result.ticket.status == "RESOLVED"
    assert result.ticket.resolved_by == "op-1"
    assert trips.get(trip.id, "alice").status == "ACTIVE"


def test_emergency_clears_only_when_every_ticket_is_closed(sos, trips, make_trip):
    trip = make_trip(start=True)
    first = raise_sos(sos, trip.id)
    second = raise_sos(sos, trip.id)

    sos.resolve(first.id, DESK)
    assert trips.get(trip.id, "alice").status == "EMERGENCY"

    sos.mark_false_alarm(second.id, ALICE)
    assert trips.get(trip.id, "alice").status == "ACTIVE"


def test_ticket_raised_while_emergency_is_clearing_keeps_the_trip_in_emergency(sos, trips, make_trip, monkeypatch):
    trip = make_trip(start=True)
    first = raise_sos(sos, trip.id)
    count_open = sos.open_ticket_count
    late = []

    def count_then_raise(trip_id):
        seen = count_open(trip_id)
        if not late:
            late.append(raise_sos(sos, trip_id))
        return seen

    monkeypatch.setattr(sos, "open_ticket_count", count_then_raise)

    result = sos.resolve(first.id, DESK)

    assert result.applied
    assert late[0].status == "NEW"
    assert trips.get(trip.id, "alice").status == "EMERGENCY"
    assert count_open(trip.id) == 1


def test_clear_emergency_refuses_while_a_ticket_is_open(sos, trips, make_trip):
    trip = make_trip(start=True)
    raise_sos(sos, trip.id)
    emergency = trips.get(trip.id, "alice")

    with pytest.raises(StateConflictError):
        trips.clear_emergency(emergency)
    assert trips.get(trip.id, "alice").version == emergency.version


def test_sos_on_planned_trip_only_references_it(sos, trips, make_trip):
    trip = make_trip()
    ticket = raise_sos(sos, trip.id)
    assert ticket.trip_id == trip.id
    assert trips.get(trip.id, "alice").status == "PLANNED"


def test_sos_for_someone_elses_trip_is_not_found(sos, make_trip):
    trip = make_trip(owner="bob", start=True)
    with pytest.raises(NotFoundError):
        raise_sos(sos, trip.id)


def test_trigger_validates_input(sos):
    with pytest.raises(ValidationError) as exc:
        sos.trigger("alice", location=" ", latitude=10.0, longitude=10.0)
    assert "location" in exc.value.fields

    with pytest.raises(ValidationError):
        sos.trigger("alice", location="x", latitude=91.0, longitude=10.0)

    with pytest.raises(ValidationError) as exc:
        raise_sos(sos, contacts=[{"name": "Mum", "phone": "call me", "relation": "parent"}])
    assert any(key.startswith("emergency_contacts") for key in exc.value.fields)


def test_contact_snapshot_is_frozen_at_trigger_time(sos):
    contacts = [dict(c) for c in CONTACTS]
    ticket = raise_sos(sos, contacts=contacts)
    contacts[0]["phone"] = "+1 555 0000"

    stored = sos.get(ticket.id, ALICE)
    assert stored.contact_snapshot == CONTACTS


def test_terminal_tickets_ignore_further_transitions(sos):
    ticket = raise_sos(sos)
    sos.resolve(ticket.id, DESK, note="done")

    again = sos.resolve(ticket.id, ALICE, note="me too")
    acknowledged = sos.acknowledge(ticket.id, DESK)

    assert not again.applied
    assert again.outcome == "already_terminal"
    assert again.ticket.resolution_note == "done"
    assert acknowledged.outcome == "already_terminal"


def test_operator_steps_follow_the_workflow(sos):
    ticket = raise_sos(sos)

    with pytest.raises(ForbiddenError):
        sos.acknowledge(ticket.id, ALICE)
    with pytest.raises(StateConflictError):
        sos.begin_work(ticket.id, DESK)

    assert sos.acknowledge(ticket.id, DESK).ticket.status == "ACKNOWLEDGED"
    assert sos.begin_work(ticket.id, DESK).ticket.status == "IN_PROGRESS"
    with pytest.raises(StateConflictError):
        sos.acknowledge(ticket.id, DESK)
    assert sos.resolve(ticket.id, DESK).ticket.status == "RESOLVED"


def test_resolve_with_stale_version_conflicts(sos):
    ticket = raise_sos(sos)
    sos.acknowledge(ticket.id, DESK)
    with pytest.raises(StateConflictError):
        sos.resolve(ticket.id, DESK, expected_version=ticket.version)


def test_traveler_can_cancel_only_new_tickets(sos, trips, make_trip):
    trip = make_trip(start=True)
    ticket = raise_sos(sos, trip.id)

    with pytest.raises(NotFoundError):
        sos.cancel(ticket.id, BOB)

    result = sos.cancel(ticket.id, ALICE, reason="pocket dial")
    assert result.ticket.status == "FALSE_ALARM"
    assert result.ticket.resolution_note == "Cancellation reason: pocket dial"
    assert trips.get(trip.id, "alice").status == "ACTIVE"

    other = raise_sos(sos)
    sos.acknowledge(other.id, DESK)
    with pytest.raises(StateConflictError):
        sos.cancel(other.id, ALICE)


def test_tickets_are_private_to_their_owner(sos):
    ticket = raise_sos(sos)
    with pytest.raises(NotFoundError):
        sos.get(ticket.id, BOB)
    assert sos.get(ticket.id, DESK).id == ticket.id


def test_stats_for_owner(sos):
    raise_sos(sos)
    raise_sos(sos, sos_type="MEDICAL")
    resolved = raise_sos(sos)
    sos.resolve(resolved.id, DESK)

    stats = sos.stats_for_owner("alice")

    assert stats["total"] == 3
    assert stats["by_status"]["NEW"] == 2
    assert stats["by_status"]["RESOLVED"] == 1
    assert stats["by_type"] == {"GENERAL": 2, "MEDICAL": 1}


def test_mask_phone_keeps_last_four_digits():
    assert mask_phone("+44 7700 900123") == "***-***-0123"


def test_test_contacts_requires_at_least_one(sos):
    with pytest.raises(ValidationError):
        sos.test_contacts([])
    masked = sos.test_contacts(CONTACTS)
    assert masked == [{"name": "Mum", "relation": "parent", "phone": "***-***-0123"}]


# ---------- HTTP ----------


def test_trigger_api_dispatches_notification(client, dispatcher):
    r = client.post(
        "/api/sos",
        headers=auth("alice"),
        json={
            "location": "Beach road",
            "latitude": 15.5,
            "longitude": 73.8,
            "sos_type": "MEDICAL",
            "emergency_contacts": CONTACTS,
        },
    )
    assert r.status_code == 201
    body = r.json()
    assert body["status"] == "NEW"
    assert body["contact_snapshot"] == CONTACTS
    assert dispatcher.dispatched == [body["id"]]

    mine = client.get("/api/sos/me", headers=auth("alice")).json()
    assert [t["id"] for t in mine] == [body["id"]]
    assert client.get(f"/api/sos/{body['id']}", headers=auth("bob")).status_code == 404


def test_operator_queue_requires_operator_role(client):
    assert client.get("/api/operator/sos", headers=auth("alice")).status_code == 403
    assert client.get("/api/operator/sos", headers=auth("x", "admin")).status_code == 403
    assert client.get("/api/operator/sos", headers=auth("op-1", "operator")).status_code == 200


def test_operator_api_transitions(client):
    ticket_id = client.post(
        "/api/sos",
        headers=auth("alice"),
        json={"location": "Fort", "latitude": 1.0, "longitude": 1.0},
    ).json()["id"]
    desk = auth("op-1", "operator")

    r = client.post(f"/api/operator/sos/{ticket_id}/acknowledge", headers=desk)
    assert r.status_code == 200
    assert r.json()["outcome"] == "ok"
    assert r.json()["ticket"]["status"] == "ACKNOWLEDGED"

    r = client.post(f"/api/sos/{ticket_id}/cancel", headers=auth("alice"))
    assert r.status_code == 409

    r = client.post(f"/api/operator/sos/{ticket_id}/resolve", headers=desk, json={"note": "Found safe"})
    assert r.json()["ticket"]["resolution_note"] == "Found safe"

    r = client.post(f"/api/sos/{ticket_id}/resolve", headers=auth("alice"))
    assert r.status_code == 200
    assert r.json()["applied"] is False
    assert r.json()["outcome"] == "already_terminal"


def test_test_contacts_api_masks_numbers(client):
    r = client.post("/api/sos/test-contacts", headers=auth("alice"), json={"emergency_contacts": CONTACTS})
    assert r.status_code == 200
    assert r.json() == {
        "contacts_tested": 1,
        "contacts": [{"name": "Mum", "relation": "parent", "phone": "***-***-0123"}],
    }

    r = client.post("/api/sos/test-contacts", headers=auth("alice"), json={"emergency_contacts": []})
    assert r.status_code == 422
    assert "emergency_contacts" in r.json()["fields"]
