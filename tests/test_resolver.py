"""Tests for the conflict resolution workflow."""

from dataclasses import replace
from datetime import date, timedelta

import pytest
import pytest_asyncio

from conftest import at
from core.errors import (
    AmbiguousPromotion,
    AuthExpired,
    PartialResolution,
    ProviderUnavailable,
    ResolutionStateError,
    Side,
    StoreWriteFailed,
)
from models.events import ConflictCandidate, ExternalEvent
from services.reconciler import reconcile
from services.resolver import ConflictResolver, ResolutionState

MONDAY = date(2025, 3, 10)


@pytest_asyncio.fixture
async def conflict(session, provider, store, meeting_event):
    """Provider meeting and an unlinked booking at the same time, session signed in."""
    provider.events[meeting_event.id] = meeting_event
    booking = await store.insert_booking(at(2025, 3, 10, 11), new_patient_name="מיכל")
    assert await session.refresh(force=True)
    await session.fetch_events("2025-03")
    return ConflictCandidate(MONDAY, "11:00", meeting_event, booking)


async def _reconcile(session, store):
    result = await session.fetch_events("2025-03")
    bookings = await store.list_bookings(at(2025, 3, 9, 0), at(2025, 3, 16, 0))
    return reconcile(MONDAY, result.events, bookings)


@pytest.mark.asyncio
async def test_retime_external_meeting_uses_canonical_duration(conflict, session, provider, store):
    resolver = ConflictResolver(conflict, session, store)

    outcome = await resolver.retime(Side.EXTERNAL, "14:00")

    moved = provider.events["evt-1"]
    assert moved.start == at(2025, 3, 10, 14)
    assert moved.end - moved.start == timedelta(minutes=90)
    assert moved.summary == "פגישה עם רונית"
    assert outcome.state == ResolutionState.RETIMED
    assert resolver.state == ResolutionState.RETIMED

    booking = await store.get_booking(conflict.booking.id)
    assert booking.scheduled_at == at(2025, 3, 10, 11)

    _, conflicts = await _reconcile(session, store)
    assert conflicts == []


@pytest.mark.asyncio
async def test_retime_external_keeps_duration_of_other_events(session, provider, store):
    event = ExternalEvent("evt-2", at(2025, 3, 10, 11), at(2025, 3, 10, 11, 45), "ישיבת צוות")
    provider.events[event.id] = event
    booking = await store.insert_booking(at(2025, 3, 10, 11), new_patient_name="מיכל")
    await session.refresh(force=True)
    resolver = ConflictResolver(ConflictCandidate(MONDAY, "11:00", event, booking), session, store)

    await resolver.retime(Side.EXTERNAL, 15)

    moved = provider.events["evt-2"]
    assert moved.start == at(2025, 3, 10, 15)
    assert moved.end == at(2025, 3, 10, 15, 45)


@pytest.mark.asyncio
async def test_retime_internal(conflict, session, provider, store):
    resolver = ConflictResolver(conflict, session, store)

    await resolver.retime(Side.INTERNAL, "16:00")

    booking = await store.get_booking(conflict.booking.id)
    assert booking.scheduled_at == at(2025, 3, 10, 16)
    assert provider.events["evt-1"].start == at(2025, 3, 10, 11)


@pytest.mark.asyncio
@pytest.mark.parametrize("hour", ["07:00", 24, "noon"])
async def test_retime_rejects_bad_hours(conflict, session, store, hour):
    resolver = ConflictResolver(conflict, session, store)

    with pytest.raises(ValueError):
        await resolver.retime(Side.INTERNAL, hour)
    assert resolver.state == ResolutionState.PRESENTED


@pytest.mark.asyncio
async def test_retime_failure_leaves_conflict_presented(conflict, session, provider, store):
    provider.fail("update_event", AuthExpired("expired"))
    resolver = ConflictResolver(conflict, session, store)

    with pytest.raises(AuthExpired) as exc_info:
        await resolver.retime(Side.EXTERNAL, "14:00")

    assert exc_info.value.recovered
    assert resolver.state == ResolutionState.PRESENTED
    assert provider.events["evt-1"].start == at(2025, 3, 10, 11)


@pytest.mark.asyncio
async def test_delete_each_side(conflict, session, provider, store):
    await ConflictResolver(conflict, session, store).delete(Side.EXTERNAL)
    assert "evt-1" not in provider.events

    await ConflictResolver(conflict, session, store).delete(Side.INTERNAL)
    assert await store.get_booking(conflict.booking.id) is None


@pytest.mark.asyncio
async def test_delete_already_gone_counts_as_deleted(conflict, session, provider, store):
    provider.events.pop("evt-1")

    outcome = await ConflictResolver(conflict, session, store).delete(Side.EXTERNAL)

    assert outcome.state == ResolutionState.DELETED
    assert outcome.message == "already gone"


@pytest.mark.asyncio
async def test_promote_external_creates_patient_and_linked_booking(conflict, session, store):
    resolver = ConflictResolver(conflict, session, store)

    outcome = await resolver.promote(Side.EXTERNAL)

    assert resolver.state == ResolutionState.PROMOTED
    created = await store.get_booking(outcome.record_id)
    assert created.external_event_id == "evt-1"
    assert created.patient_name == "רונית"
    assert created.scheduled_at == at(2025, 3, 10, 11)
    assert created.meeting_type == "In-Person"
    assert [p.name for p in await store.find_patients("רונית")] == ["רונית"]

    grid, conflicts = await _reconcile(session, store)
    # the promoted booking is linked, the original one still clashes
    assert [c.booking.id for c in conflicts] == [conflict.booking.id]


@pytest.mark.asyncio
async def test_promote_external_uses_single_match(conflict, session, store):
    patient = await store.create_patient("רונית לוי")
    event = replace(conflict.external_event, description="פגישה בזום")
    candidate = replace(conflict, external_event=event)

    outcome = await ConflictResolver(candidate, session, store).promote(Side.EXTERNAL)

    created = await store.get_booking(outcome.record_id)
    assert created.patient_id == patient.id
    assert created.meeting_type == "Zoom"


@pytest.mark.asyncio
async def test_promote_external_prefers_exact_name(conflict, session, store):
    await store.create_patient("רונית לוי")
    exact = await store.create_patient("רונית")

    outcome = await ConflictResolver(conflict, session, store).promote(Side.EXTERNAL)

    created = await store.get_booking(outcome.record_id)
    assert created.patient_id == exact.id


@pytest.mark.asyncio
async def test_promote_external_ambiguous(conflict, session, store):
    await store.create_patient("רונית לוי")
    await store.create_patient("רונית כהן")
    resolver = ConflictResolver(conflict, session, store)

    with pytest.raises(AmbiguousPromotion) as exc_info:
        await resolver.promote(Side.EXTERNAL)

    assert len(exc_info.value.candidates) == 2
    assert resolver.state == ResolutionState.PRESENTED
    bookings = await store.list_bookings(at(2025, 3, 9, 0), at(2025, 3, 16, 0))
    assert len(bookings) == 1


@pytest.mark.asyncio
async def test_promote_external_without_name(conflict, session, store):
    event = replace(conflict.external_event, summary="ישיבת צוות")
    candidate = replace(conflict, external_event=event)

    with pytest.raises(AmbiguousPromotion):
        await ConflictResolver(candidate, session, store).promote(Side.EXTERNAL)


@pytest.mark.asyncio
async def test_promote_internal_creates_linked_event(conflict, session, provider, store):
    outcome = await ConflictResolver(conflict, session, store).promote(Side.INTERNAL)

    created = provider.events[outcome.record_id]
    assert created.summary == "פגישה עם מיכל"
    assert created.start == at(2025, 3, 10, 11)
    assert created.end == at(2025, 3, 10, 12, 30)
    assert created.description.startswith("סוג פגישה: פגישה פרונטלית")

    booking = await store.get_booking(conflict.booking.id)
    assert booking.external_event_id == outcome.record_id


@pytest.mark.asyncio
async def test_failed_promote_applies_nothing(conflict, session, provider, store):
    provider.fail("create_event", ProviderUnavailable("502 from provider"))
    resolver = ConflictResolver(conflict, session, store)

    with pytest.raises(ProviderUnavailable):
        await resolver.promote(Side.INTERNAL)

    assert resolver.state == ResolutionState.PRESENTED
    booking = await store.get_booking(conflict.booking.id)
    assert booking.external_event_id is None
    assert set(provider.events) == {"evt-1"}

    _, conflicts = await _reconcile(session, store)
    assert [c.key for c in conflicts] == [conflict.key]


@pytest.mark.asyncio
async def test_failed_link_removes_created_event(conflict, session, provider, store, monkeypatch):
    async def failing_link(booking_id, external_event_id):
        raise StoreWriteFailed("disk I/O error", operation="link_booking")

    monkeypatch.setattr(store, "link_booking", failing_link)
    resolver = ConflictResolver(conflict, session, store)

    with pytest.raises(StoreWriteFailed):
        await resolver.promote(Side.INTERNAL)

    assert provider.count("create_event") == 1
    assert provider.count("delete_event") == 1
    assert set(provider.events) == {"evt-1"}
    assert resolver.state == ResolutionState.PRESENTED


@pytest.mark.asyncio
async def test_failed_compensation_is_partial(conflict, session, provider, store, monkeypatch):
    async def failing_link(booking_id, external_event_id):
        raise StoreWriteFailed("disk I/O error", operation="link_booking")

    monkeypatch.setattr(store, "link_booking", failing_link)
    provider.fail("delete_event", ProviderUnavailable("timeout"))

    with pytest.raises(PartialResolution) as exc_info:
        await ConflictResolver(conflict, session, store).promote(Side.INTERNAL)

    error = exc_info.value
    assert error.applied_side == Side.EXTERNAL
    assert error.failed_side == Side.INTERNAL
    assert "applied: external" in error.details()


@pytest.mark.asyncio
async def test_sign_out_during_promote_is_partial(conflict, session, provider, store, monkeypatch):
    create_event = provider.create_event

    async def create_during_sign_out(*args, **kwargs):
        event_id = await create_event(*args, **kwargs)
        session.sign_out()
        return event_id

    monkeypatch.setattr(provider, "create_event", create_during_sign_out)
    resolver = ConflictResolver(conflict, session, store)

    with pytest.raises(PartialResolution) as exc_info:
        await resolver.promote(Side.INTERNAL)

    error = exc_info.value
    assert error.applied_side == Side.EXTERNAL
    assert error.failed_side == Side.INTERNAL
    assert "new-1" in error.message
    assert resolver.state == ResolutionState.PRESENTED
    booking = await store.get_booking(conflict.booking.id)
    assert booking.external_event_id is None


@pytest.mark.asyncio
async def test_dismiss_is_terminal(conflict, session, provider, store):
    resolver = ConflictResolver(conflict, session, store)

    outcome = resolver.dismiss()

    assert outcome.state == ResolutionState.DISMISSED
    assert provider.count("update_event") == 0
    with pytest.raises(ResolutionStateError):
        await resolver.retime(Side.EXTERNAL, "14:00")
    with pytest.raises(ResolutionStateError):
        resolver.dismiss()


@pytest.mark.asyncio
async def test_apply_dispatch(conflict, session, store):
    resolver = ConflictResolver(conflict, session, store)

    with pytest.raises(ValueError):
        await resolver.apply("merge", Side.INTERNAL)
    with pytest.raises(ValueError):
        await resolver.apply("retime", Side.INTERNAL)
    with pytest.raises(ValueError):
        await resolver.apply("delete", "both")

    outcome = await resolver.apply("delete", Side.INTERNAL)
    assert outcome.state == ResolutionState.DELETED
