# tests/test_tracking.py
# =======================
# Tracking: inserción best-effort, metadata tipada y escritura en dos fases.
# =======================

import pytest

from app.models import ChannelEnum, EventStateEnum, EventTypeEnum, TrackingEvent
from app.tracking import (
    StaleEventError,
    create_provisional_event,
    finalize_event,
    is_transient_error,
    track_event,
    track_event_async,
    with_db_retry,
)


def test_track_event_persists_typed_metadata(db, family):
    event = track_event(
        db, family.id, family.wedding_id, EventTypeEnum.RSVP_SUBMITTED, ChannelEnum.EMAIL,
        {"total_members": 2, "attending_count": 1, "source": "test"},
    )
    assert event is not None
    assert event.state == EventStateEnum.FINALIZED
    assert event.meta == {"total_members": 2, "attending_count": 1, "extra": {"source": "test"}}


def test_track_event_copies_message_sid_column(db, family):
    event = track_event(
        db, family.id, family.wedding_id, EventTypeEnum.INVITATION_SENT, ChannelEnum.SMS,
        {"message_sid": "SM123", "template_type": "INVITATION"},
    )
    assert event.message_sid == "SM123"


def test_track_event_never_raises(db, family, monkeypatch):
    def broken_commit():
        raise RuntimeError("disk I/O error")

    monkeypatch.setattr(db, "commit", broken_commit)
    assert track_event(db, family.id, family.wedding_id, EventTypeEnum.LINK_OPENED) is None


def test_track_event_async_runs_inline(db, family):
    track_event_async(family.id, family.wedding_id, EventTypeEnum.LINK_OPENED, ChannelEnum.WHATSAPP)
    events = db.query(TrackingEvent).all()
    assert len(events) == 1
    assert events[0].channel == ChannelEnum.WHATSAPP


def test_finalize_merges_fields_and_bumps_version(db, family):
    event = create_provisional_event(
        db, family.id, family.wedding_id, EventTypeEnum.MESSAGE_RECEIVED, ChannelEnum.WHATSAPP,
        {"message_sid": "SM1", "from": "+34600111222", "body": "¿A qué hora es?"},
    )
    assert event.state == EventStateEnum.PROVISIONAL

    done = finalize_event(db, event.id, event.version, {"ai_reply": "A las 18:00"})

    assert done.state == EventStateEnum.FINALIZED
    assert done.version == 2
    assert done.meta["ai_reply"] == "A las 18:00"
    assert done.meta["from"] == "+34600111222"


def test_finalize_twice_is_stale(db, family):
    event = create_provisional_event(db, family.id, family.wedding_id, EventTypeEnum.MESSAGE_RECEIVED)
    finalize_event(db, event.id, 1, {})
    with pytest.raises(StaleEventError):
        finalize_event(db, event.id, 1, {"ai_reply": "tarde"})


def test_finalize_wrong_version_is_stale(db, family):
    event = create_provisional_event(db, family.id, family.wedding_id, EventTypeEnum.MESSAGE_RECEIVED)
    with pytest.raises(StaleEventError):
        finalize_event(db, event.id, 7, {})


def test_retry_only_transient_errors():
    calls = {"n": 0}

    def flaky():
        calls["n"] += 1
        if calls["n"] < 3:
            raise RuntimeError("Connection terminated unexpectedly")
        return "ok"

    assert with_db_retry(flaky, base_delay_s=0) == "ok"
    assert calls["n"] == 3

    def fatal():
        raise ValueError("constraint failed")

    with pytest.raises(ValueError):
        with_db_retry(fatal, base_delay_s=0)
    assert not is_transient_error(ValueError("constraint failed"))
