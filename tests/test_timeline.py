# tests/test_timeline.py

from datetime import datetime, timedelta

from app.models import ChannelEnum, EventTypeEnum, TrackingEvent, WeddingPlanner
from app.timeline import GUEST_CREATED, get_timeline


def _event(db, family, event_type, minutes_ago, **kwargs):
    event = TrackingEvent(
        family_id=family.id,
        wedding_id=family.wedding_id,
        event_type=event_type,
        timestamp=datetime.utcnow() - timedelta(minutes=minutes_ago),
        meta=kwargs.pop("meta", {}),
        **kwargs,
    )
    db.add(event)
    db.commit()
    return event


def test_events_descending_with_guest_created_last(db, family):
    # El alta es posterior a los eventos: GUEST_CREATED sigue yendo al final.
    family.created_at = datetime.utcnow()
    db.commit()
    _event(db, family, EventTypeEnum.INVITATION_SENT, 120, channel=ChannelEnum.EMAIL)
    _event(db, family, EventTypeEnum.RSVP_SUBMITTED, 5)
    _event(db, family, EventTypeEnum.LINK_OPENED, 30)

    timeline = get_timeline(db, family.id, family.wedding_id)

    types = [e.event_type for e in timeline.events]
    assert types == ["RSVP_SUBMITTED", "LINK_OPENED", "INVITATION_SENT", GUEST_CREATED]
    assert timeline.events[-1].id == f"created-{family.id}"
    assert timeline.family.name == family.name


def test_other_wedding_family_returns_none(db, family, make_wedding):
    other = make_wedding(couple_names="Emma & Noah")
    assert get_timeline(db, family.id, other.id) is None


def test_resolves_triggering_admin(db, family, wedding_admin):
    planner = WeddingPlanner(name="Pilar Planner", email="pilar@example.com")
    db.add(planner)
    db.commit()
    _event(db, family, EventTypeEnum.INVITATION_SENT, 10, meta={"admin_id": wedding_admin.id}, admin_triggered=True)
    _event(db, family, EventTypeEnum.REMINDER_SENT, 5, meta={"admin_id": planner.id}, admin_triggered=True)

    events = get_timeline(db, family.id, family.wedding_id).events

    assert events[0].triggered_by_user.name == "Pilar Planner"
    assert events[1].triggered_by_user.email == "marta@example.com"
    assert events[2].triggered_by_user is None
