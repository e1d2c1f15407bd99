# tests/test_scheduler.py
# =======================
# Scheduler de recordatorios: frecuencia por cercanía a la fecha límite y job diario.
# =======================

from datetime import datetime, timedelta

import pytest

import reminder_scheduler
from app.models import EventTypeEnum, TrackingEvent
from reminder_scheduler import send_pending_reminders_job, should_send_reminder

TODAY = datetime(2025, 3, 1, 9, 0)


@pytest.mark.parametrize(
    "days_left, days_since, expected",
    [
        (90, 14, False),      # >60 días: cada 15.
        (90, 15, True),
        (45, 6, False),       # 31-60 días: cada 7.
        (45, 7, True),
        (10, 1, False),       # 0-30 días: cada 2.
        (10, 2, True),
        (0, 2, True),         # Último día aún cuenta.
    ],
)
def test_frequency_windows(days_left, days_since, expected):
    deadline = TODAY + timedelta(days=days_left)
    last = TODAY - timedelta(days=days_since)
    assert should_send_reminder(TODAY, last, deadline) is expected


def test_first_reminder_and_past_deadline():
    assert should_send_reminder(TODAY, None, TODAY + timedelta(days=100)) is True
    assert should_send_reminder(TODAY, None, TODAY - timedelta(days=1)) is False


def test_job_sends_and_respects_recent_reminder(db, make_wedding, make_family, monkeypatch):
    alerts = []
    monkeypatch.setattr(reminder_scheduler, "send_alert_webhook", lambda title, msg: alerts.append(title))
    due = make_wedding()
    recent = make_wedding(couple_names="Emma & Noah")
    make_wedding(couple_names="Old & Closed", rsvp_cutoff_date=datetime.utcnow() - timedelta(days=3))
    family_due = make_family(due, name="Pendiente")
    family_recent = make_family(recent, name="Avisada")
    for family in (family_due, family_recent):
        db.add(TrackingEvent(family_id=family.id, wedding_id=family.wedding_id,
                             event_type=EventTypeEnum.INVITATION_SENT, meta={}))
    db.add(TrackingEvent(family_id=family_recent.id, wedding_id=recent.id,
                         event_type=EventTypeEnum.REMINDER_SENT, meta={}))
    db.commit()

    summary = send_pending_reminders_job()

    assert summary == {"weddings": 1, "sent": 1, "failed": 0, "skipped": 1}
    assert alerts == []
    reminders = db.query(TrackingEvent).filter_by(
        wedding_id=due.id, event_type=EventTypeEnum.REMINDER_SENT
    ).all()
    assert len(reminders) == 1
    assert reminders[0].meta["reminder_type"] == "automatic"
