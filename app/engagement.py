# app/engagement.py
# =================================================================================
# 📊 Embudo de interacción por familia y tasas por canal
# ---------------------------------------------------------------------------------
# invitada → entregada → leída → enlace abierto → RSVP enviado. Cada paso cuenta
# con la primera aparición de su evento; la completitud es el % de pasos hechos.
# =================================================================================

from collections import defaultdict
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models import ChannelEnum, EventTypeEnum, Family, TrackingEvent
from app.schemas import ChannelRate, EngagementStep, GuestEngagement, WeddingEngagementStats

FUNNEL_STEPS = [
    ("invited", EventTypeEnum.INVITATION_SENT),
    ("delivered", EventTypeEnum.MESSAGE_DELIVERED),
    ("read", EventTypeEnum.MESSAGE_READ),
    ("link_opened", EventTypeEnum.LINK_OPENED),
    ("rsvp_confirmed", EventTypeEnum.RSVP_SUBMITTED),
]
_FUNNEL_TYPES = [event_type for _, event_type in FUNNEL_STEPS]


def _build_engagement(family: Family, events: List[TrackingEvent]) -> GuestEngagement:
    first: Dict[EventTypeEnum, TrackingEvent] = {}
    for event in events:  # Ya vienen en orden ascendente.
        first.setdefault(event.event_type, event)

    steps = []
    for key, event_type in FUNNEL_STEPS:
        event = first.get(event_type)
        steps.append(
            EngagementStep(
                key=key,
                done=event is not None,
                at=event.timestamp if event else None,
                channel=event.channel.value if event and event.channel else None,
            )
        )
    done = sum(1 for s in steps if s.done)
    return GuestEngagement(
        family_id=family.id,
        family_name=family.name,
        steps=steps,
        completion=round(done / len(FUNNEL_STEPS) * 100),
    )


def get_guest_engagement(db: Session, family_id: str, wedding_id: str) -> Optional[GuestEngagement]:
    family = db.get(Family, family_id)
    if family is None or family.wedding_id != wedding_id:
        return None
    events = (
        db.query(TrackingEvent)
        .filter(
            TrackingEvent.family_id == family_id,
            TrackingEvent.wedding_id == wedding_id,
            TrackingEvent.event_type.in_(_FUNNEL_TYPES),
        )
        .order_by(TrackingEvent.timestamp.asc())
        .all()
    )
    return _build_engagement(family, events)


def get_wedding_engagement(db: Session, wedding_id: str) -> WeddingEngagementStats:
    families = db.query(Family).filter(Family.wedding_id == wedding_id).order_by(Family.created_at).all()
    events_by_family: Dict[str, List[TrackingEvent]] = defaultdict(list)
    events = (
        db.query(TrackingEvent)
        .filter(TrackingEvent.wedding_id == wedding_id, TrackingEvent.event_type.in_(_FUNNEL_TYPES))
        .order_by(TrackingEvent.timestamp.asc())
        .all()
    )
    for event in events:
        events_by_family[event.family_id].append(event)

    engagements = [_build_engagement(f, events_by_family.get(f.id, [])) for f in families]
    step_counts = {key: 0 for key, _ in FUNNEL_STEPS}
    for engagement in engagements:
        for step in engagement.steps:
            if step.done:
                step_counts[step.key] += 1

    average = round(sum(e.completion for e in engagements) / len(engagements)) if engagements else 0
    return WeddingEngagementStats(
        total_families=len(engagements),
        step_counts=step_counts,
        average_completion=average,
        engagements=engagements,
    )


def get_channel_rates(db: Session, wedding_id: str) -> List[ChannelRate]:
    """Por canal: invitaciones enviadas, entregadas, leídas y fallidas, con sus tasas."""
    rows = (
        db.query(TrackingEvent.channel, TrackingEvent.event_type, func.count(TrackingEvent.id))
        .filter(
            TrackingEvent.wedding_id == wedding_id,
            TrackingEvent.channel.isnot(None),
            TrackingEvent.event_type.in_([
                EventTypeEnum.INVITATION_SENT,
                EventTypeEnum.MESSAGE_DELIVERED,
                EventTypeEnum.MESSAGE_READ,
                EventTypeEnum.MESSAGE_FAILED,
            ]),
        )
        .group_by(TrackingEvent.channel, TrackingEvent.event_type)
        .all()
    )
    counts = defaultdict(int)
    for channel, event_type, n in rows:
        counts[(channel, event_type)] = n

    rates = []
    for channel in (ChannelEnum.WHATSAPP, ChannelEnum.SMS, ChannelEnum.EMAIL):
        sent = counts[(channel, EventTypeEnum.INVITATION_SENT)]
        delivered = counts[(channel, EventTypeEnum.MESSAGE_DELIVERED)]
        read = counts[(channel, EventTypeEnum.MESSAGE_READ)]
        failed = counts[(channel, EventTypeEnum.MESSAGE_FAILED)]
        rates.append(
            ChannelRate(
                channel=channel.value,
                sent=sent,
                delivered=delivered,
                read=read,
                failed=failed,
                delivery_rate=round((sent - failed) / sent * 100) if sent else 0,
                read_rate=round(read / delivered * 100) if delivered else 0,
            )
        )
    return rates
