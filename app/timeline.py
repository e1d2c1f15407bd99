# app/timeline.py
# =================================================================================
# 🕓 Timeline de una familia
# ---------------------------------------------------------------------------------
# Eventos reales en orden descendente y, al final, el evento sintético
# GUEST_CREATED (fecha de alta de la familia). Se añade después de la consulta,
# así que siempre va último aunque su fecha no sea la más antigua.
# =================================================================================

from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from app.models import Family, TrackingEvent, WeddingAdmin, WeddingPlanner
from app.schemas import FamilyRef, TimelineEvent, TimelineResponse, TriggeredByUser

GUEST_CREATED = "GUEST_CREATED"


def _enum_value(value) -> Optional[str]:
    return getattr(value, "value", value)


def resolve_admin_users(db: Session, admin_ids: Iterable[str]) -> Dict[str, TriggeredByUser]:
    """admin_id → {id, name, email}; primero admins de boda y luego planners."""
    pending = {a for a in admin_ids if a}
    users: Dict[str, TriggeredByUser] = {}
    if not pending:
        return users

    for admin in db.query(WeddingAdmin).filter(WeddingAdmin.id.in_(pending)).all():
        users[admin.id] = TriggeredByUser(id=admin.id, name=admin.name, email=admin.email)

    rest = pending - set(users)
    if rest:
        for planner in db.query(WeddingPlanner).filter(WeddingPlanner.id.in_(rest)).all():
            users[planner.id] = TriggeredByUser(id=planner.id, name=planner.name, email=planner.email)
    return users


def get_timeline(db: Session, family_id: str, wedding_id: str) -> Optional[TimelineResponse]:
    """None si la familia no existe o no pertenece a la boda."""
    family = db.get(Family, family_id)
    if family is None or family.wedding_id != wedding_id:
        return None

    rows: List[TrackingEvent] = (
        db.query(TrackingEvent)
        .filter(TrackingEvent.family_id == family_id, TrackingEvent.wedding_id == wedding_id)
        .order_by(TrackingEvent.timestamp.desc(), TrackingEvent.id.desc())
        .all()
    )
    users = resolve_admin_users(db, ((r.meta or {}).get("admin_id") for r in rows))

    events = [
        TimelineEvent(
            id=r.id,
            family_id=r.family_id,
            family_name=family.name,
            event_type=_enum_value(r.event_type),
            channel=_enum_value(r.channel),
            metadata=r.meta or {},
            admin_triggered=r.admin_triggered,
            state=_enum_value(r.state),
            timestamp=r.timestamp,
            triggered_by_user=users.get((r.meta or {}).get("admin_id")),
        )
        for r in rows
    ]
    events.append(
        TimelineEvent(
            id=f"created-{family.id}",
            family_id=family.id,
            family_name=family.name,
            event_type=GUEST_CREATED,
            channel=None,
            metadata={},
            admin_triggered=True,
            timestamp=family.created_at,
            triggered_by_user=None,
        )
    )
    return TimelineResponse(events=events, family=FamilyRef(id=family.id, name=family.name))
