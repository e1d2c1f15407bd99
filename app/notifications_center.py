# app/notifications_center.py
# =================================================================================
# 🔔 Centro de notificaciones del admin
# ---------------------------------------------------------------------------------
# Los TrackingEvent de la boda son las notificaciones; el estado de lectura vive
# en notification_reads (una fila por evento y admin).
# =================================================================================

from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, exists, func
from sqlalchemy.orm import Session

from app.models import ChannelEnum, EventTypeEnum, Family, NotificationRead, TrackingEvent
from app.schemas import NotificationItem, NotificationPage

MAX_LIMIT = 100


def _read_clause(admin_id: str):
    return exists().where(
        and_(
            NotificationRead.event_id == TrackingEvent.id,
            NotificationRead.admin_id == admin_id,
            NotificationRead.read.is_(True),
        )
    )


def list_notifications(
    db: Session,
    wedding_id: str,
    admin_id: str,
    page: int = 1,
    limit: int = 50,
    family_id: Optional[str] = None,
    event_type: Optional[EventTypeEnum] = None,
    channel: Optional[ChannelEnum] = None,
    read: Optional[bool] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> NotificationPage:
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_LIMIT)

    query = db.query(TrackingEvent, Family.name).join(Family, Family.id == TrackingEvent.family_id)
    query = query.filter(TrackingEvent.wedding_id == wedding_id)
    if family_id:
        query = query.filter(TrackingEvent.family_id == family_id)
    if event_type:
        query = query.filter(TrackingEvent.event_type == event_type)
    if channel:
        query = query.filter(TrackingEvent.channel == channel)
    if read is True:
        query = query.filter(_read_clause(admin_id))
    elif read is False:
        query = query.filter(~_read_clause(admin_id))
    if date_from:
        query = query.filter(TrackingEvent.timestamp >= date_from)
    if date_to:
        query = query.filter(TrackingEvent.timestamp <= date_to)

    total = query.count()
    rows = (
        query.order_by(TrackingEvent.timestamp.desc(), TrackingEvent.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    event_ids = [event.id for event, _ in rows]
    reads = {}
    if event_ids:
        reads = {
            r.event_id: r
            for r in db.query(NotificationRead).filter(
                NotificationRead.event_id.in_(event_ids),
                NotificationRead.admin_id == admin_id,
            )
        }

    items = []
    for event, family_name in rows:
        state = reads.get(event.id)
        items.append(
            NotificationItem(
                id=event.id,
                family_id=event.family_id,
                family_name=family_name,
                event_type=event.event_type.value,
                channel=event.channel.value if event.channel else None,
                metadata=event.meta or {},
                admin_triggered=event.admin_triggered,
                timestamp=event.timestamp,
                read=bool(state and state.read),
                read_at=state.read_at if state else None,
            )
        )

    return NotificationPage(
        items=items,
        total=total,
        page=page,
        limit=limit,
        unread_count=unread_count(db, wedding_id, admin_id),
    )


def unread_count(db: Session, wedding_id: str, admin_id: str) -> int:
    return (
        db.query(func.count(TrackingEvent.id))
        .filter(TrackingEvent.wedding_id == wedding_id, ~_read_clause(admin_id))
        .scalar()
        or 0
    )


def mark_read(db: Session, wedding_id: str, admin_id: str, event_ids: Optional[List[str]] = None) -> int:
    """Marca como leídos los eventos indicados (o todos los de la boda). Devuelve cuántos cambió."""
    query = db.query(TrackingEvent.id).filter(TrackingEvent.wedding_id == wedding_id, ~_read_clause(admin_id))
    if event_ids is not None:
        if not event_ids:
            return 0
        query = query.filter(TrackingEvent.id.in_(event_ids))
    pending = [row[0] for row in query.all()]
    if not pending:
        return 0

    now = datetime.utcnow()
    existing = {
        r.event_id: r
        for r in db.query(NotificationRead).filter(
            NotificationRead.event_id.in_(pending),
            NotificationRead.admin_id == admin_id,
        )
    }
    for event_id in pending:
        state = existing.get(event_id)
        if state is None:
            db.add(NotificationRead(event_id=event_id, admin_id=admin_id, read=True, read_at=now))
        else:
            state.read = True
            state.read_at = now
    db.commit()
    return len(pending)
