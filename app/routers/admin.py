# app/routers/admin.py
# =============================================================================
# 👑 Rutas de administración de una boda
# - Protegidas con JWT de admin (`wedding_access`: wedding_admin de esa boda o
#   planner propietario)
# - Envíos: save-the-date, invitaciones y recordatorios (en lote)
# - Magic links: generar / regenerar por familia
# - Timeline, centro de notificaciones y engagement
# =============================================================================

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query                      # Router y dependencias de FastAPI.
from loguru import logger
from sqlalchemy.orm import Session                                 # Tipo de sesión de SQLAlchemy.

import app.schemas as schemas                                      # Schemas de request/response.
from app.core.errors import api_error                              # HTTPException con {code, message}.
from app.core.security import AdminContext, wedding_access         # JWT + acceso a la boda.
from app.db import get_db                                          # Session por request.
from app.engagement import get_channel_rates, get_guest_engagement, get_wedding_engagement
from app.magic_link import generate_magic_link, regenerate_magic_token, short_link_for
from app.models import ChannelEnum, EventTypeEnum, Family, Wedding
from app.notifications.invitation import send_invitations_bulk
from app.notifications.reminders import ReminderCutoffPassedError, send_reminders
from app.notifications.save_the_date import FEATURE_DISABLED, eligible_family_ids, send_save_the_date_bulk
from app.notifications_center import list_notifications, mark_read, unread_count
from app.timeline import get_timeline

router = APIRouter(prefix="/api/admin/weddings/{wedding_id}", tags=["admin"])

# ------------------------------ Helpers locales -------------------------------

def _family_or_404(db: Session, wedding_id: str, family_id: str) -> Family:
    family = db.get(Family, family_id)
    if family is None or family.wedding_id != wedding_id:
        raise api_error(404, "NOT_FOUND", "Family not found")
    return family

# ------------------------------ Envíos en lote --------------------------------

@router.post("/save-the-date", response_model=schemas.BulkSendResult)
def send_save_the_date_endpoint(
    wedding_id: str,
    payload: schemas.BulkSendRequest,
    admin: AdminContext = Depends(wedding_access),
    db: Session = Depends(get_db),
):
    """Save-the-date a las familias elegibles (sin envío previo ni invitación)."""
    wedding = db.get(Wedding, wedding_id)
    if not wedding.save_the_date_enabled:
        raise api_error(400, "VALIDATION_ERROR", FEATURE_DISABLED)

    family_ids = eligible_family_ids(db, wedding_id, payload.family_ids)
    result = send_save_the_date_bulk(db, family_ids, wedding_id, admin.admin_id, payload.channel)
    logger.info(
        "[ADMIN] save-the-date | wedding_id={} total={} ok={} ko={}",
        wedding_id, result.total, result.successful, result.failed,
    )
    return result


@router.post("/invitations", response_model=schemas.BulkSendResult)
def send_invitations_endpoint(
    wedding_id: str,
    payload: schemas.BulkSendRequest,
    admin: AdminContext = Depends(wedding_access),
    db: Session = Depends(get_db),
):
    query = db.query(Family.id).filter(Family.wedding_id == wedding_id)
    if payload.family_ids:
        query = query.filter(Family.id.in_(payload.family_ids))
    family_ids = [row[0] for row in query.order_by(Family.created_at).all()]
    return send_invitations_bulk(db, family_ids, wedding_id, admin.admin_id, payload.channel)


@router.post("/reminders", response_model=schemas.ReminderResult)
def send_reminders_endpoint(
    wedding_id: str,
    payload: schemas.ReminderRequest,
    admin: AdminContext = Depends(wedding_access),
    db: Session = Depends(get_db),
):
    try:
        return send_reminders(
            db, wedding_id,
            admin_id=admin.admin_id,
            channel=payload.channel,
            family_ids=payload.family_ids,
            message_template=payload.message_template,
        )
    except ReminderCutoffPassedError as e:
        raise api_error(400, "RSVP_CUTOFF_PASSED", str(e))

# -------------------------------- Magic links ---------------------------------

@router.post("/guests/{family_id}/magic-link", response_model=schemas.MagicLinkOut)
def generate_magic_link_endpoint(
    wedding_id: str,
    family_id: str,
    payload: Optional[schemas.MagicLinkRequest] = None,
    admin: AdminContext = Depends(wedding_access),
    db: Session = Depends(get_db),
):
    _family_or_404(db, wedding_id, family_id)
    url = generate_magic_link(db, family_id, payload.channel if payload else None)
    return schemas.MagicLinkOut(family_id=family_id, url=url)


@router.post("/guests/{family_id}/magic-link/regenerate", response_model=schemas.MagicLinkOut)
def regenerate_magic_link_endpoint(
    wedding_id: str,
    family_id: str,
    admin: AdminContext = Depends(wedding_access),
    db: Session = Depends(get_db),
):
    """Invalida el enlace anterior y devuelve el nuevo."""
    family = _family_or_404(db, wedding_id, family_id)
    regenerate_magic_token(db, family_id)
    return schemas.MagicLinkOut(family_id=family_id, url=short_link_for(db, family))

# --------------------------------- Timeline -----------------------------------

@router.get("/guests/{family_id}/timeline", response_model=schemas.TimelineResponse)
def get_timeline_endpoint(
    wedding_id: str,
    family_id: str,
    admin: AdminContext = Depends(wedding_access),
    db: Session = Depends(get_db),
):
    timeline = get_timeline(db, family_id, wedding_id)
    if timeline is None:
        raise api_error(404, "NOT_FOUND", "Family not found")
    return timeline

# ------------------------------ Notificaciones --------------------------------

@router.get("/notifications", response_model=schemas.NotificationPage)
def list_notifications_endpoint(
    wedding_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    family_id: Optional[str] = None,
    event_type: Optional[EventTypeEnum] = None,
    channel: Optional[ChannelEnum] = None,
    read: Optional[bool] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    admin: AdminContext = Depends(wedding_access),
    db: Session = Depends(get_db),
):
    return list_notifications(
        db, wedding_id, admin.admin_id,
        page=page, limit=limit, family_id=family_id, event_type=event_type,
        channel=channel, read=read, date_from=date_from, date_to=date_to,
    )


@router.get("/notifications/unread-count", response_model=schemas.UnreadCount)
def unread_count_endpoint(
    wedding_id: str,
    admin: AdminContext = Depends(wedding_access),
    db: Session = Depends(get_db),
):
    return schemas.UnreadCount(unread_count=unread_count(db, wedding_id, admin.admin_id))


@router.post("/notifications/mark-read", response_model=schemas.MarkReadResult)
def mark_many_read_endpoint(
    wedding_id: str,
    payload: schemas.MarkReadRequest,
    admin: AdminContext = Depends(wedding_access),
    db: Session = Depends(get_db),
):
    """Sin `event_ids` marca todas las notificaciones de la boda."""
    return schemas.MarkReadResult(updated=mark_read(db, wedding_id, admin.admin_id, payload.event_ids))


@router.post("/notifications/{event_id}/read", response_model=schemas.MarkReadResult)
def mark_one_read_endpoint(
    wedding_id: str,
    event_id: str,
    admin: AdminContext = Depends(wedding_access),
    db: Session = Depends(get_db),
):
    return schemas.MarkReadResult(updated=mark_read(db, wedding_id, admin.admin_id, [event_id]))

# -------------------------------- Engagement ----------------------------------

@router.get("/engagement", response_model=schemas.WeddingEngagementStats)
def wedding_engagement_endpoint(
    wedding_id: str,
    admin: AdminContext = Depends(wedding_access),
    db: Session = Depends(get_db),
):
    return get_wedding_engagement(db, wedding_id)


@router.get("/guests/{family_id}/engagement", response_model=schemas.GuestEngagement)
def guest_engagement_endpoint(
    wedding_id: str,
    family_id: str,
    admin: AdminContext = Depends(wedding_access),
    db: Session = Depends(get_db),
):
    engagement = get_guest_engagement(db, family_id, wedding_id)
    if engagement is None:
        raise api_error(404, "NOT_FOUND", "Family not found")
    return engagement


@router.get("/channel-rates", response_model=List[schemas.ChannelRate])
def channel_rates_endpoint(
    wedding_id: str,
    admin: AdminContext = Depends(wedding_access),
    db: Session = Depends(get_db),
):
    return get_channel_rates(db, wedding_id)
