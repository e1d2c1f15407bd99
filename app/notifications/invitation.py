# app/notifications/invitation.py
# =================================================================================
# 💍 Invitaciones
# ---------------------------------------------------------------------------------
# Plantilla INVITATION por el canal pedido (o el preferido de la familia).
# Cada envío correcto deja un INVITATION_SENT en el timeline.
# =================================================================================

from typing import Iterable, Optional, Union

from loguru import logger
from sqlalchemy.orm import Session

from app.models import ChannelEnum, EventTypeEnum, TemplateTypeEnum, TrackingEvent
from app.notifications.dispatch import (
    DispatchError,
    deliver_template,
    dispatch_metadata,
    load_family,
)
from app.schemas import BulkSendResult, FamilyError, FamilyWaLink, SendResult
from app.tracking import track_event_async


def send_invitation(
    db: Session,
    family_id: str,
    wedding_id: str,
    admin_id: Optional[str] = None,
    channel: Union[ChannelEnum, str, None] = None,
) -> SendResult:
    try:
        family = load_family(db, family_id, wedding_id)
        delivery = deliver_template(db, family, TemplateTypeEnum.INVITATION, channel)
    except DispatchError as e:
        return SendResult(success=False, error=str(e))

    db.commit()
    track_event_async(
        family.id, wedding_id, EventTypeEnum.INVITATION_SENT, delivery.channel,
        dispatch_metadata(delivery, TemplateTypeEnum.INVITATION, admin_id),
        admin_triggered=True,
    )
    logger.info("[INVITATION] Enviada a {} vía {}", family.name, delivery.channel.value)
    return SendResult(
        success=True,
        message_id=delivery.result.message_id,
        channel=delivery.channel,
        wa_link=delivery.wa_link,
    )


def send_invitations_bulk(
    db: Session,
    family_ids: Iterable[str],
    wedding_id: str,
    admin_id: Optional[str] = None,
    channel: Union[ChannelEnum, str, None] = None,
) -> BulkSendResult:
    ids = list(family_ids)
    summary = BulkSendResult(total=len(ids))
    for family_id in ids:
        try:
            result = send_invitation(db, family_id, wedding_id, admin_id, channel)
        except Exception as e:
            db.rollback()
            logger.exception("[INVITATION] Error inesperado con la familia {}: {}", family_id, e)
            result = SendResult(success=False, error=str(e) or "Unknown error")

        if result.success:
            summary.successful += 1
            if result.wa_link:
                summary.wa_links.append(FamilyWaLink(family_id=family_id, wa_link=result.wa_link))
        else:
            summary.errors.append(FamilyError(family_id=family_id, error=result.error or "Unknown error"))

    summary.failed = len(summary.errors)
    return summary


def has_invitation_been_sent(db: Session, family_id: str) -> bool:
    return (
        db.query(TrackingEvent.id)
        .filter(
            TrackingEvent.family_id == family_id,
            TrackingEvent.event_type == EventTypeEnum.INVITATION_SENT,
        )
        .first()
        is not None
    )
