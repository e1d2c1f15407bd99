# app/notifications/save_the_date.py
# =================================================================================
# 💌 Save the Date
# ---------------------------------------------------------------------------------
# - Solo si la boda lo tiene activado y la familia aún no lo recibió.
# - `save_the_date_sent` se fija tras un envío correcto y no se vuelve a tocar:
#   una segunda llamada se rechaza con error explícito.
# =================================================================================

from datetime import datetime
from typing import Iterable, List, Optional, Union

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import ChannelEnum, EventTypeEnum, Family, TemplateTypeEnum, TrackingEvent
from app.notifications.dispatch import (
    DispatchError,
    deliver_template,
    dispatch_metadata,
    load_family,
)
from app.schemas import BulkSendResult, FamilyError, FamilyWaLink, SendResult
from app.tracking import track_event_async

FEATURE_DISABLED = "Save the date feature is not enabled for this wedding"
ALREADY_SENT = "Save the date already sent to this family"


def send_save_the_date(
    db: Session,
    family_id: str,
    wedding_id: str,
    admin_id: Optional[str] = None,
    channel: Union[ChannelEnum, str, None] = None,
) -> SendResult:
    """Envía el save-the-date a una familia. Los fallos de dominio van en `error`."""
    try:
        family = load_family(db, family_id, wedding_id)
        if not family.wedding.save_the_date_enabled:
            raise DispatchError(FEATURE_DISABLED)
        if family.save_the_date_sent is not None:
            raise DispatchError(ALREADY_SENT)

        delivery = deliver_template(db, family, TemplateTypeEnum.SAVE_THE_DATE, channel)
    except DispatchError as e:
        return SendResult(success=False, error=str(e))

    family.save_the_date_sent = datetime.utcnow()                                 # Marca solo tras envío correcto.
    db.commit()

    meta = dispatch_metadata(delivery, TemplateTypeEnum.SAVE_THE_DATE, admin_id)
    if not meta.get("template_name"):
        meta["template_name"] = "Save the Date"
    track_event_async(
        family.id, wedding_id, EventTypeEnum.SAVE_THE_DATE_SENT, delivery.channel, meta,
        admin_triggered=True,
    )
    logger.info("[SAVE_THE_DATE] Enviado a {} vía {}", family.name, delivery.channel.value)
    return SendResult(
        success=True,
        message_id=delivery.result.message_id,
        channel=delivery.channel,
        wa_link=delivery.wa_link,
    )


def send_save_the_date_bulk(
    db: Session,
    family_ids: Iterable[str],
    wedding_id: str,
    admin_id: Optional[str] = None,
    channel: Union[ChannelEnum, str, None] = None,
) -> BulkSendResult:
    """Envío secuencial; el fallo de una familia no detiene el lote."""
    ids = list(family_ids)
    summary = BulkSendResult(total=len(ids))
    logger.info("[SAVE_THE_DATE] Enviando a {} familias...", len(ids))

    for family_id in ids:
        try:
            result = send_save_the_date(db, family_id, wedding_id, admin_id, channel)
        except Exception as e:
            db.rollback()
            logger.exception("[SAVE_THE_DATE] Error inesperado con la familia {}: {}", family_id, e)
            result = SendResult(success=False, error=str(e) or "Unknown error")

        if result.success:
            summary.successful += 1
            if result.wa_link:
                summary.wa_links.append(FamilyWaLink(family_id=family_id, wa_link=result.wa_link))
        else:
            summary.errors.append(FamilyError(family_id=family_id, error=result.error or "Unknown error"))

    summary.failed = len(summary.errors)
    return summary


def eligible_family_ids(db: Session, wedding_id: str, family_ids: Optional[List[str]] = None) -> List[str]:
    """Familias sin save-the-date y sin invitación previa (opcionalmente acotadas a `family_ids`)."""
    invited = select(TrackingEvent.family_id).where(
        TrackingEvent.wedding_id == wedding_id,
        TrackingEvent.event_type == EventTypeEnum.INVITATION_SENT,
    )
    query = db.query(Family.id).filter(
        Family.wedding_id == wedding_id,
        Family.save_the_date_sent.is_(None),
        ~Family.id.in_(invited),
    )
    if family_ids:
        query = query.filter(Family.id.in_(family_ids))
    return [row[0] for row in query.order_by(Family.created_at).all()]
