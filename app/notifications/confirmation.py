# app/notifications/confirmation.py
# =================================================================================
# ✅ Confirmación de RSVP (best-effort)
# ---------------------------------------------------------------------------------
# Se encola al recibir un RSVP: usa la plantilla CONFIRMATION de la boda y, si no
# existe, el correo de confirmación con copy fijo. Nunca afecta a la respuesta
# del RSVP.
# =================================================================================


from loguru import logger
from sqlalchemy.orm import Session

from app.background import background_queue
from app.db import session_scope
from app.mailer import send_rsvp_confirmation
from app.models import ChannelEnum, EventTypeEnum, TemplateTypeEnum
from app.notifications.dispatch import (
    TEMPLATE_NOT_FOUND,
    DispatchError,
    deliver_template,
    dispatch_metadata,
    family_language,
    load_family,
)
from app.schemas import SendResult
from app.tracking import track_event
from app.utils.i18n import format_date


def send_confirmation(db: Session, family_id: str, wedding_id: str, attending_count: int = 0) -> SendResult:
    try:
        family = load_family(db, family_id, wedding_id)
    except DispatchError as e:
        return SendResult(success=False, error=str(e))

    try:
        delivery = deliver_template(db, family, TemplateTypeEnum.CONFIRMATION, None)
    except DispatchError as e:
        if str(e) != TEMPLATE_NOT_FOUND or not family.email:
            logger.warning("[CONFIRMATION] No enviada | family_id={} motivo={}", family_id, e)
            return SendResult(success=False, error=str(e))
        wedding = family.wedding
        language = family_language(family, wedding)
        result = send_rsvp_confirmation(
            family.email, language, family.name, wedding.couple_names,
            format_date(wedding.wedding_date, language), attending_count,
        )
        if not result.success:
            return SendResult(success=False, error=f"Failed to send EMAIL: {result.error}")
        return SendResult(success=True, message_id=result.message_id, channel=ChannelEnum.EMAIL)

    meta = dispatch_metadata(delivery, TemplateTypeEnum.CONFIRMATION, None, reminder_type="confirmation")
    track_event(db, family.id, wedding_id, EventTypeEnum.REMINDER_SENT, delivery.channel, meta)
    return SendResult(success=True, message_id=delivery.result.message_id, channel=delivery.channel)


def _send_in_own_session(family_id: str, wedding_id: str, attending_count: int) -> None:
    with session_scope() as db:
        result = send_confirmation(db, family_id, wedding_id, attending_count)
        if result.success:
            logger.info("[CONFIRMATION] Enviada | family_id={} canal={}", family_id, result.channel)


def send_confirmation_async(family_id: str, wedding_id: str, attending_count: int = 0) -> None:
    background_queue.submit(
        _send_in_own_session, family_id, wedding_id, attending_count,
        label=f"confirmation:{family_id}",
    )
