# app/notifications/reminders.py
# =================================================================================
# ⏰ Recordatorios de RSVP
# ---------------------------------------------------------------------------------
# - Destinatarios: familias en las que ningún miembro ha respondido (salvo que
#   el admin pase ids concretos, que se respetan tal cual).
# - Si la familia aún no recibió la invitación, se envía la invitación.
# - Plantilla REMINDER de la boda; si no existe, copy fijo por idioma.
# - Tras la fecha límite de RSVP no se envía nada.
# =================================================================================

from datetime import datetime
from typing import List, Optional, Union

from loguru import logger
from sqlalchemy.orm import Session

from app.channels import ChannelUnavailableError, resolve_channel
from app.models import ChannelEnum, EventTypeEnum, Family, TemplateTypeEnum, Wedding
from app.notifications.dispatch import (
    TEMPLATE_NOT_FOUND,
    DispatchError,
    Delivery,
    build_variables,
    deliver_template,
    dispatch_metadata,
    family_language,
    send_via_channel,
)
from app.notifications.invitation import has_invitation_been_sent, send_invitation
from app.schemas import FamilyError, FamilyWaLink, ReminderResult, SendResult
from app.tracking import track_reminder_sent

CUTOFF_PASSED = "RSVP cutoff date has passed"

# Copy por defecto cuando la boda no tiene plantilla REMINDER para el idioma/canal.
REMINDER_MESSAGES = {
    "ES": {
        "subject": "Recordatorio: Confirma tu asistencia",
        "greeting": "Hola, Familia {family_name}!",
        "body": "Te recordamos que aún no hemos recibido tu confirmación de asistencia para la boda de {couple_names} el {wedding_date}. Por favor, confirma antes del {cutoff_date}.",
        "cta": "Confirmar asistencia",
    },
    "EN": {
        "subject": "Reminder: Please confirm your attendance",
        "greeting": "Hello, {family_name} Family!",
        "body": "This is a friendly reminder that we haven't received your RSVP for {couple_names}'s wedding on {wedding_date}. Please confirm by {cutoff_date}.",
        "cta": "Confirm attendance",
    },
    "FR": {
        "subject": "Rappel: Confirmez votre présence",
        "greeting": "Bonjour, Famille {family_name}!",
        "body": "Nous vous rappelons que nous n'avons pas encore reçu votre confirmation de présence pour le mariage de {couple_names} le {wedding_date}. Merci de confirmer avant le {cutoff_date}.",
        "cta": "Confirmer la présence",
    },
    "IT": {
        "subject": "Promemoria: Conferma la tua partecipazione",
        "greeting": "Ciao, Famiglia {family_name}!",
        "body": "Ti ricordiamo che non abbiamo ancora ricevuto la tua conferma di partecipazione al matrimonio di {couple_names} il {wedding_date}. Per favore, conferma entro il {cutoff_date}.",
        "cta": "Conferma partecipazione",
    },
    "DE": {
        "subject": "Erinnerung: Bitte bestätigen Sie Ihre Teilnahme",
        "greeting": "Hallo, Familie {family_name}!",
        "body": "Wir möchten Sie daran erinnern, dass wir noch keine Rückmeldung zu Ihrer Teilnahme an der Hochzeit von {couple_names} am {wedding_date} erhalten haben. Bitte bestätigen Sie bis zum {cutoff_date}.",
        "cta": "Teilnahme bestätigen",
    },
}


class ReminderCutoffPassedError(Exception):
    """La fecha límite de RSVP ya pasó: no se envían recordatorios."""

    def __init__(self):
        super().__init__(CUTOFF_PASSED)


def _fallback_reminder(
    db: Session,
    family: Family,
    wedding: Wedding,
    requested_channel: Union[ChannelEnum, str, None],
    message_template: Optional[str],
) -> Delivery:
    """Recordatorio con copy fijo (o el texto libre del admin) cuando no hay plantilla."""
    try:
        channel = resolve_channel(requested_channel, family)
    except ChannelUnavailableError as e:
        raise DispatchError(str(e))

    language = family_language(family, wedding)
    variables = build_variables(db, family, wedding, channel, language)
    copy = REMINDER_MESSAGES[language]
    greeting = copy["greeting"].format(family_name=family.name)
    body = message_template or copy["body"].format(
        couple_names=wedding.couple_names,
        wedding_date=variables["weddingDate"],
        cutoff_date=variables["rsvpCutoffDate"],
    )
    link = variables["magicLink"]

    if channel == ChannelEnum.EMAIL:
        text = f"{greeting}\n\n{body}"
        result, wa_link = send_via_channel(
            family, wedding, channel, copy["subject"], text, language,
            cta_label=copy["cta"], cta_url=link,
        )
    else:
        text = f"{greeting}\n\n{body}\n\n{copy['cta']}: {link}"
        result, wa_link = send_via_channel(family, wedding, channel, copy["subject"], text, language)

    if not result.success:
        raise DispatchError(f"Failed to send {channel.value}: {result.error}")
    return Delivery(
        family=family, wedding=wedding, channel=channel, language=language,
        result=result, wa_link=wa_link, variables=variables,
    )


def send_reminder(
    db: Session,
    family: Family,
    admin_id: Optional[str] = None,
    channel: Union[ChannelEnum, str, None] = None,
    message_template: Optional[str] = None,
    reminder_type: str = "manual",
) -> SendResult:
    """Recordatorio a una familia (o su invitación, si aún no la recibió)."""
    wedding = family.wedding
    if not has_invitation_been_sent(db, family.id):
        logger.info("[REMINDER] {} sin invitación previa: se envía la invitación", family.name)
        return send_invitation(db, family.id, wedding.id, admin_id, channel)

    try:
        try:
            delivery = deliver_template(db, family, TemplateTypeEnum.REMINDER, channel)
        except DispatchError as e:
            if str(e) != TEMPLATE_NOT_FOUND:
                raise
            delivery = _fallback_reminder(db, family, wedding, channel, message_template)
    except DispatchError as e:
        return SendResult(success=False, error=str(e))

    db.commit()
    meta = dispatch_metadata(
        delivery, TemplateTypeEnum.REMINDER, admin_id,
        reminder_type=reminder_type,
        family_language=delivery.language,
        channel_used=delivery.channel.value,
    )
    track_reminder_sent(family.id, wedding.id, delivery.channel, admin_id, metadata=meta)
    return SendResult(
        success=True,
        message_id=delivery.result.message_id,
        channel=delivery.channel,
        wa_link=delivery.wa_link,
    )


def families_without_response(db: Session, wedding_id: str, family_ids: Optional[List[str]] = None) -> List[Family]:
    query = db.query(Family).filter(Family.wedding_id == wedding_id)
    if family_ids:
        return query.filter(Family.id.in_(family_ids)).order_by(Family.created_at).all()
    families = query.order_by(Family.created_at).all()
    return [f for f in families if all(m.attending is None for m in f.members)]


def send_reminders(
    db: Session,
    wedding_id: str,
    admin_id: Optional[str] = None,
    channel: Union[ChannelEnum, str, None] = None,
    family_ids: Optional[List[str]] = None,
    message_template: Optional[str] = None,
    reminder_type: str = "manual",
) -> ReminderResult:
    """Versión en lote. Lanza ReminderCutoffPassedError si la fecha límite ya pasó."""
    wedding = db.get(Wedding, wedding_id)
    if wedding is None:
        raise LookupError("Wedding not found")
    if datetime.utcnow() > wedding.rsvp_cutoff_date:
        raise ReminderCutoffPassedError()

    families = families_without_response(db, wedding_id, family_ids)
    summary = ReminderResult(recipient_families=[f.id for f in families])
    for family in families:
        try:
            result = send_reminder(db, family, admin_id, channel, message_template, reminder_type)
        except Exception as e:
            db.rollback()
            logger.exception("[REMINDER] Error inesperado con la familia {}: {}", family.id, e)
            result = SendResult(success=False, error=str(e) or "Unknown error")

        if result.success:
            summary.sent_count += 1
            if result.wa_link:
                summary.wa_links.append(FamilyWaLink(family_id=family.id, wa_link=result.wa_link))
        else:
            summary.failed_count += 1
            summary.errors.append(FamilyError(family_id=family.id, error=result.error or "Unknown error"))

    logger.info(
        "[REMINDER] wedding_id={} enviados={} fallidos={}",
        wedding_id, summary.sent_count, summary.failed_count,
    )
    return summary
