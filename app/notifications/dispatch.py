# app/notifications/dispatch.py
# =================================================================================
# 📨 Pipeline común de envío por familia
# ---------------------------------------------------------------------------------
# familia → canal efectivo → plantilla (boda, tipo, idioma, canal) → variables →
# render → adaptador del canal. Lo comparten invitación, save-the-date,
# recordatorio y confirmación; cada orquestador añade sus guardas, su marca de
# "enviado" y su evento de tracking.
# =================================================================================

import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from loguru import logger
from sqlalchemy.orm import Session

from app.channels import ChannelUnavailableError, contact_for, resolve_channel
from app.magic_link import short_link_for
from app.mailer import send_dynamic_email
from app.messaging import (
    build_whatsapp_link,
    send_sms,
    send_whatsapp,
    send_whatsapp_content_template,
)
from app.models import (
    ChannelEnum,
    Family,
    LanguageEnum,
    MessageTemplate,
    TemplateTypeEnum,
    Wedding,
    WhatsAppModeEnum,
)
from app.schemas import DispatchResult
from app.template_renderer import map_to_whatsapp_variables, render_template
from app.utils.i18n import format_date, resolve_lang

TEMPLATE_NOT_FOUND = "Template not found"
FAMILY_NOT_FOUND = "Family not found"


class DispatchError(Exception):
    """Fallo de dominio previsto (se traduce a {success: False, error})."""


@dataclass
class Delivery:
    """Lo que queda de un envío para que el orquestador lo registre."""
    family: Family
    wedding: Wedding
    channel: ChannelEnum
    language: str
    result: DispatchResult
    template: Optional[MessageTemplate] = None
    wa_link: Optional[str] = None
    variables: Dict[str, str] = field(default_factory=dict)

    @property
    def contact(self) -> Optional[str]:
        return contact_for(self.family, self.channel)

    @property
    def links_mode(self) -> bool:
        return self.wa_link is not None


def to_absolute_url(url: Optional[str]) -> Optional[str]:
    """Las imágenes de plantilla pueden venir relativas a la app ('/uploads/x.png')."""
    if not url:
        return None
    if url.startswith("http://") or url.startswith("https://"):
        return url
    base = os.getenv("APP_URL", "http://localhost:3000").rstrip("/")
    return f"{base}/{url.lstrip('/')}"


def load_family(db: Session, family_id: str, wedding_id: str) -> Family:
    family = db.get(Family, family_id)
    if family is None or family.wedding_id != wedding_id:
        raise DispatchError(FAMILY_NOT_FOUND)
    return family


def family_language(family: Family, wedding: Wedding) -> str:
    return resolve_lang(family.preferred_language, wedding.default_language)


def get_template_for_sending(
    db: Session,
    wedding_id: str,
    template_type: TemplateTypeEnum,
    language: str,
    channel: ChannelEnum,
) -> Optional[MessageTemplate]:
    return (
        db.query(MessageTemplate)
        .filter(
            MessageTemplate.wedding_id == wedding_id,
            MessageTemplate.type == template_type,
            MessageTemplate.language == LanguageEnum(language),
            MessageTemplate.channel == channel,
            MessageTemplate.is_active.is_(True),
        )
        .first()
    )


def build_variables(db: Session, family: Family, wedding: Wedding, channel: ChannelEnum, language: str) -> Dict[str, str]:
    """Conjunto fijo de variables de plantilla para una familia."""
    variables = {
        "familyName": family.name,
        "coupleNames": wedding.couple_names,
        "weddingDate": format_date(wedding.wedding_date, language),
        "weddingTime": wedding.wedding_time or "",
        "location": wedding.location or "",
        "magicLink": short_link_for(db, family, channel),
        "rsvpCutoffDate": format_date(wedding.rsvp_cutoff_date, language),
    }
    if family.reference_code:
        variables["referenceCode"] = family.reference_code
    return variables


def send_via_channel(
    family: Family,
    wedding: Wedding,
    channel: ChannelEnum,
    subject: str,
    body: str,
    language: str,
    image_url: Optional[str] = None,
    content_template_id: Optional[str] = None,
    variables: Optional[Dict[str, str]] = None,
    cta_label: Optional[str] = None,
    cta_url: Optional[str] = None,
):
    """Llama al adaptador del canal. Devuelve (DispatchResult, wa_link o None)."""
    if channel == ChannelEnum.EMAIL:
        result = send_dynamic_email(
            family.email, subject, body, language, wedding.couple_names, image_url,
            cta_label=cta_label, cta_url=cta_url,
        )
        return result, None

    if channel == ChannelEnum.SMS:
        return send_sms(family.phone, body), None

    # WHATSAPP
    if wedding.whatsapp_mode == WhatsAppModeEnum.LINKS:
        return DispatchResult(success=True), build_whatsapp_link(family.whatsapp_number, body)
    if content_template_id:
        whatsapp_vars = map_to_whatsapp_variables(variables or {}, image_url)
        return send_whatsapp_content_template(family.whatsapp_number, content_template_id, whatsapp_vars), None
    return send_whatsapp(family.whatsapp_number, body, image_url), None


def deliver_template(
    db: Session,
    family: Family,
    template_type: TemplateTypeEnum,
    requested_channel: Union[ChannelEnum, str, None],
) -> Delivery:
    """
    Resuelve canal y plantilla, renderiza y envía.

    Lanza DispatchError con el mensaje de dominio (sin contacto, plantilla
    ausente, fallo del proveedor); el resto de excepciones se propagan.
    """
    wedding = family.wedding
    try:
        channel = resolve_channel(requested_channel, family)
    except ChannelUnavailableError as e:
        raise DispatchError(str(e))

    language = family_language(family, wedding)
    template = get_template_for_sending(db, wedding.id, template_type, language, channel)
    if template is None:
        logger.warning(
            "[{}] Sin plantilla | wedding_id={} lang={} channel={}",
            template_type.value, wedding.id, language, channel.value,
        )
        raise DispatchError(TEMPLATE_NOT_FOUND)

    variables = build_variables(db, family, wedding, channel, language)
    subject = render_template(template.subject, variables)
    body = render_template(template.body, variables)
    image_url = to_absolute_url(template.image_url)

    result, wa_link = send_via_channel(
        family, wedding, channel, subject, body, language,
        image_url=image_url,
        content_template_id=template.content_template_id,
        variables=variables,
    )
    if not result.success:
        logger.error("[{}] Fallo enviando {} a {}: {}", template_type.value, channel.value, family.name, result.error)
        raise DispatchError(f"Failed to send {channel.value}: {result.error}")

    return Delivery(
        family=family,
        wedding=wedding,
        channel=channel,
        language=language,
        result=result,
        template=template,
        wa_link=wa_link,
        variables=variables,
    )


def dispatch_metadata(delivery: Delivery, template_type: TemplateTypeEnum, admin_id: Optional[str], **extra) -> dict:
    """Metadata común de *_SENT (se valida luego contra el modelo del tipo de evento)."""
    data = {
        "template_id": delivery.template.id if delivery.template else None,
        "template_type": template_type.value,
        "template_name": delivery.template.name if delivery.template and delivery.template.name else None,
        "language": delivery.language,
        "channel": delivery.channel.value,
        "contact": delivery.contact,
        "admin_id": admin_id,
        "message_sid": delivery.result.message_id,
    }
    if delivery.links_mode:
        data["whatsapp_mode"] = WhatsAppModeEnum.LINKS.value
    data.update(extra)
    return data
