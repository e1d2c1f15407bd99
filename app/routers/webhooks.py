# app/routers/webhooks.py  # Webhooks entrantes de Twilio (mensajes de WhatsApp y recibos de estado).

# =================================================================================
# 📥 Router: Webhooks de Twilio
# ---------------------------------------------------------------------------------
# - POST /api/webhooks/whatsapp: mensaje entrante de un invitado. Guarda fotos en
#   la galería, registra MESSAGE_RECEIVED y contesta con IA vía TwiML.
# - POST /api/webhooks/twilio/status: recibos delivered/read/failed enlazados
#   al evento original por message_sid.
# Ambos validan la firma X-Twilio-Signature antes de tocar la BD. Una vez
# validada, cualquier error se registra y se responde 200 para que Twilio no
# reintente.
# =================================================================================

import os
from typing import Dict, Optional
from xml.sax.saxutils import escape

import requests
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from loguru import logger
from sqlalchemy import or_
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from twilio.request_validator import RequestValidator

from app import ai_assistant
from app.db import session_scope
from app.magic_link import short_link_for
from app.messaging import _mask_phone
from app.models import (
    ChannelEnum,
    EventTypeEnum,
    Family,
    PhotoSourceEnum,
    TrackingEvent,
    WeddingPhoto,
)
from app.storage import generate_unique_filename, save_file
from app.tracking import (
    StaleEventError,
    create_provisional_event,
    finalize_event,
    record_event,
    track_event,
    with_db_retry,
)
from app.utils.i18n import resolve_lang

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])

BODY_MAX_CHARS = 1000          # Cuerpo guardado en MESSAGE_RECEIVED.
REPLY_PREVIEW_CHARS = 300      # Vista previa guardada en AI_REPLY_SENT.
MEDIA_TIMEOUT_S = 15
PHOTO_THANKS_REPLY = "¡Gracias por compartir tu foto! 📸 La hemos añadido a la galería de la boda."

# Estado de Twilio → tipo de evento (el resto de estados se ignoran).
STATUS_EVENT_TYPES = {
    "delivered": EventTypeEnum.MESSAGE_DELIVERED,
    "read": EventTypeEnum.MESSAGE_READ,
    "failed": EventTypeEnum.MESSAGE_FAILED,
    "undelivered": EventTypeEnum.MESSAGE_FAILED,
}

_XML_ENTITIES = {'"': "&quot;", "'": "&apos;"}  # & < > los escapa `escape` por defecto.


# 🧾 TwiML
# ---------------------------------------------------------------------------------
def empty_twiml() -> Response:
    return Response(
        content='<?xml version="1.0" encoding="UTF-8"?><Response></Response>',
        media_type="text/xml",
    )


def message_twiml(text: str) -> Response:
    body = escape(text, _XML_ENTITIES)
    return Response(
        content=f'<?xml version="1.0" encoding="UTF-8"?><Response><Message>{body}</Message></Response>',
        media_type="text/xml",
    )


def extract_phone(raw: Optional[str]) -> str:
    """'whatsapp:+34600111222' → '+34600111222'."""
    value = (raw or "").strip()
    if value.lower().startswith("whatsapp:"):
        value = value[len("whatsapp:"):]
    return value.strip()


# 🔏 Firma de Twilio
# ---------------------------------------------------------------------------------
async def _read_form(request: Request) -> Dict[str, str]:
    form = await request.form()
    return {key: str(value) for key, value in form.items()}


def is_valid_signature(url: str, params: Dict[str, str], signature: str, auth_token: str) -> bool:
    return RequestValidator(auth_token).validate(url, params, signature)


# =================================================================================
# 📸 Fotos recibidas por WhatsApp
# =================================================================================
def download_media(url: str) -> Optional[bytes]:
    """Descarga un adjunto de Twilio (requiere basic auth de la cuenta)."""
    response = requests.get(
        url,
        auth=(os.getenv("TWILIO_ACCOUNT_SID", ""), os.getenv("TWILIO_AUTH_TOKEN", "")),
        timeout=MEDIA_TIMEOUT_S,
    )
    if response.status_code != 200:
        logger.warning("[WHATSAPP] Descarga de media fallida | status={} url={}", response.status_code, url)
        return None
    return response.content


def store_media(db: Session, family: Family, params: Dict[str, str], num_media: int) -> int:
    """Guarda en la galería cada imagen adjunta. Devuelve cuántas se guardaron."""
    stored = 0
    for i in range(num_media):
        media_url = params.get(f"MediaUrl{i}")
        content_type = params.get(f"MediaContentType{i}") or "image/jpeg"
        if not media_url or not content_type.startswith("image/"):
            continue
        try:
            data = download_media(media_url)
            if data is None:
                continue
            ext = content_type.split("/")[1].split(";")[0] or "jpg"
            storage_key = f"gallery/{family.wedding_id}/{generate_unique_filename(f'whatsapp-photo.{ext}')}"
            url = save_file(storage_key, data, content_type)
            db.add(
                WeddingPhoto(
                    wedding_id=family.wedding_id,
                    url=url,
                    storage_key=storage_key,
                    source=PhotoSourceEnum.WHATSAPP,
                    sender_name=family.name,
                    sender_phone=family.whatsapp_number or family.phone,
                    approved=True,
                )
            )
            db.commit()
            stored += 1
            logger.info("[WHATSAPP] Foto guardada | wedding_id={} familia={}", family.wedding_id, family.name)
        except Exception as e:
            db.rollback()
            logger.error("[WHATSAPP] Error guardando media {} de {}: {}", i, family.name, e)
    return stored


# =================================================================================
# 💬 POST /api/webhooks/whatsapp: Mensaje entrante
# =================================================================================
def _find_family(db: Session, phone: str) -> Optional[Family]:
    return (
        db.query(Family)
        .filter(or_(Family.whatsapp_number == phone, Family.phone == phone))
        .order_by(Family.created_at)
        .first()
    )


def _finalize_received(db: Session, event: Optional[TrackingEvent], fields: Dict[str, str]) -> None:
    if event is None:
        return
    try:
        with_db_retry(lambda: finalize_event(db, event.id, event.version, fields))
    except StaleEventError as e:
        logger.warning("[WHATSAPP] MESSAGE_RECEIVED ya finalizado: {}", e)
    except Exception as e:
        db.rollback()
        logger.error("[WHATSAPP] No se pudo finalizar MESSAGE_RECEIVED {}: {}", event.id, e)


def handle_inbound_message(params: Dict[str, str]) -> Response:
    phone = extract_phone(params.get("From"))
    body = (params.get("Body") or "").strip()
    message_sid = params.get("MessageSid") or ""
    try:
        num_media = int(params.get("NumMedia") or "0")
    except ValueError:
        num_media = 0

    logger.info(
        "[WHATSAPP] Mensaje entrante | from={} sid={} longitud={} media={}",
        _mask_phone(phone), message_sid, len(body), num_media,
    )
    if not phone:
        return empty_twiml()

    with session_scope() as db:
        family = _find_family(db, phone)

        if num_media > 0:
            if family is not None:
                store_media(db, family, params, num_media)
            if not body:
                return message_twiml(PHOTO_THANKS_REPLY)

        if not body:
            return empty_twiml()

        received = None
        if family is not None:
            received = create_provisional_event(
                db, family.id, family.wedding_id, EventTypeEnum.MESSAGE_RECEIVED, ChannelEnum.WHATSAPP,
                {"message_sid": message_sid, "from": phone, "body": body[:BODY_MAX_CHARS]},
            )
        else:
            logger.info("[WHATSAPP] Remitente sin familia asociada: {}", _mask_phone(phone))

        if not ai_assistant.is_ai_configured() or family is None:
            _finalize_received(db, received, {})
            return empty_twiml()

        wedding = family.wedding
        language = resolve_lang(family.preferred_language, wedding.default_language)
        try:
            rsvp_url = short_link_for(db, family, ChannelEnum.WHATSAPP)
        except Exception as e:
            db.rollback()
            logger.warning("[WHATSAPP] Sin enlace corto para {}: {}", family.name, e)
            rsvp_url = None

        reply = ai_assistant.generate_reply(body, wedding, family, language, rsvp_url)
        if not reply:
            _finalize_received(db, received, {})
            return empty_twiml()

        _finalize_received(db, received, {"ai_reply": reply})
        try:
            with_db_retry(
                lambda: record_event(
                    db, family.id, family.wedding_id, EventTypeEnum.AI_REPLY_SENT, ChannelEnum.WHATSAPP,
                    {"message_sid": message_sid, "reply_preview": reply[:REPLY_PREVIEW_CHARS]},
                )
            )
        except Exception as e:
            logger.error("[WHATSAPP] No se pudo registrar AI_REPLY_SENT: {}", e)

        return message_twiml(reply)


@router.post("/whatsapp")
async def whatsapp_inbound(request: Request):
    try:
        params = await _read_form(request)
        signature = request.headers.get("X-Twilio-Signature")
        if not signature:
            return JSONResponse({"success": False}, status_code=400)

        auth_token = os.getenv("TWILIO_AUTH_TOKEN")
        if not auth_token:
            logger.warning("[WHATSAPP] TWILIO_AUTH_TOKEN no configurado; mensaje ignorado")
            return empty_twiml()

        if not is_valid_signature(str(request.url), params, signature, auth_token):
            logger.warning("[WHATSAPP] Firma inválida | sid={}", params.get("MessageSid"))
            return JSONResponse({"success": False}, status_code=403)

        return await run_in_threadpool(handle_inbound_message, params)
    except Exception as e:
        logger.exception("[WHATSAPP] Error procesando el webhook: {}", e)
        return empty_twiml()


# =================================================================================
# 📬 POST /api/webhooks/twilio/status: Recibos de entrega y lectura
# =================================================================================
def handle_status_callback(params: Dict[str, str]) -> JSONResponse:
    message_sid = params.get("MessageSid")
    status = (params.get("MessageStatus") or "").lower()
    event_type = STATUS_EVENT_TYPES.get(status)
    if event_type is None:
        return JSONResponse({"success": True})
    if not message_sid:
        return JSONResponse({"success": False}, status_code=400)

    with session_scope() as db:
        original = (
            db.query(TrackingEvent)
            .filter(
                TrackingEvent.message_sid == message_sid,
                TrackingEvent.event_type.notin_(set(STATUS_EVENT_TYPES.values())),
            )
            .order_by(TrackingEvent.timestamp.asc())
            .first()
        )
        if original is None:
            logger.info("[STATUS] Sin evento original para sid={}", message_sid)
            return JSONResponse({"success": True})

        duplicate = (
            db.query(TrackingEvent.id)
            .filter(TrackingEvent.message_sid == message_sid, TrackingEvent.event_type == event_type)
            .first()
        )
        if duplicate:
            return JSONResponse({"success": True})

        event = track_event(
            db, original.family_id, original.wedding_id, event_type, original.channel,
            {
                "message_sid": message_sid,
                "status": status,
                "original_event_id": original.id,
                "original_event_type": (original.meta or {}).get("template_type") or "UNKNOWN",
                "error_code": params.get("ErrorCode"),
                "error_message": params.get("ErrorMessage"),
            },
        )
        if event is not None:
            logger.info("[STATUS] {} | sid={} family_id={}", event_type.value, message_sid, original.family_id)
    return JSONResponse({"success": True})


@router.post("/twilio/status")
async def twilio_status(request: Request):
    try:
        params = await _read_form(request)
        signature = request.headers.get("X-Twilio-Signature")
        if not signature:
            return JSONResponse({"success": False}, status_code=400)

        auth_token = os.getenv("TWILIO_AUTH_TOKEN")
        if not auth_token:
            logger.error("[STATUS] TWILIO_AUTH_TOKEN no configurado")
            return JSONResponse({"success": False}, status_code=500)

        if not is_valid_signature(str(request.url), params, signature, auth_token):
            logger.warning("[STATUS] Firma inválida | sid={} status={}", params.get("MessageSid"), params.get("MessageStatus"))
            return JSONResponse({"success": False}, status_code=403)

        return await run_in_threadpool(handle_status_callback, params)
    except Exception as e:
        logger.exception("[STATUS] Error procesando el callback: {}", e)
        return JSONResponse({"success": True})
