# app/messaging.py                                                                 # Adaptadores SMS y WhatsApp (Twilio).

# =================================================================================
# 📱 SMS / WhatsApp vía Twilio
# ---------------------------------------------------------------------------------
# - send_sms / send_whatsapp: texto libre (WhatsApp admite imagen).
# - send_whatsapp_content_template: plantilla aprobada por Meta con variables
#   posicionales {"1": ..., "9": ...}.
# - build_whatsapp_link: modo LINKS, sin proveedor (enlace wa.me prellenado).
# - Todos devuelven DispatchResult; DRY_RUN=1 simula el envío.
# =================================================================================

import json                                                                       # contentVariables se envía serializado.
import os                                                                         # Credenciales y flags desde entorno.
import re                                                                         # Validación E.164.
import time                                                                       # Espera entre reintentos.
from typing import Any, Dict, Optional                                            # Tipado.
from urllib.parse import quote                                                    # Texto del enlace wa.me.

from loguru import logger                                                         # Logger del proyecto.
from twilio.rest import Client                                                    # SDK oficial de Twilio.

from app.mailer import send_alert_webhook                                         # Alertas de configuración.
from app.schemas import DispatchResult                                            # Resultado uniforme.

PHONE_RE = re.compile(r"^\+[1-9]\d{9,14}$")                                       # '+' y de 10 a 15 dígitos.
WHATSAPP_PREFIX = "whatsapp:"
SMS = "SMS"
WHATSAPP = "WHATSAPP"


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _dry_run() -> bool:
    return os.getenv("DRY_RUN", "1") == "1"


def _mask_phone(phone: Optional[str]) -> str:                                     # '+34600111222' → '+346*****222'.
    if not phone:
        return "***"
    clean = phone.replace(WHATSAPP_PREFIX, "")
    return clean[:4] + "*" * max(len(clean) - 7, 0) + clean[-3:]


def get_twilio_client() -> Client:
    """Cliente Twilio con las credenciales del entorno (se sustituye en tests)."""
    account_sid = os.getenv("TWILIO_ACCOUNT_SID", "")
    auth_token = os.getenv("TWILIO_AUTH_TOKEN", "")
    if not account_sid or not auth_token:
        send_alert_webhook("🚨 Twilio config", "Falta TWILIO_ACCOUNT_SID o TWILIO_AUTH_TOKEN (modo real).")
        raise RuntimeError("TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN must be set")
    return Client(account_sid, auth_token)


# 🔢 Normalización de teléfonos
# ---------------------------------------------------------------------------------
def is_valid_phone_number(phone: Optional[str]) -> bool:
    if not phone:
        return False
    return bool(PHONE_RE.match(phone.replace(WHATSAPP_PREFIX, "").strip()))


def format_phone_number(phone: str, message_type: str) -> str:
    """Añade '+' si falta y el prefijo 'whatsapp:' para WhatsApp."""
    formatted = phone.strip()
    if not formatted.startswith("+") and not formatted.startswith(WHATSAPP_PREFIX):
        formatted = "+" + formatted
    if message_type == WHATSAPP and not formatted.startswith(WHATSAPP_PREFIX):
        formatted = WHATSAPP_PREFIX + formatted
    return formatted


def _from_number(message_type: str) -> Optional[str]:
    env_var = "TWILIO_WHATSAPP_NUMBER" if message_type == WHATSAPP else "TWILIO_PHONE_NUMBER"
    number = os.getenv(env_var, "")
    if not number:
        return None
    if message_type == WHATSAPP and not number.startswith(WHATSAPP_PREFIX):
        number = WHATSAPP_PREFIX + number
    return number


def status_callback_url() -> Optional[str]:
    """URL de recibos de entrega/lectura; no se usa en localhost o si está desactivada."""
    app_url = os.getenv("APP_URL", "http://localhost:3000")
    enabled = os.getenv("TWILIO_WEBHOOK_ENABLED", "true") != "false"
    is_local = "localhost" in app_url or "127.0.0.1" in app_url
    if enabled and not is_local:
        return f"{app_url.rstrip('/')}/api/webhooks/twilio/status"
    return None


# 📤 Envío con reintentos
# ---------------------------------------------------------------------------------
def _create_with_retry(params: Dict[str, Any], label: str) -> DispatchResult:
    retries = _env_int("TWILIO_SEND_RETRIES", 3)
    delay_s = _env_float("TWILIO_RETRY_DELAY_S", 1.0)
    last_error = ""
    for attempt in range(retries + 1):                                            # Intento inicial + reintentos.
        try:
            message = get_twilio_client().messages.create(**params)
            logger.info("✅ {} enviado | sid={} to={} status={}", label, message.sid, _mask_phone(params["to"]), message.status)
            return DispatchResult(success=True, message_id=message.sid)
        except Exception as e:
            last_error = str(e)
            logger.error("❌ Fallo enviando {} a {}: {}", label, _mask_phone(params.get("to")), e)
            if attempt < retries:
                logger.info("⏳ Reintentando... ({} intentos restantes)", retries - attempt)
                time.sleep(delay_s)
    return DispatchResult(success=False, error=last_error or f"Failed to send {label} message")


def send_message(to: str, body: str, message_type: str, media_url: Optional[str] = None) -> DispatchResult:
    """Texto libre por SMS o WhatsApp."""
    if not is_valid_phone_number(to):
        return DispatchResult(success=False, error=f"Invalid phone number format: {to}")

    from_number = _from_number(message_type)
    if not from_number:
        env_var = "TWILIO_WHATSAPP_NUMBER" if message_type == WHATSAPP else "TWILIO_PHONE_NUMBER"
        return DispatchResult(success=False, error=f"{env_var} environment variable is not set")

    params: Dict[str, Any] = {
        "body": body,
        "from_": from_number,
        "to": format_phone_number(to, message_type),
    }
    if media_url and message_type == WHATSAPP:                                    # SMS no lleva imagen.
        params["media_url"] = [media_url]
    callback = status_callback_url()
    if callback:
        params["status_callback"] = callback

    if _dry_run():
        logger.info("[DRY_RUN] {} a {} ({} caracteres)", message_type, _mask_phone(params["to"]), len(body or ""))
        return DispatchResult(success=True)
    return _create_with_retry(params, message_type)


def send_sms(to: str, body: str) -> DispatchResult:
    return send_message(to, body, SMS)


def send_whatsapp(to: str, body: str, media_url: Optional[str] = None) -> DispatchResult:
    return send_message(to, body, WHATSAPP, media_url)


def send_whatsapp_content_template(
    to: str,
    content_sid: str,
    content_variables: Dict[str, str],
) -> DispatchResult:
    """Plantilla aprobada (Content API): la plantilla la define el proveedor, aquí solo variables."""
    if not is_valid_phone_number(to):
        return DispatchResult(success=False, error=f"Invalid phone number format: {to}")

    from_number = _from_number(WHATSAPP)
    if not from_number:
        return DispatchResult(success=False, error="TWILIO_WHATSAPP_NUMBER environment variable is not set")

    params: Dict[str, Any] = {
        "content_sid": content_sid,
        "content_variables": json.dumps(content_variables),
        "from_": from_number,
        "to": format_phone_number(to, WHATSAPP),
    }
    callback = status_callback_url()
    if callback:
        params["status_callback"] = callback

    if _dry_run():
        logger.info("[DRY_RUN] WhatsApp template {} a {}", content_sid, _mask_phone(params["to"]))
        return DispatchResult(success=True)
    return _create_with_retry(params, "WhatsApp template")


def build_whatsapp_link(phone: str, message: str) -> str:
    """Enlace wa.me con el mensaje prellenado (modo LINKS)."""
    digits = re.sub(r"\D", "", phone.replace(WHATSAPP_PREFIX, ""))
    return f"https://wa.me/{digits}?text={quote(message or '', safe='')}"
