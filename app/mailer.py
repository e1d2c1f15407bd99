# app/mailer.py  # Adaptador de Email (SendGrid).                                    # Indica el nombre del módulo y su ubicación.

# =================================================================================
# 📧 MÓDULO DE ENVÍO DE CORREOS (HTML)                                               # Describe propósito del módulo.
# ---------------------------------------------------------------------------------
# Envía por SendGrid y devuelve siempre un DispatchResult {success, message_id,      # Contrato uniforme de adaptadores.
# error}. DRY_RUN=1 simula el envío (dev/CI). Pie de correo localizado.              # Modo simulación.
# =================================================================================

# 🐍 Importaciones
import html                                                                            # Escape de valores libres (nombres, CTA).
import json                                                                            # Payload del webhook de alertas.
import os                                                                              # Acceso a variables de entorno (.env).
from enum import Enum                                                                  # Idioma como LanguageEnum o str.
from typing import Optional, Union                                                     # Tipado.

import requests                                                                        # HTTP simple para webhook opcional.
from loguru import logger                                                              # Logger estructurado para trazas legibles.
from sendgrid import SendGridAPIClient                                                 # Cliente oficial de SendGrid.
from sendgrid.helpers.mail import From, Mail                                           # Construcción del mensaje.

from app.schemas import DispatchResult                                                 # Resultado uniforme.
from app.utils.i18n import resolve_lang                                                # Idioma efectivo (ES/EN/FR/IT/DE).

# =================================================================================
# ✅ Configuración
# ---------------------------------------------------------------------------------
# Se lee en cada envío (no al importar) para que los tests y el scheduler puedan
# cambiar DRY_RUN o credenciales sin recargar el módulo.
# =================================================================================
EMAIL_SENDER_NAME_DEFAULT = "Wedding RSVP"                                            # Nombre de remitente por defecto.


def _dry_run() -> bool:                                                                # DRY_RUN evaluado en runtime.
    return os.getenv("DRY_RUN", "1") == "1"


def _mask_email(email: Optional[str]) -> str:                                          # 'ana@x.com' → 'an***@x.com' (logs).
    if not email or "@" not in email:
        return "***"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"

# =================================================================================
# 📢 Webhook de alertas (opcional)                                                     # Sección de webhook opcional.
# =================================================================================
def send_alert_webhook(title: str, message: str) -> None:                             # Notifica fallos de proveedor por webhook.
    """Envía alerta a webhook si ALERT_WEBHOOK_URL está definido; silencioso si no."""
    url = os.getenv("ALERT_WEBHOOK_URL")                                              # Lee la URL del webhook desde el entorno.
    if not url:                                                                       # Si no hay URL configurada...
        return                                                                        # No hace nada.
    try:                                                                              # Intenta envío del webhook.
        payload = {"text": f"{title}\n{message}"}                                     # Payload simple (Slack/Teams compatible).
        headers = {"Content-Type": "application/json"}                                # Cabeceras JSON.
        requests.post(url, data=json.dumps(payload), headers=headers, timeout=5)      # POST con timeout de 5s.
    except Exception as e:                                                            # Un webhook caído no afecta al envío.
        logger.error("No se pudo notificar alerta por webhook: {}", e)

# =================================================================================
# 🌍 Copy localizado del pie y del enlace de acción
# =================================================================================
FOOTER_COPY = {                                                                        # Cierre del correo por idioma.
    "ES": "Con cariño,",
    "EN": "With love,",
    "FR": "Avec amour,",
    "IT": "Con affetto,",
    "DE": "Mit herzlichen Grüßen,",
}
AUTOMATED_NOTICE = {                                                                   # Aviso de correo automático.
    "ES": "Este mensaje se ha enviado automáticamente. Si tienes dudas, responde a los novios directamente.",
    "EN": "This message was sent automatically. If you have questions, please contact the couple directly.",
    "FR": "Ce message a été envoyé automatiquement. Pour toute question, contactez directement les mariés.",
    "IT": "Questo messaggio è stato inviato automaticamente. Per domande, contatta direttamente gli sposi.",
    "DE": "Diese Nachricht wurde automatisch versendet. Bei Fragen wenden Sie sich bitte direkt an das Brautpaar.",
}
CONFIRMATION_SUBJECTS = {                                                              # Asunto de la confirmación de RSVP.
    "ES": "¡Gracias por Confirmar tu Asistencia!",
    "EN": "Thank You for Confirming Your Attendance!",
    "FR": "Merci d'Avoir Confirmé Votre Présence!",
    "IT": "Grazie per Aver Confermato la Tua Presenza!",
    "DE": "Vielen Dank für Ihre Bestätigung!",
}

# =================================================================================
# ✉️ Envío (SendGrid)
# =================================================================================
def send_email_html(
    to_email: str,
    subject: str,
    html_body: str,
    text_fallback: str = "",
    sender_name: Optional[str] = None,
) -> DispatchResult:
    """Envía un correo HTML por SendGrid. Nunca lanza: los fallos van en `error`."""
    from_email = os.getenv("EMAIL_FROM", "")                                          # Remitente actual.
    api_key = os.getenv("SENDGRID_API_KEY", "")                                       # API Key de SendGrid.
    name = sender_name or os.getenv("EMAIL_SENDER_NAME", EMAIL_SENDER_NAME_DEFAULT)   # Nombre visible del remitente.

    if _dry_run():                                                                    # Si es simulación…
        logger.info("[DRY_RUN] (HTML) Simular envío a {} | Asunto: {}", _mask_email(to_email), subject)
        return DispatchResult(success=True)                                           # Éxito simulado, sin message_id.
    if not from_email or not api_key:                                                 # Config crítica ausente…
        logger.error("Config de mailer incompleta: EMAIL_FROM o SENDGRID_API_KEY ausentes.")
        send_alert_webhook("🚨 Mailer config (SendGrid)", "Falta EMAIL_FROM o SENDGRID_API_KEY (modo real).")
        return DispatchResult(success=False, error="Email provider is not configured")

    message = Mail(                                                                   # Construye el mensaje HTML.
        from_email=From(from_email, name),                                            # Remitente con nombre.
        to_emails=to_email,
        subject=subject,
        plain_text_content=(text_fallback or "This email is best viewed in an HTML-compatible client."),
        html_content=html_body,
    )
    try:                                                                              # Intenta envío con SendGrid.
        response = SendGridAPIClient(api_key).send(message)
        message_id = response.headers.get("X-Message-Id") if response.headers else None
        logger.info("SendGrid response: {} | X-Message-Id: {}", response.status_code, message_id)
        if 200 <= response.status_code < 300:                                         # Éxito si 2xx.
            return DispatchResult(success=True, message_id=message_id)
        logger.error("SendGrid error -> status={} | body={}", response.status_code, getattr(response, "body", None))
        send_alert_webhook("🚨 Mailer error (SendGrid)", f"No se pudo enviar a {_mask_email(to_email)}. Código: {response.status_code}.")
        return DispatchResult(success=False, error=f"SendGrid returned status {response.status_code}")
    except Exception as e:                                                            # Excepciones de red o de API.
        logger.exception("Excepción enviando con SendGrid a {}: {}", _mask_email(to_email), e)
        send_alert_webhook("🚨 Mailer exception (SendGrid)", f"Excepción enviando a {_mask_email(to_email)}. Error: {e}")
        return DispatchResult(success=False, error=str(e) or "Failed to send email")

# =================================================================================
# 🧩 Correos compuestos
# =================================================================================
def build_dynamic_html(
    body: str,
    couple_names: str,
    language: Union[str, Enum, None],
    image_url: Optional[str] = None,
    cta_label: Optional[str] = None,
    cta_url: Optional[str] = None,
) -> str:
    """HTML del correo: imagen opcional, cuerpo (saltos de línea → <br>), CTA y pie."""
    lang = resolve_lang(language)                                                     # Idioma efectivo.
    parts = ["<div style='font-family:Georgia,serif;line-height:1.6;max-width:600px;margin:0 auto'>"]
    if image_url:                                                                     # Imagen de la plantilla (URL absoluta).
        parts.append(f"<img src='{html.escape(image_url, quote=True)}' alt='' style='width:100%;border-radius:8px'/>")
    body_html = (body or "").replace("\r\n", "\n").replace("\n", "<br/>")             # El cuerpo ya viene redactado (sin escapar).
    parts.append(f"<div style='padding:24px 0;font-size:16px'>{body_html}</div>")
    if cta_label and cta_url:                                                         # Botón de acción (magic link).
        parts.append(
            f"<p style='text-align:center'><a href='{html.escape(cta_url, quote=True)}' "
            "style='background:#8b5e3c;color:#fff;padding:12px 24px;border-radius:6px;text-decoration:none'>"
            f"{html.escape(cta_label)}</a></p>"
        )
    parts.append("<div style='border-top:1px solid #eaeaea;margin-top:32px;padding-top:24px;color:#666;font-size:14px'>")
    parts.append(f"<p>{FOOTER_COPY[lang]}<br/>{html.escape(couple_names or '')}</p>")
    parts.append(f"<p style='font-size:12px'>{AUTOMATED_NOTICE[lang]}</p>")
    parts.append("</div></div>")
    return "".join(parts)


def send_dynamic_email(
    to_email: str,
    subject: str,
    body: str,
    language: Union[str, Enum, None],
    couple_names: str,
    image_url: Optional[str] = None,
    cta_label: Optional[str] = None,
    cta_url: Optional[str] = None,
    text_body: Optional[str] = None,
) -> DispatchResult:
    """Correo a partir de una plantilla ya renderizada (invitación, save-the-date, recordatorio...).

    `text_body` es la versión sin escapar para la parte de texto plano; por defecto, `body`.
    """
    html_body = build_dynamic_html(body, couple_names, language, image_url, cta_label, cta_url)
    text = text_body if text_body is not None else body
    if cta_url:                                                                       # Versión texto plano.
        text = f"{text}\n\n{cta_url}"
    return send_email_html(to_email, subject, html_body, text_fallback=text, sender_name=couple_names or None)


def send_rsvp_confirmation(
    to_email: str,
    language: Union[str, Enum, None],
    family_name: str,
    couple_names: str,
    wedding_date: str,
    attending_count: int,
) -> DispatchResult:
    """Confirmación de RSVP con copy fijo (cuando la boda no tiene plantilla CONFIRMATION)."""
    lang = resolve_lang(language)
    bodies = {                                                                        # Cuerpo por idioma.
        "ES": f"Hola, Familia {family_name}:\n\nHemos recibido vuestra confirmación para la boda de {couple_names} el {wedding_date}. Invitados que asistirán: {attending_count}.",
        "EN": f"Hello, {family_name} Family!\n\nWe have received your RSVP for {couple_names}'s wedding on {wedding_date}. Attending guests: {attending_count}.",
        "FR": f"Bonjour, Famille {family_name} !\n\nNous avons bien reçu votre réponse pour le mariage de {couple_names} le {wedding_date}. Invités présents : {attending_count}.",
        "IT": f"Ciao, Famiglia {family_name}!\n\nAbbiamo ricevuto la vostra conferma per il matrimonio di {couple_names} il {wedding_date}. Ospiti presenti: {attending_count}.",
        "DE": f"Hallo, Familie {family_name}!\n\nWir haben Ihre Rückmeldung zur Hochzeit von {couple_names} am {wedding_date} erhalten. Anwesende Gäste: {attending_count}.",
    }
    body = bodies[lang]
    return send_dynamic_email(                                                        # Escapado solo en la parte HTML.
        to_email, CONFIRMATION_SUBJECTS[lang], html.escape(body), lang, couple_names, text_body=body
    )
