# app/ai_assistant.py
# =================================================================================
# 🤖 Asistente IA para mensajes de WhatsApp de los invitados
# ---------------------------------------------------------------------------------
# - Construye un prompt de sistema con los datos de la boda y de la familia.
# - Responde en el idioma de la familia (→ idioma de la boda → EN).
# - Proveedores: OpenAI (chat completions) o Gemini (generateContent), vía REST.
# - Cualquier fallo devuelve None: el webhook nunca depende de la IA.
# =================================================================================

import os
from dataclasses import dataclass
from typing import List, Optional

import requests
from loguru import logger

from app.models import Family, Wedding
from app.utils.i18n import LANGUAGE_NAMES, format_long_date, resolve_lang

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"
REQUEST_TIMEOUT_S = 12  # Twilio corta el webhook a los 15 s.

MAX_TOKENS = 600
TEMPERATURE = 0.7

# Frase final fija: "contacta con los novios" en cada idioma.
CONTACT_COUPLE_SUFFIX = {
    "ES": "Para una respuesta más personal, puedes contactar directamente con los novios.",
    "EN": "For a more personal answer, feel free to contact the couple directly.",
    "FR": "Pour une réponse plus personnalisée, n'hésitez pas à contacter les mariés directement.",
    "IT": "Per una risposta più personale, non esitare a contattare direttamente gli sposi.",
    "DE": "Für eine persönlichere Antwort kannst du die Brautleute gerne direkt kontaktieren.",
}


@dataclass
class ChatMessage:
    role: str  # system / user
    content: str


# =================================================================================
# 🧩 Proveedores
# =================================================================================
class AIProvider:
    name = "base"

    def __init__(self, api_key: str, model: str):
        self.api_key = api_key
        self.model = model

    def chat(self, messages: List[ChatMessage]) -> Optional[str]:
        raise NotImplementedError


class OpenAIProvider(AIProvider):
    name = "openai"

    def chat(self, messages: List[ChatMessage]) -> Optional[str]:
        response = requests.post(
            OPENAI_URL,
            headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
            json={
                "model": self.model,
                "messages": [{"role": m.role, "content": m.content} for m in messages],
                "max_tokens": MAX_TOKENS,
                "temperature": TEMPERATURE,
            },
            timeout=REQUEST_TIMEOUT_S,
        )
        response.raise_for_status()
        choices = response.json().get("choices") or []
        if not choices:
            return None
        content = (choices[0].get("message") or {}).get("content") or ""
        return content.strip() or None


class GeminiProvider(AIProvider):
    name = "gemini"

    def chat(self, messages: List[ChatMessage]) -> Optional[str]:
        system = "\n\n".join(m.content for m in messages if m.role == "system")
        contents = [
            {"role": "model" if m.role == "assistant" else "user", "parts": [{"text": m.content}]}
            for m in messages
            if m.role != "system"
        ]
        payload = {
            "contents": contents,
            "generationConfig": {"maxOutputTokens": MAX_TOKENS, "temperature": TEMPERATURE},
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}

        response = requests.post(
            GEMINI_URL.format(model=self.model),
            params={"key": self.api_key},
            json=payload,
            timeout=REQUEST_TIMEOUT_S,
        )
        response.raise_for_status()
        candidates = response.json().get("candidates") or []
        if not candidates:
            return None
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(p.get("text", "") for p in parts)
        return text.strip() or None


def _provider_name() -> Optional[str]:
    explicit = (os.getenv("AI_PROVIDER") or "").strip().lower()
    if explicit in ("openai", "gemini"):
        return explicit
    if os.getenv("OPENAI_API_KEY"):
        return "openai"
    if os.getenv("GEMINI_API_KEY"):
        return "gemini"
    return None


def get_ai_provider() -> Optional[AIProvider]:
    """Proveedor configurado en entorno, o None si falta su API key."""
    name = _provider_name()
    if name == "openai":
        key = os.getenv("OPENAI_API_KEY")
        return OpenAIProvider(key, os.getenv("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL) if key else None
    if name == "gemini":
        key = os.getenv("GEMINI_API_KEY")
        return GeminiProvider(key, os.getenv("GEMINI_MODEL") or DEFAULT_GEMINI_MODEL) if key else None
    return None


def is_ai_configured() -> bool:
    return bool(os.getenv("OPENAI_API_KEY") or os.getenv("GEMINI_API_KEY"))


# =================================================================================
# 📝 Prompt
# =================================================================================
def build_system_prompt(wedding: Wedding, family: Optional[Family], language: str, rsvp_url: Optional[str]) -> str:
    lang = language if language in LANGUAGE_NAMES else "EN"
    suffix = CONTACT_COUPLE_SUFFIX.get(lang, CONTACT_COUPLE_SUFFIX["EN"])

    lines = [
        f"You are a helpful wedding assistant for {wedding.couple_names}'s wedding. "
        "Your role is to answer questions from wedding guests in a warm, friendly, and concise manner.",
        "",
        "## Wedding Details",
        f"- Couple: {wedding.couple_names}",
        f"- Date: {format_long_date(wedding.wedding_date, 'EN')}",
        f"- Time: {wedding.wedding_time}",
        f"- Venue/Location: {wedding.location}",
        f"- RSVP Deadline: {format_long_date(wedding.rsvp_cutoff_date, 'EN')}",
    ]
    if wedding.dress_code:
        lines.append(f"- Dress Code: {wedding.dress_code}")
    if wedding.gift_iban:
        lines.append(f"- Bank Account for Gifts (IBAN): {wedding.gift_iban}")
    if wedding.additional_info:
        lines.append(f"- Additional Information: {wedding.additional_info}")
    if wedding.transportation_question_enabled and wedding.transportation_question_text:
        lines.append(f"- Transportation: {wedding.transportation_question_text}")
    if wedding.dietary_restrictions_enabled:
        lines.append("- Dietary restrictions can be specified when submitting the RSVP.")
    if wedding.allow_guest_additions:
        lines.append("- Guests may bring additional family members (specify when RSVPing).")
    for i in (1, 2, 3):
        if getattr(wedding, f"extra_question_{i}_enabled") and getattr(wedding, f"extra_question_{i}_text"):
            lines.append(f"- {getattr(wedding, f'extra_question_{i}_text')}")

    if family is not None:
        attending = [m.name for m in family.members if m.attending is True]
        declined = [m.name for m in family.members if m.attending is False]
        pending = [m.name for m in family.members if m.attending is None]
        lines += ["", "## Guest Information", f"- Guest Family: {family.name}"]
        if rsvp_url:
            lines.append(f"- RSVP Link: {rsvp_url}")
        if attending:
            lines.append(f"- Confirmed attending ({len(attending)}): {', '.join(attending)}")
        if declined:
            lines.append(f"- Not attending ({len(declined)}): {', '.join(declined)}")
        if pending:
            lines.append(f"- Pending RSVP ({len(pending)}): {', '.join(pending)}")

    lines += [
        "",
        "## Instructions",
        f"1. Respond ONLY in {LANGUAGE_NAMES[lang]}. Do not use any other language.",
        "2. Be warm, friendly, and concise (2-3 short paragraphs maximum).",
        "3. Only answer questions relevant to the wedding using the information above.",
        "4. If you cannot answer a question from the available information, say so politely.",
        "5. If the guest's message involves anything that may require updating their RSVP "
        "(e.g. attendance, dietary restrictions, extra guests, transportation, or any other RSVP field), "
        "always include the RSVP link in your response.",
        f'6. Always end your response with this exact sentence: "{suffix}"',
    ]
    return "\n".join(lines) + "\n"


# =================================================================================
# 💬 API pública
# =================================================================================
def generate_reply(
    message: str,
    wedding: Wedding,
    family: Optional[Family],
    language: Optional[str] = None,
    rsvp_url: Optional[str] = None,
) -> Optional[str]:
    """Respuesta IA al mensaje del invitado; None si no hay proveedor o la llamada falla."""
    provider = get_ai_provider()
    if provider is None:
        return None

    lang = resolve_lang(language, family.preferred_language if family else None, wedding.default_language)
    prompt = build_system_prompt(wedding, family, lang, rsvp_url)
    logger.info(
        "[AI] Generando respuesta | proveedor={} idioma={} familia={} longitud={}",
        provider.name, lang, family.name if family else "(desconocida)", len(message),
    )
    try:
        reply = provider.chat([ChatMessage("system", prompt), ChatMessage("user", message)])
    except requests.RequestException as e:
        logger.error("[AI] Error del proveedor {}: {}", provider.name, e)
        return None
    except (ValueError, KeyError) as e:
        logger.error("[AI] Respuesta no válida de {}: {}", provider.name, e)
        return None
    if not reply:
        logger.warning("[AI] Respuesta vacía de {}", provider.name)
    return reply
