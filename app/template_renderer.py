# app/template_renderer.py
# =================================================================================
# 🧩 Renderizado de plantillas {{variable}}
# ---------------------------------------------------------------------------------
# - Sustitución pura: los placeholders sin valor se dejan tal cual.
# - No se escapa HTML (el cuerpo lo redacta el planner).
# - Mapeo de variables a posiciones {{1}}..{{9}} de las Content Templates de WhatsApp.
# =================================================================================

import os
import re
from typing import Dict, List, Mapping, Optional
from urllib.parse import urlparse

PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")

# Variables que el admin puede usar en sus plantillas (se muestran en la UI).
AVAILABLE_PLACEHOLDERS = [
    {"key": "familyName", "label": "Family Name", "example": "Smith"},
    {"key": "coupleNames", "label": "Couple Names", "example": "John & Jane Smith"},
    {"key": "weddingDate", "label": "Wedding Date", "example": "Saturday, June 15, 2024"},
    {"key": "weddingTime", "label": "Wedding Time", "example": "4:00 PM"},
    {"key": "location", "label": "Location", "example": "Grand Ballroom, Downtown Hotel"},
    {"key": "magicLink", "label": "Magic Link", "example": "https://wedding.com/inv/LJ/abc"},
    {"key": "rsvpCutoffDate", "label": "RSVP Cutoff Date", "example": "Friday, May 31, 2024"},
    {"key": "referenceCode", "label": "Reference Code", "example": "REF-12345-67890"},
]

# Posición de cada variable en las plantillas aprobadas por Meta.
WHATSAPP_VARIABLE_POSITIONS = {
    "familyName": 1,
    "coupleNames": 2,
    "weddingDate": 3,
    "weddingTime": 4,
    "inviteImageName": 5,
    "magicLink": 6,
    "rsvpCutoffDate": 7,
    "referenceCode": 8,
    "location": 9,
}


def render_template(template: str, variables: Mapping[str, Optional[str]]) -> str:
    """Sustituye cada {{clave}} por su valor; si la clave no existe o es None, la deja igual."""
    def _replace(match: "re.Match[str]") -> str:
        value = variables.get(match.group(1))
        return match.group(0) if value is None else str(value)

    return PLACEHOLDER_RE.sub(_replace, template or "")


def get_placeholders(template: str) -> List[str]:
    """Placeholders distintos en orden de aparición."""
    seen: List[str] = []
    for key in PLACEHOLDER_RE.findall(template or ""):
        if key not in seen:
            seen.append(key)
    return seen


def has_all_placeholders(template: str, required: List[str]) -> bool:
    found = set(get_placeholders(template))
    return all(key in found for key in required)


def _is_blob_platform() -> bool:
    # En almacenamiento tipo blob la URL completa (con query firmada) es el identificador.
    return (
        os.getenv("PLATFORM_OPTIMIZATION", "").lower() == "vercel"
        or bool(os.getenv("BLOB_READ_WRITE_TOKEN"))
    )


def _image_name(image_url: Optional[str]) -> str:
    if not image_url:
        return ""
    if _is_blob_platform():
        return image_url
    path = urlparse(image_url).path or image_url
    return path.rstrip("/").rsplit("/", 1)[-1]


def map_to_whatsapp_variables(
    variables: Mapping[str, Optional[str]],
    image_url: Optional[str] = None,
) -> Dict[str, str]:
    """Convierte las variables de la app en {"1": ..., "9": ...} para contentVariables."""
    values = dict(variables)
    values["inviteImageName"] = _image_name(image_url)
    return {
        str(position): values.get(key) or ""
        for key, position in WHATSAPP_VARIABLE_POSITIONS.items()
    }
