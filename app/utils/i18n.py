# app/utils/i18n.py                                                               # Módulo central de i18n (idiomas y fechas).

from __future__ import annotations                                                # Anotaciones pospuestas.

from datetime import datetime                                                     # Tipo de fecha para formateo.
from enum import Enum                                                             # Para aceptar LanguageEnum o str.

# =================================================================================
# 🔤 Resolución de idioma: familia > boda > default
# =================================================================================

SUPPORTED_LANGS = ("ES", "EN", "FR", "IT", "DE")                                  # Idiomas con plantillas y copy propio.
DEFAULT_LANG = "EN"                                                               # Fallback estable del sistema.

LANGUAGE_NAMES = {                                                                # Nombre del idioma (para el prompt de IA).
    "ES": "Spanish",
    "EN": "English",
    "FR": "French",
    "IT": "Italian",
    "DE": "German",
}

def normalize_lang(code: str | Enum | None) -> str | None:                        # Normaliza 'es', 'es-ES', LanguageEnum.ES...
    """Devuelve 'ES'/'EN'/'FR'/'IT'/'DE' o None si no está soportado."""
    if code is None:                                                              # Sin valor...
        return None                                                               # ...sin candidato.
    if isinstance(code, Enum):                                                    # Enum del ORM...
        code = code.value                                                         # ...usa su valor.
    code = str(code).strip()                                                      # Limpia espacios.
    if not code:                                                                  # Vacío tras limpiar...
        return None                                                               # ...sin candidato.
    primary = code.split(",")[0].split(";")[0].split("-")[0].split("_")[0]        # Se queda con el subtipo primario.
    primary = primary.upper()                                                     # Los códigos internos van en mayúsculas.
    return primary if primary in SUPPORTED_LANGS else None                        # Solo idiomas soportados.

def resolve_lang(*candidates: str | Enum | None, default: str = DEFAULT_LANG) -> str:
    """Primer candidato soportado (familia, luego boda...); si ninguno, `default`."""
    for cand in candidates:                                                       # Respeta el orden de prioridad.
        lang = normalize_lang(cand)                                               # Normaliza el candidato.
        if lang:                                                                  # Si es válido...
            return lang                                                           # ...gana.
    return default if default in SUPPORTED_LANGS else DEFAULT_LANG                # Fallback garantizado.

# =================================================================================
# 🗓️ Fechas localizadas (sin depender del locale del sistema)
# =================================================================================
_MONTHS = {
    "ES": ["enero", "febrero", "marzo", "abril", "mayo", "junio", "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre"],
    "EN": ["January", "February", "March", "April", "May", "June", "July", "August", "September", "October", "November", "December"],
    "FR": ["janvier", "février", "mars", "avril", "mai", "juin", "juillet", "août", "septembre", "octobre", "novembre", "décembre"],
    "IT": ["gennaio", "febbraio", "marzo", "aprile", "maggio", "giugno", "luglio", "agosto", "settembre", "ottobre", "novembre", "dicembre"],
    "DE": ["Januar", "Februar", "März", "April", "Mai", "Juni", "Juli", "August", "September", "Oktober", "November", "Dezember"],
}
_WEEKDAYS = {                                                                     # Lunes primero (datetime.weekday()).
    "ES": ["lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo"],
    "EN": ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"],
    "FR": ["lundi", "mardi", "mercredi", "jeudi", "vendredi", "samedi", "dimanche"],
    "IT": ["lunedì", "martedì", "mercoledì", "giovedì", "venerdì", "sabato", "domenica"],
    "DE": ["Montag", "Dienstag", "Mittwoch", "Donnerstag", "Freitag", "Samstag", "Sonntag"],
}

def format_date(dt: datetime, lang: str | Enum | None) -> str:                    # Fecha corta por idioma.
    """'15 de junio de 2024' / 'June 15, 2024' / '15 juin 2024' / '15 giugno 2024' / '15. Juni 2024'."""
    code = resolve_lang(lang)                                                     # Idioma efectivo.
    month = _MONTHS[code][dt.month - 1]                                           # Nombre del mes.
    if code == "ES":
        return f"{dt.day} de {month} de {dt.year}"
    if code == "EN":
        return f"{month} {dt.day}, {dt.year}"
    if code == "DE":
        return f"{dt.day}. {month} {dt.year}"
    return f"{dt.day} {month} {dt.year}"                                          # FR / IT.

def format_long_date(dt: datetime, lang: str | Enum | None) -> str:               # Fecha con día de la semana.
    """Como `format_date` pero precedida del día de la semana ('Saturday, June 15, 2024')."""
    code = resolve_lang(lang)
    weekday = _WEEKDAYS[code][dt.weekday()]
    return f"{weekday}, {format_date(dt, code)}"
