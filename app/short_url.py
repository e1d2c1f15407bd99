# app/short_url.py
# =================================================================================
# 🔗 Enlaces cortos /inv/{INICIALES}/{CODIGO}
# ---------------------------------------------------------------------------------
# - INICIALES: derivadas de couple_names ("Laura y Javier" → "LJ"), únicas entre
#   bodas con sufijo numérico en colisión (LJ, LJ1, LJ2...).
# - CODIGO: base-62 de 3 caracteres, único dentro de la boda (fallback a 4).
# - La resolución código → magic_token se cachea con TTL; la entrada se invalida
#   cuando el admin regenera el token de la familia.
# =================================================================================

import os
import secrets
import time
from typing import Dict, Optional, Tuple

from loguru import logger
from sqlalchemy.orm import Session

from app.models import Family, Wedding

BASE62 = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
NAME_SEPARATORS = (" y ", " & ", " and ", " e ", " i ", " und ", " et ", " och ")

try:
    SHORT_URL_CACHE_TTL_S = float(os.getenv("SHORT_URL_CACHE_TTL_HOURS", "24")) * 3600
except ValueError:
    SHORT_URL_CACHE_TTL_S = 24 * 3600.0


class ShortUrlCache:
    """Cache TTL en memoria (iniciales, código) → magic_token. Solo guarda aciertos y tiene tope de entradas."""

    def __init__(self, ttl_s: float = SHORT_URL_CACHE_TTL_S, max_entries: int = 10_000):
        self.ttl_s = ttl_s
        self.max_entries = max_entries
        self._entries: Dict[Tuple[str, str], Tuple[str, float]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, initials: str, code: str) -> Optional[str]:
        entry = self._entries.get((initials, code))
        if entry is None:
            return None
        token, cached_at = entry
        if time.time() - cached_at >= self.ttl_s:
            self._entries.pop((initials, code), None)
            return None
        return token

    def set(self, initials: str, code: str, token: str) -> None:
        self._entries.pop((initials, code), None)
        while len(self._entries) >= self.max_entries:                             # Expulsa la entrada más antigua.
            self._entries.pop(next(iter(self._entries)))
        self._entries[(initials, code)] = (token, time.time())

    def invalidate(self, initials: str, code: str) -> None:
        self._entries.pop((initials, code), None)

    def clear(self) -> None:
        self._entries.clear()


short_url_cache = ShortUrlCache()


def parse_initials(couple_names: str) -> str:
    """'Laura y Javier' → 'LJ'; un solo nombre → sus dos primeras letras."""
    trimmed = (couple_names or "").strip()
    lowered = trimmed.lower()
    for sep in NAME_SEPARATORS:
        idx = lowered.find(sep)
        if idx != -1:
            first = trimmed[:idx].strip()
            second = trimmed[idx + len(sep):].strip()
            if first and second:
                return (first[0] + second[0]).upper()
    return trimmed[:2].upper()


def ensure_wedding_initials(db: Session, wedding: Wedding) -> str:
    """Devuelve (y persiste si hace falta) las iniciales únicas de la boda."""
    if wedding.short_url_initials:
        return wedding.short_url_initials

    base = parse_initials(wedding.couple_names)
    candidate, suffix = base, 0
    while db.query(Wedding.id).filter(Wedding.short_url_initials == candidate).first():
        suffix += 1
        candidate = f"{base}{suffix}"

    wedding.short_url_initials = candidate
    db.commit()
    return candidate


def _random_code(length: int) -> str:
    return "".join(secrets.choice(BASE62) for _ in range(length))


def generate_short_code(db: Session, wedding_id: str) -> str:
    """Código único dentro de la boda: 20 intentos de 3 caracteres y luego de 4."""
    for length in (3, 4):
        for _ in range(20):
            code = _random_code(length)
            taken = (
                db.query(Family.id)
                .filter(Family.wedding_id == wedding_id, Family.short_url_code == code)
                .first()
            )
            if not taken:
                return code
    raise RuntimeError("Failed to generate a unique short code")


def ensure_short_code(db: Session, family: Family) -> str:
    if family.short_url_code:
        return family.short_url_code
    family.short_url_code = generate_short_code(db, family.wedding_id)
    db.commit()
    return family.short_url_code


def get_short_url_path(db: Session, family: Family) -> str:
    """Ruta corta de la familia, creando iniciales/código si faltan. Ej: '/inv/LJ/abc'."""
    initials = ensure_wedding_initials(db, family.wedding)
    code = ensure_short_code(db, family)
    return f"/inv/{initials}/{code}"


def resolve_short_url(db: Session, initials: str, code: str) -> Optional[str]:
    """Resuelve (iniciales, código) al magic_token vigente, pasando por la cache."""
    token = short_url_cache.get(initials, code)
    if token:
        return token

    family = (
        db.query(Family)
        .join(Wedding, Family.wedding_id == Wedding.id)
        .filter(Family.short_url_code == code, Wedding.short_url_initials == initials)
        .first()
    )
    token = family.magic_token if family else None
    if token is None:                                                             # Los fallos no se cachean.
        logger.info("Short URL sin coincidencia: /inv/{}/{}", initials, code)
        return None
    short_url_cache.set(initials, code, token)
    return token
