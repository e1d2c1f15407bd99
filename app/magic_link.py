# app/magic_link.py                                                               # Magic links de invitados (acceso sin contraseña).

# =================================================================================
# 🔐 MAGIC LINKS
# ---------------------------------------------------------------------------------
# - El token es un UUID v4 opaco guardado en families.magic_token (único, nunca
#   reutilizado).
# - Validación de solo lectura: formato → existencia → fecha de boda pasada.
# - Generación del enlace corto con ?channel= para atribuir la apertura.
# =================================================================================

import os                                                                         # APP_URL desde entorno.
import re                                                                         # Validación de formato del token.
import uuid                                                                       # Generación de tokens v4.
from datetime import datetime                                                     # Comparación con la fecha de boda.
from typing import Dict, Iterable, Optional                                       # Tipado.
from urllib.parse import parse_qs, urlencode, urljoin, urlparse                   # Construcción/lectura de URLs.

from loguru import logger                                                         # Logger del proyecto.
from pydantic import BaseModel, ConfigDict                                        # Resultado tipado.
from sqlalchemy.orm import Session, joinedload                                    # Sesión y carga ansiosa.

from app.models import ChannelEnum, Family, Theme, Wedding                        # Modelos ORM.
from app.short_url import get_short_url_path, short_url_cache                     # Enlaces cortos y su cache.

APP_URL = os.getenv("APP_URL", "http://localhost:3000")                           # Base pública de la app.

UUID_V4_RE = re.compile(                                                          # UUID v4 (versión 4, variante 8/9/a/b).
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

# Códigos de error devueltos por la validación.
INVALID_TOKEN_FORMAT = "INVALID_TOKEN_FORMAT"
TOKEN_NOT_FOUND = "TOKEN_NOT_FOUND"
TOKEN_EXPIRED = "TOKEN_EXPIRED"
VALIDATION_ERROR = "VALIDATION_ERROR"


class MagicLinkValidation(BaseModel):
    """Resultado de validar un token: o `valid` con contexto, o `error`."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    valid: bool
    family: Optional[Family] = None
    wedding: Optional[Wedding] = None
    theme: Optional[Theme] = None
    error: Optional[str] = None


def is_valid_token_format(token: Optional[str]) -> bool:                          # Chequeo barato antes de ir a BD.
    return bool(token) and bool(UUID_V4_RE.match(token))


def validate_magic_link(db: Session, token: str) -> MagicLinkValidation:
    """Resuelve token → familia (con miembros), boda y tema. No escribe nada."""
    if not is_valid_token_format(token):                                          # 1) Formato.
        return MagicLinkValidation(valid=False, error=INVALID_TOKEN_FORMAT)

    try:
        family = (                                                                # 2) Existencia.
            db.query(Family)
            .options(joinedload(Family.wedding).joinedload(Wedding.theme))
            .filter(Family.magic_token == token)
            .first()
        )
        if family is None:
            return MagicLinkValidation(valid=False, error=TOKEN_NOT_FOUND)

        wedding = family.wedding
        if wedding.wedding_date < datetime.utcnow():                              # 3) La boda ya pasó.
            return MagicLinkValidation(valid=False, error=TOKEN_EXPIRED)

        return MagicLinkValidation(valid=True, family=family, wedding=wedding, theme=wedding.theme)
    except Exception as e:                                                        # Fallo inesperado de almacenamiento.
        logger.exception("Error validando magic link: {}", e)
        return MagicLinkValidation(valid=False, error=VALIDATION_ERROR)


def build_link(path: str, channel: Optional[ChannelEnum] = None, base_url: Optional[str] = None) -> str:
    """URL absoluta para `path`, con ?channel=<canal en minúsculas> si se indica."""
    url = urljoin((base_url or APP_URL).rstrip("/") + "/", path.lstrip("/"))
    if channel:
        url = f"{url}?{urlencode({'channel': ChannelEnum(channel).value.lower()})}"
    return url


def ensure_magic_token(db: Session, family: Family) -> str:
    """Token vigente de la familia; si no tiene (alta nueva o invalidado), emite uno."""
    if family.magic_token:
        return family.magic_token
    return _rotate_token(db, family)


def short_link_for(db: Session, family: Family, channel: Optional[ChannelEnum] = None) -> str:
    """Enlace corto del token vigente (sin rotarlo)."""
    ensure_magic_token(db, family)
    return build_link(get_short_url_path(db, family), channel)


def generate_magic_link(
    db: Session,
    family_id: str,
    channel: Optional[ChannelEnum] = None,
    base_url: Optional[str] = None,
) -> str:
    """Emite un token nuevo para la familia y devuelve su enlace corto."""
    family = db.get(Family, family_id)
    if family is None:
        raise LookupError("Family not found")
    _rotate_token(db, family)
    return build_link(get_short_url_path(db, family), channel, base_url)


def generate_magic_links_bulk(
    db: Session,
    family_ids: Iterable[str],
    channel: Optional[ChannelEnum] = None,
) -> Dict[str, str]:
    """Versión en lote: family_id → URL. Las familias inexistentes se omiten."""
    links: Dict[str, str] = {}
    for family_id in family_ids:
        try:
            links[family_id] = generate_magic_link(db, family_id, channel)
        except LookupError:
            logger.warning("Magic link omitido: familia {} no existe", family_id)
    return links


def _rotate_token(db: Session, family: Family, new_token: Optional[str] = None) -> Optional[str]:
    if family.short_url_code and family.wedding.short_url_initials:               # La cache apunta al token viejo.
        short_url_cache.invalidate(family.wedding.short_url_initials, family.short_url_code)
    family.magic_token = new_token if new_token is not None else str(uuid.uuid4())
    db.commit()
    return family.magic_token


def regenerate_magic_token(db: Session, family_id: str) -> str:
    """Sustituye el token (el anterior deja de funcionar) y devuelve el nuevo."""
    family = db.get(Family, family_id)
    if family is None:
        raise LookupError("Family not found")
    token = _rotate_token(db, family)
    logger.info("Magic token regenerado | family_id={}", family_id)
    return token


def invalidate_magic_token(db: Session, family_id: str) -> None:
    """Deja a la familia sin token válido hasta que se genere uno nuevo."""
    family = db.get(Family, family_id)
    if family is None:
        raise LookupError("Family not found")
    if family.short_url_code and family.wedding.short_url_initials:
        short_url_cache.invalidate(family.wedding.short_url_initials, family.short_url_code)
    family.magic_token = None
    db.commit()
    logger.info("Magic token invalidado | family_id={}", family_id)


def has_magic_token(db: Session, family_id: str) -> bool:
    family = db.get(Family, family_id)
    return bool(family and family.magic_token)


def extract_channel_from_url(url: str) -> Optional[ChannelEnum]:
    """Canal del parámetro ?channel= (en cualquier caso), o None si falta o no es válido."""
    try:
        values = parse_qs(urlparse(url).query).get("channel")
    except ValueError:
        return None
    if not values:
        return None
    try:
        return ChannelEnum(values[0].upper())
    except ValueError:
        return None
