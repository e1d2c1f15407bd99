# app/routers/guest.py  # Endpoints públicos del invitado (acceso por magic link).

# =================================================================================
# 👤 Router: Endpoints del Invitado (página RSVP y envío)
# ---------------------------------------------------------------------------------
# - GET  /api/guest/{token}        → datos de la página RSVP (+ LINK_OPENED).
# - POST /api/guest/{token}/rsvp   → guarda la respuesta (+ RSVP_SUBMITTED y
#                                    confirmación en segundo plano).
# - GET  /inv/{initials}/{code}    → redirección del enlace corto a /rsvp/{token}.
# Sin JWT: el magic token de la URL es la credencial. Rate limit por IP + ruta.
# =================================================================================

# 🐍 Importaciones
# ---------------------------------------------------------------------------------
from datetime import datetime                     # Comparación con la fecha límite.
from typing import Optional                       # Tipado.

from fastapi import APIRouter, Depends, Request   # Router y utilidades de FastAPI.
from fastapi.responses import RedirectResponse    # Redirección del enlace corto.
from loguru import logger                         # Logger del proyecto.
from sqlalchemy.orm import Session                # Sesión ORM.

# 🧩 Importaciones internas
# ---------------------------------------------------------------------------------
from app.core.errors import api_error                                 # HTTPException con {code, message}.
from app.db import get_db                                             # Sesión por request.
from app.magic_link import (                                          # Validación y canal del enlace.
    TOKEN_EXPIRED,
    MagicLinkValidation,
    extract_channel_from_url,
    validate_magic_link,
)
from app.models import Family, Theme                                  # Modelos ORM.
from app.notifications.confirmation import send_confirmation_async    # Confirmación best-effort.
from app.rate_limit import rate_limited                               # Dependencia de rate limit.
from app.schemas import (                                             # Schemas de entrada/salida.
    FamilyOut,
    GuestPageResponse,
    RSVPSubmitRequest,
    RSVPSubmitResponse,
    ThemeOut,
    WeddingOut,
)
from app.short_url import resolve_short_url                           # Código corto → token.
from app.tracking import track_link_opened, track_rsvp_submitted      # Eventos de seguimiento.

# 🧭 Configuración de los routers
# ---------------------------------------------------------------------------------
router = APIRouter(prefix="/api/guest", tags=["guest"])              # API JSON del invitado.
short_router = APIRouter(tags=["guest"])                              # Enlaces cortos (sin prefijo /api).

CUTOFF_MESSAGE = "The RSVP deadline has passed. Please contact the couple directly."


# 🛠️ Helpers
# ---------------------------------------------------------------------------------
def _validated_or_error(db: Session, token: str) -> MagicLinkValidation:
    """Valida el token; 410 si la boda ya pasó, 404 en cualquier otro fallo."""
    validation = validate_magic_link(db, token)
    if validation.valid:
        return validation
    if validation.error == TOKEN_EXPIRED:
        raise api_error(410, TOKEN_EXPIRED, "This invitation link has expired")
    raise api_error(404, validation.error or "TOKEN_NOT_FOUND", "Invalid or expired link")


def _resolve_theme(db: Session, theme: Optional[Theme]) -> Optional[Theme]:
    """Tema de la boda; si no tiene, el tema por defecto del sistema."""
    if theme is not None:
        return theme
    return db.query(Theme).filter(Theme.is_default.is_(True)).order_by(Theme.created_at).first()


def _has_submitted(family: Family) -> bool:                           # Alguien respondió ya (sí o no).
    return any(m.attending is not None for m in family.members)


# =================================================================================
# 📄 GET /api/guest/{token}: Datos de la página RSVP
# ---------------------------------------------------------------------------------
@router.get("/{token}", response_model=GuestPageResponse, dependencies=[Depends(rate_limited)])
def get_guest_page(token: str, request: Request, db: Session = Depends(get_db)):
    validation = _validated_or_error(db, token)                       # 404 / 410 si no es válido.
    family, wedding = validation.family, validation.wedding

    channel = extract_channel_from_url(str(request.url))              # ?channel=whatsapp → WHATSAPP.
    track_link_opened(family.id, wedding.id, channel)                 # Efecto lateral best-effort.

    theme = _resolve_theme(db, validation.theme)
    return GuestPageResponse(
        family=FamilyOut.model_validate(family),
        wedding=WeddingOut.model_validate(wedding),
        theme=ThemeOut.model_validate(theme) if theme else None,
        rsvp_cutoff_passed=datetime.utcnow() > wedding.rsvp_cutoff_date,
        has_submitted_rsvp=_has_submitted(family),
    )


# =================================================================================
# 📝 POST /api/guest/{token}/rsvp: Enviar o actualizar el RSVP
# ---------------------------------------------------------------------------------
@router.post("/{token}/rsvp", response_model=RSVPSubmitResponse, dependencies=[Depends(rate_limited)])
def submit_rsvp(token: str, payload: RSVPSubmitRequest, request: Request, db: Session = Depends(get_db)):
    validation = _validated_or_error(db, token)
    family, wedding = validation.family, validation.wedding

    # ⏳ 1) Fecha límite de la boda.
    if datetime.utcnow() > wedding.rsvp_cutoff_date:
        raise api_error(403, "RSVP_CUTOFF_PASSED", CUTOFF_MESSAGE)

    # 🧍 2) Todos los miembros deben pertenecer a la familia.
    members = {m.id: m for m in family.members}
    unknown = [m.id for m in payload.members if m.id not in members]
    if unknown:
        raise api_error(400, "VALIDATION_ERROR", "Unknown family members", details={"member_ids": unknown})

    # ✍️ 3) Respuestas por miembro (sin detalles si no asiste).
    for update in payload.members:
        member = members[update.id]
        member.attending = update.attending
        member.dietary_restrictions = update.dietary_restrictions if update.attending else None
        member.accessibility_needs = update.accessibility_needs if update.attending else None

    # ❓ 4) Preguntas de la boda a nivel familia.
    family.transportation_answer = payload.transportation_answer
    for i in (1, 2, 3):
        setattr(family, f"extra_question_{i}_answer", getattr(payload, f"extra_question_{i}_answer"))
        setattr(family, f"extra_info_{i}_value", getattr(payload, f"extra_info_{i}_value"))

    db.commit()

    attending_count = sum(1 for m in payload.members if m.attending)
    logger.info(
        "[RSVP] Recibido | family_id={} asistentes={}/{}",
        family.id, attending_count, len(payload.members),
    )

    # 📈 5) Efectos laterales: nunca afectan a la respuesta.
    channel = extract_channel_from_url(str(request.url))
    track_rsvp_submitted(family.id, wedding.id, channel, len(payload.members), attending_count)
    send_confirmation_async(family.id, wedding.id, attending_count)

    noun = "guest" if attending_count == 1 else "guests"
    return RSVPSubmitResponse(
        success=True,
        attending_count=attending_count,
        confirmation_message=f"Thank you for your RSVP! We have received your response for {attending_count} attending {noun}.",
    )


# =================================================================================
# 🔗 GET /inv/{initials}/{code}: Enlace corto
# ---------------------------------------------------------------------------------
@short_router.get("/inv/{initials}/{code}", dependencies=[Depends(rate_limited)])
def short_url_redirect(initials: str, code: str, request: Request, db: Session = Depends(get_db)):
    token = resolve_short_url(db, initials, code)
    if token is None:
        raise api_error(404, "NOT_FOUND", "Invitation link not found")
    target = f"/rsvp/{token}"
    if request.url.query:                                             # Conserva ?channel= para atribuir la apertura.
        target = f"{target}?{request.url.query}"
    return RedirectResponse(url=target, status_code=307)
