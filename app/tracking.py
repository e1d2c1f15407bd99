# app/tracking.py
# =================================================================================
# 📈 Registro de eventos de seguimiento
# ---------------------------------------------------------------------------------
# - track_event: inserta un TrackingEvent; ante cualquier error de BD registra
#   el fallo y devuelve None (nunca rompe el flujo principal).
# - track_event_async: lo mismo pero en la cola de segundo plano, con su propia
#   sesión.
# - Escritura en dos fases: create_provisional_event + finalize_event con
#   comprobación optimista de `version`.
# =================================================================================

import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional, TypeVar, Union

from loguru import logger
from sqlalchemy import update
from sqlalchemy.orm import Session

from app.background import background_queue
from app.db import session_scope
from app.models import ChannelEnum, EventStateEnum, EventTypeEnum, TrackingEvent
from app.schemas import (
    EventMetaBase,
    GuestAddedMeta,
    LinkOpenedMeta,
    PaymentReceivedMeta,
    ReminderSentMeta,
    RsvpSubmittedMeta,
    build_event_metadata,
)

T = TypeVar("T")

MetadataInput = Union[EventMetaBase, Dict[str, Any], None]

# Fragmentos que identifican un error transitorio de conexión.
TRANSIENT_ERROR_MARKERS = ("timeout", "Connection terminated")


class StaleEventError(Exception):
    """El evento ya fue finalizado o su versión cambió entre lectura y escritura."""


def _new_event(
    family_id: str,
    wedding_id: str,
    event_type: EventTypeEnum,
    channel: Optional[ChannelEnum],
    metadata: MetadataInput,
    admin_triggered: bool,
    state: EventStateEnum,
) -> TrackingEvent:
    meta = build_event_metadata(event_type, metadata)
    payload = meta.to_json()
    return TrackingEvent(
        family_id=family_id,
        wedding_id=wedding_id,
        event_type=EventTypeEnum(event_type),
        channel=ChannelEnum(channel) if channel else None,
        meta=payload,
        message_sid=payload.get("message_sid"),
        admin_triggered=admin_triggered,
        state=state,
        version=1,
        timestamp=datetime.utcnow(),
    )


def record_event(
    db: Session,
    family_id: str,
    wedding_id: str,
    event_type: EventTypeEnum,
    channel: Optional[ChannelEnum] = None,
    metadata: MetadataInput = None,
    admin_triggered: bool = False,
    state: EventStateEnum = EventStateEnum.FINALIZED,
) -> TrackingEvent:
    """Inserta y confirma el evento. Propaga los errores (lo usan los reintentos)."""
    event = _new_event(family_id, wedding_id, event_type, channel, metadata, admin_triggered, state)
    db.add(event)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(event)
    return event


def track_event(
    db: Session,
    family_id: str,
    wedding_id: str,
    event_type: EventTypeEnum,
    channel: Optional[ChannelEnum] = None,
    metadata: MetadataInput = None,
    admin_triggered: bool = False,
) -> Optional[TrackingEvent]:
    """Registra un evento; si falla la escritura devuelve None en lugar de lanzar."""
    try:
        return record_event(db, family_id, wedding_id, event_type, channel, metadata, admin_triggered)
    except Exception as e:
        logger.error(
            "No se pudo registrar {} | family_id={} wedding_id={} err={}",
            getattr(event_type, "value", event_type), family_id, wedding_id, e,
        )
        return None


def _track_in_own_session(**kwargs: Any) -> None:
    with session_scope() as db:
        track_event(db, **kwargs)


def track_event_async(
    family_id: str,
    wedding_id: str,
    event_type: EventTypeEnum,
    channel: Optional[ChannelEnum] = None,
    metadata: MetadataInput = None,
    admin_triggered: bool = False,
) -> None:
    """Encola el registro del evento (best-effort, no bloquea la petición)."""
    background_queue.submit(
        _track_in_own_session,
        label=f"track:{getattr(event_type, 'value', event_type)}",
        family_id=family_id,
        wedding_id=wedding_id,
        event_type=event_type,
        channel=channel,
        metadata=metadata,
        admin_triggered=admin_triggered,
    )


# 🎁 Atajos por tipo de evento
# ---------------------------------------------------------------------------------
def track_link_opened(family_id: str, wedding_id: str, channel: Optional[ChannelEnum] = None) -> None:
    track_event_async(family_id, wedding_id, EventTypeEnum.LINK_OPENED, channel, LinkOpenedMeta())


def track_rsvp_submitted(
    family_id: str,
    wedding_id: str,
    channel: Optional[ChannelEnum],
    total_members: int,
    attending_count: int,
) -> None:
    meta = RsvpSubmittedMeta(total_members=total_members, attending_count=attending_count)
    track_event_async(family_id, wedding_id, EventTypeEnum.RSVP_SUBMITTED, channel, meta)


def track_guest_added(family_id: str, wedding_id: str, member_name: str) -> None:
    track_event_async(family_id, wedding_id, EventTypeEnum.GUEST_ADDED, None, GuestAddedMeta(member_name=member_name))


def track_payment_received(
    family_id: str,
    wedding_id: str,
    amount: Optional[float] = None,
    currency: Optional[str] = None,
    reference_code: Optional[str] = None,
    admin_id: Optional[str] = None,
) -> None:
    meta = PaymentReceivedMeta(amount=amount, currency=currency, reference_code=reference_code, admin_id=admin_id)
    track_event_async(
        family_id, wedding_id, EventTypeEnum.PAYMENT_RECEIVED, None, meta,
        admin_triggered=admin_id is not None,
    )


def track_reminder_sent(
    family_id: str,
    wedding_id: str,
    channel: ChannelEnum,
    admin_id: Optional[str] = None,
    metadata: Optional[ReminderSentMeta] = None,
) -> None:
    meta = metadata or ReminderSentMeta(admin_id=admin_id, channel=ChannelEnum(channel).value)
    track_event_async(family_id, wedding_id, EventTypeEnum.REMINDER_SENT, channel, meta, admin_triggered=True)


# ✍️ Escritura en dos fases
# ---------------------------------------------------------------------------------
def create_provisional_event(
    db: Session,
    family_id: str,
    wedding_id: str,
    event_type: EventTypeEnum,
    channel: Optional[ChannelEnum] = None,
    metadata: MetadataInput = None,
) -> Optional[TrackingEvent]:
    """Crea el evento en estado PROVISIONAL (None si la escritura falla)."""
    try:
        return record_event(
            db, family_id, wedding_id, event_type, channel, metadata,
            admin_triggered=False, state=EventStateEnum.PROVISIONAL,
        )
    except Exception as e:
        logger.error("No se pudo crear el evento provisional {}: {}", getattr(event_type, "value", event_type), e)
        return None


def finalize_event(
    db: Session,
    event_id: str,
    expected_version: int,
    fields: Optional[Dict[str, Any]] = None,
) -> TrackingEvent:
    """
    Cierra un evento PROVISIONAL añadiendo `fields` a su metadata.

    El UPDATE solo aplica si el evento sigue PROVISIONAL y en `expected_version`;
    si otra escritura se adelantó, lanza StaleEventError.
    """
    event = db.get(TrackingEvent, event_id)
    if event is None:
        raise LookupError(f"TrackingEvent {event_id} not found")

    merged = dict(event.meta or {})
    merged.update(fields or {})
    payload = build_event_metadata(event.event_type, merged).to_json()            # Valida contra el tipo del evento.

    result = db.execute(
        update(TrackingEvent)
        .where(
            TrackingEvent.id == event_id,
            TrackingEvent.version == expected_version,
            TrackingEvent.state == EventStateEnum.PROVISIONAL,
        )
        .values(meta=payload, state=EventStateEnum.FINALIZED, version=expected_version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise StaleEventError(f"TrackingEvent {event_id} is not provisional at version {expected_version}")
    db.commit()
    db.refresh(event)
    return event


# 🔁 Reintentos ante errores transitorios
# ---------------------------------------------------------------------------------
def is_transient_error(exc: BaseException) -> bool:
    message = str(exc)
    return any(marker in message for marker in TRANSIENT_ERROR_MARKERS)


def with_db_retry(fn: Callable[[], T], max_retries: int = 2, base_delay_s: float = 0.1) -> T:
    """Ejecuta `fn`; reintenta solo errores transitorios con espera base·2^intento."""
    attempt = 0
    while True:
        try:
            return fn()
        except Exception as e:
            if attempt >= max_retries or not is_transient_error(e):
                raise
            delay = base_delay_s * (2 ** attempt)
            logger.warning("Error transitorio de BD (intento {}/{}), reintento en {}s: {}", attempt + 1, max_retries, delay, e)
            time.sleep(delay)
            attempt += 1
