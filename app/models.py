# app/models.py  # Modelos ORM del subsistema de comunicación con invitados.

# =================================================================================
# 🏛️ DEFINICIÓN DE LOS MODELOS DE LA BASE DE DATOS (ORM)
# ---------------------------------------------------------------------------------
# - Wedding es la raíz del tenant; Family pertenece a exactamente una Wedding.
# - TrackingEvent es un log de solo-anexado: la única mutación permitida es el
#   paso PROVISIONAL → FINALIZED, protegido por `version`.
# - NotificationRead guarda el estado de lectura por (evento, admin) como
#   relación real, no como claves dentro del JSON de metadata.
# =================================================================================

from datetime import datetime
import enum
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum as SQLAlchemyEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship as orm_relationship

from app.db import Base


def _uuid() -> str:  # Ids opacos tipo UUID (como los magic tokens).
    return str(uuid.uuid4())


# 🗂️ ENUMS
# ---------------------------------------------------------------------------------
class LanguageEnum(str, enum.Enum):  # Idiomas soportados por plantillas y asistente.
    ES = "ES"
    EN = "EN"
    FR = "FR"
    IT = "IT"
    DE = "DE"

class ChannelEnum(str, enum.Enum):  # Medio de comunicación con su propio adaptador.
    WHATSAPP = "WHATSAPP"
    EMAIL = "EMAIL"
    SMS = "SMS"

class WhatsAppModeEnum(str, enum.Enum):
    BUSINESS = "BUSINESS"  # Envío real vía proveedor.
    LINKS = "LINKS"        # Devuelve enlaces wa.me para envío manual.

class TemplateTypeEnum(str, enum.Enum):
    INVITATION = "INVITATION"
    SAVE_THE_DATE = "SAVE_THE_DATE"
    REMINDER = "REMINDER"
    CONFIRMATION = "CONFIRMATION"

class EventTypeEnum(str, enum.Enum):  # Tipos de evento del timeline.
    LINK_OPENED = "LINK_OPENED"
    RSVP_STARTED = "RSVP_STARTED"
    RSVP_SUBMITTED = "RSVP_SUBMITTED"
    RSVP_UPDATED = "RSVP_UPDATED"
    GUEST_ADDED = "GUEST_ADDED"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    REMINDER_SENT = "REMINDER_SENT"
    INVITATION_SENT = "INVITATION_SENT"
    SAVE_THE_DATE_SENT = "SAVE_THE_DATE_SENT"
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_COMPLETED = "TASK_COMPLETED"
    MESSAGE_DELIVERED = "MESSAGE_DELIVERED"
    MESSAGE_READ = "MESSAGE_READ"
    MESSAGE_FAILED = "MESSAGE_FAILED"
    MESSAGE_RECEIVED = "MESSAGE_RECEIVED"
    AI_REPLY_SENT = "AI_REPLY_SENT"

class EventStateEnum(str, enum.Enum):
    PROVISIONAL = "PROVISIONAL"  # Creado, pendiente de completar (ej. respuesta IA).
    FINALIZED = "FINALIZED"      # Cerrado; ya no admite cambios.

class PhotoSourceEnum(str, enum.Enum):
    UPLOAD = "UPLOAD"
    WHATSAPP = "WHATSAPP"

class AdminRoleEnum(str, enum.Enum):
    wedding_admin = "wedding_admin"
    planner = "planner"


# 🎨 TEMAS Y PERSONAS ADMINISTRADORAS
# ---------------------------------------------------------------------------------
class Theme(Base):
    __tablename__ = "themes"

    id = Column(String(36), primary_key=True, default=_uuid)
    planner_id = Column(String(36), ForeignKey("wedding_planners.id"), nullable=True)
    name = Column(String(120), nullable=False)
    description = Column(String(500), nullable=True)
    is_default = Column(Boolean, default=False, nullable=False)
    config = Column(JSON, nullable=False, default=dict)
    preview_image_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

class WeddingPlanner(Base):
    __tablename__ = "wedding_planners"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(120), nullable=False)
    email = Column(String(254), unique=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

class WeddingAdmin(Base):
    __tablename__ = "wedding_admins"

    id = Column(String(36), primary_key=True, default=_uuid)
    wedding_id = Column(String(36), ForeignKey("weddings.id", ondelete="CASCADE"), index=True, nullable=False)
    name = Column(String(120), nullable=False)
    email = Column(String(254), unique=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


# 💍 BODA (raíz del tenant)
# ---------------------------------------------------------------------------------
class Wedding(Base):
    __tablename__ = "weddings"

    id = Column(String(36), primary_key=True, default=_uuid)
    planner_id = Column(String(36), ForeignKey("wedding_planners.id"), index=True, nullable=True)
    theme_id = Column(String(36), ForeignKey("themes.id"), nullable=True)

    # --- Datos del evento ---
    couple_names = Column(String(200), nullable=False)
    wedding_date = Column(DateTime, nullable=False)
    wedding_time = Column(String(20), nullable=False, default="")
    location = Column(String(300), nullable=False, default="")
    rsvp_cutoff_date = Column(DateTime, nullable=False)
    dress_code = Column(String(200), nullable=True)
    additional_info = Column(Text, nullable=True)
    gift_iban = Column(String(64), nullable=True)
    default_language = Column(SQLAlchemyEnum(LanguageEnum), nullable=False, default=LanguageEnum.EN)

    # --- Preguntas del formulario RSVP ---
    allow_guest_additions = Column(Boolean, default=False, nullable=False)
    dietary_restrictions_enabled = Column(Boolean, default=True, nullable=False)
    transportation_question_enabled = Column(Boolean, default=False, nullable=False)
    transportation_question_text = Column(String(300), nullable=True)
    extra_question_1_enabled = Column(Boolean, default=False, nullable=False)
    extra_question_1_text = Column(String(300), nullable=True)
    extra_question_2_enabled = Column(Boolean, default=False, nullable=False)
    extra_question_2_text = Column(String(300), nullable=True)
    extra_question_3_enabled = Column(Boolean, default=False, nullable=False)
    extra_question_3_text = Column(String(300), nullable=True)

    # --- Comunicación ---
    save_the_date_enabled = Column(Boolean, default=False, nullable=False)
    whatsapp_mode = Column(SQLAlchemyEnum(WhatsAppModeEnum), nullable=False, default=WhatsAppModeEnum.BUSINESS)
    short_url_initials = Column(String(12), unique=True, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    theme = orm_relationship("Theme", lazy="joined")
    families = orm_relationship("Family", back_populates="wedding", cascade="all, delete-orphan")


# 👪 FAMILIAS Y MIEMBROS
# ---------------------------------------------------------------------------------
class Family(Base):
    __tablename__ = "families"
    __table_args__ = (
        UniqueConstraint("wedding_id", "short_url_code", name="uq_families_wedding_short_code"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    wedding_id = Column(String(36), ForeignKey("weddings.id", ondelete="CASCADE"), index=True, nullable=False)
    name = Column(String(200), nullable=False)

    # --- Contacto ---
    email = Column(String(254), nullable=True)
    phone = Column(String(32), index=True, nullable=True)
    whatsapp_number = Column(String(32), index=True, nullable=True)
    channel_preference = Column(SQLAlchemyEnum(ChannelEnum), nullable=True)
    preferred_language = Column(SQLAlchemyEnum(LanguageEnum), nullable=False, default=LanguageEnum.EN)

    # --- Acceso y referencias ---
    magic_token = Column(String(36), unique=True, index=True, nullable=True)
    reference_code = Column(String(64), nullable=True)
    short_url_code = Column(String(8), nullable=True)

    # --- Marcas de envío ---
    save_the_date_sent = Column(DateTime, nullable=True)  # Se fija una sola vez, nunca se limpia.

    # --- Respuestas del RSVP ---
    transportation_answer = Column(Boolean, nullable=True)
    extra_question_1_answer = Column(Boolean, nullable=True)
    extra_question_2_answer = Column(Boolean, nullable=True)
    extra_question_3_answer = Column(Boolean, nullable=True)
    extra_info_1_value = Column(String(500), nullable=True)
    extra_info_2_value = Column(String(500), nullable=True)
    extra_info_3_value = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    wedding = orm_relationship("Wedding", back_populates="families")
    members = orm_relationship(
        "FamilyMember",
        cascade="all, delete-orphan",
        back_populates="family",
        order_by="FamilyMember.created_at",
        lazy="selectin",
    )

class FamilyMember(Base):
    __tablename__ = "family_members"

    id = Column(String(36), primary_key=True, default=_uuid)
    family_id = Column(String(36), ForeignKey("families.id", ondelete="CASCADE"), index=True, nullable=False)
    name = Column(String(200), nullable=False)
    type = Column(String(16), nullable=False, default="ADULT")  # ADULT / CHILD / INFANT
    age = Column(Integer, nullable=True)
    attending = Column(Boolean, nullable=True)  # None = sin respuesta.
    dietary_restrictions = Column(String(500), nullable=True)
    accessibility_needs = Column(String(500), nullable=True)
    added_by_guest = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    family = orm_relationship("Family", back_populates="members")


# 🧾 PLANTILLAS DE MENSAJE
# ---------------------------------------------------------------------------------
class MessageTemplate(Base):
    __tablename__ = "message_templates"
    __table_args__ = (
        UniqueConstraint("wedding_id", "type", "language", "channel", name="uq_templates_lookup"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    wedding_id = Column(String(36), ForeignKey("weddings.id", ondelete="CASCADE"), index=True, nullable=False)
    type = Column(SQLAlchemyEnum(TemplateTypeEnum), nullable=False)
    language = Column(SQLAlchemyEnum(LanguageEnum), nullable=False)
    channel = Column(SQLAlchemyEnum(ChannelEnum), nullable=False)
    name = Column(String(200), nullable=False, default="")
    subject = Column(String(300), nullable=False, default="")
    body = Column(Text, nullable=False)
    image_url = Column(String(500), nullable=True)
    content_template_id = Column(String(64), nullable=True)  # Content SID aprobado por Meta.
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# 📈 EVENTOS DE SEGUIMIENTO Y ESTADO DE LECTURA
# ---------------------------------------------------------------------------------
class TrackingEvent(Base):
    __tablename__ = "tracking_events"
    __table_args__ = (
        Index("ix_tracking_events_family_ts", "family_id", "timestamp"),
        Index("ix_tracking_events_wedding_ts", "wedding_id", "timestamp"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    family_id = Column(String(36), ForeignKey("families.id", ondelete="CASCADE"), nullable=False)
    wedding_id = Column(String(36), ForeignKey("weddings.id", ondelete="CASCADE"), nullable=False)
    event_type = Column(SQLAlchemyEnum(EventTypeEnum), index=True, nullable=False)
    channel = Column(SQLAlchemyEnum(ChannelEnum), nullable=True)
    meta = Column("metadata", JSON, nullable=False, default=dict)  # Payload tipado, serializado.
    message_sid = Column(String(64), index=True, nullable=True)    # Copia indexada del id del proveedor.
    admin_triggered = Column(Boolean, default=False, nullable=False)
    state = Column(SQLAlchemyEnum(EventStateEnum), nullable=False, default=EventStateEnum.FINALIZED)
    version = Column(Integer, nullable=False, default=1)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    family = orm_relationship("Family")
    reads = orm_relationship("NotificationRead", back_populates="event", cascade="all, delete-orphan")

class NotificationRead(Base):
    __tablename__ = "notification_reads"
    __table_args__ = (
        UniqueConstraint("event_id", "admin_id", name="uq_notification_reads_event_admin"),
    )

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String(36), ForeignKey("tracking_events.id", ondelete="CASCADE"), index=True, nullable=False)
    admin_id = Column(String(36), index=True, nullable=False)
    read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)

    event = orm_relationship("TrackingEvent", back_populates="reads")


# 📸 GALERÍA
# ---------------------------------------------------------------------------------
class WeddingPhoto(Base):
    __tablename__ = "wedding_photos"

    id = Column(String(36), primary_key=True, default=_uuid)
    wedding_id = Column(String(36), ForeignKey("weddings.id", ondelete="CASCADE"), index=True, nullable=False)
    url = Column(String(500), nullable=False)
    storage_key = Column(String(500), nullable=False)
    source = Column(SQLAlchemyEnum(PhotoSourceEnum), nullable=False, default=PhotoSourceEnum.UPLOAD)
    sender_name = Column(String(200), nullable=True)
    sender_phone = Column(String(32), nullable=True)
    caption = Column(String(1000), nullable=True)
    approved = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
