# app/schemas.py  # Esquemas Pydantic: payloads de API, resultados de servicio y metadata de eventos.

# =================================================================================
# 📦 Schemas (MODELOS DE DATOS Pydantic)
# ---------------------------------------------------------------------------------
# - Metadata de TrackingEvent como unión etiquetada por event_type, cada tipo con
#   su payload propio y una bolsa `extra` para claves no previstas.
# - Resultados tipados de los adaptadores y orquestadores ({success, error}).
# - Requests/responses de los routers (guest, admin, webhooks).
# =================================================================================

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Type, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from app.models import ChannelEnum, EventTypeEnum, LanguageEnum

ChannelRequest = Literal["WHATSAPP", "EMAIL", "SMS", "PREFERRED"]  # Canal pedido por el admin.

# =================================================================================
# 🏷️ Metadata tipada de eventos
# =================================================================================
class EventMetaBase(BaseModel):
    """Base de toda metadata: los campos desconocidos van a `extra`."""
    model_config = ConfigDict(populate_by_name=True)

    extra: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_extra(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        known = set(cls.model_fields)
        known |= {f.alias for f in cls.model_fields.values() if f.alias}
        extra = dict(data.get("extra") or {})
        clean: Dict[str, Any] = {}
        for key, value in data.items():
            if key == "extra":
                continue
            if key in known:
                clean[key] = value
            else:
                extra[key] = value
        clean["extra"] = extra
        return clean

    def to_json(self) -> Dict[str, Any]:
        """Serializa para la columna JSON (sin None y sin `extra` vacío)."""
        data = self.model_dump(by_alias=True, exclude_none=True, mode="json")
        if not data.get("extra"):
            data.pop("extra", None)
        return data

class DispatchMeta(EventMetaBase):  # Campos comunes a cualquier envío de plantilla.
    template_id: Optional[str] = None
    template_type: Optional[str] = None
    template_name: Optional[str] = None
    language: Optional[str] = None
    channel: Optional[str] = None
    contact: Optional[str] = None
    admin_id: Optional[str] = None
    message_sid: Optional[str] = None
    whatsapp_mode: Optional[str] = None

class InvitationSentMeta(DispatchMeta):
    pass

class SaveTheDateSentMeta(DispatchMeta):
    pass

class ReminderSentMeta(DispatchMeta):
    reminder_type: str = "manual"

class LinkOpenedMeta(EventMetaBase):
    pass

class RsvpSubmittedMeta(EventMetaBase):
    total_members: int = 0
    attending_count: int = 0

class GuestAddedMeta(EventMetaBase):
    member_name: str

class PaymentReceivedMeta(EventMetaBase):
    amount: Optional[float] = None
    currency: Optional[str] = None
    reference_code: Optional[str] = None
    admin_id: Optional[str] = None

class MessageReceivedMeta(EventMetaBase):
    message_sid: Optional[str] = None
    sender: Optional[str] = Field(default=None, alias="from")
    body: str = ""
    ai_reply: Optional[str] = None

class AiReplySentMeta(EventMetaBase):
    message_sid: Optional[str] = None
    reply_preview: str = ""

class MessageStatusMeta(EventMetaBase):
    message_sid: str
    status: Optional[str] = None
    original_event_id: Optional[str] = None
    original_event_type: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

class GenericEventMeta(EventMetaBase):  # TASK_* y demás tipos sin payload propio.
    admin_id: Optional[str] = None

EventMetadata = Union[
    InvitationSentMeta,
    SaveTheDateSentMeta,
    ReminderSentMeta,
    LinkOpenedMeta,
    RsvpSubmittedMeta,
    GuestAddedMeta,
    PaymentReceivedMeta,
    MessageReceivedMeta,
    AiReplySentMeta,
    MessageStatusMeta,
    GenericEventMeta,
]

EVENT_METADATA_MODELS: Dict[EventTypeEnum, Type[EventMetaBase]] = {
    EventTypeEnum.INVITATION_SENT: InvitationSentMeta,
    EventTypeEnum.SAVE_THE_DATE_SENT: SaveTheDateSentMeta,
    EventTypeEnum.REMINDER_SENT: ReminderSentMeta,
    EventTypeEnum.LINK_OPENED: LinkOpenedMeta,
    EventTypeEnum.RSVP_SUBMITTED: RsvpSubmittedMeta,
    EventTypeEnum.RSVP_UPDATED: RsvpSubmittedMeta,
    EventTypeEnum.GUEST_ADDED: GuestAddedMeta,
    EventTypeEnum.PAYMENT_RECEIVED: PaymentReceivedMeta,
    EventTypeEnum.MESSAGE_RECEIVED: MessageReceivedMeta,
    EventTypeEnum.AI_REPLY_SENT: AiReplySentMeta,
    EventTypeEnum.MESSAGE_DELIVERED: MessageStatusMeta,
    EventTypeEnum.MESSAGE_READ: MessageStatusMeta,
    EventTypeEnum.MESSAGE_FAILED: MessageStatusMeta,
}

def build_event_metadata(
    event_type: EventTypeEnum,
    data: Union[EventMetaBase, Dict[str, Any], None],
) -> EventMetaBase:
    """Valida `data` contra el modelo que corresponde a `event_type`."""
    model = EVENT_METADATA_MODELS.get(EventTypeEnum(event_type), GenericEventMeta)
    if isinstance(data, model):
        return data
    if isinstance(data, EventMetaBase):
        data = data.to_json()
    return model.model_validate(data or {})

# =================================================================================
# 📤 Resultados de adaptadores y orquestadores
# =================================================================================
class DispatchResult(BaseModel):  # Contrato uniforme de Email/SMS/WhatsApp.
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None

class SendResult(BaseModel):  # Resultado de un envío por familia.
    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None
    channel: Optional[ChannelEnum] = None
    wa_link: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True)

class FamilyError(BaseModel):
    family_id: str
    error: str

class FamilyWaLink(BaseModel):
    family_id: str
    wa_link: str

class BulkSendResult(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0
    errors: List[FamilyError] = Field(default_factory=list)
    wa_links: List[FamilyWaLink] = Field(default_factory=list)

class ReminderResult(BaseModel):
    sent_count: int = 0
    failed_count: int = 0
    recipient_families: List[str] = Field(default_factory=list)
    errors: List[FamilyError] = Field(default_factory=list)
    wa_links: List[FamilyWaLink] = Field(default_factory=list)

# =================================================================================
# 👤 Invitado: página RSVP y envío
# =================================================================================
class MemberOut(BaseModel):
    id: str
    name: str
    type: str
    age: Optional[int] = None
    attending: Optional[bool] = None
    dietary_restrictions: Optional[str] = None
    accessibility_needs: Optional[str] = None
    added_by_guest: bool = False

    model_config = ConfigDict(from_attributes=True)

class FamilyOut(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    whatsapp_number: Optional[str] = None
    channel_preference: Optional[ChannelEnum] = None
    preferred_language: LanguageEnum
    reference_code: Optional[str] = None
    transportation_answer: Optional[bool] = None
    extra_question_1_answer: Optional[bool] = None
    extra_question_2_answer: Optional[bool] = None
    extra_question_3_answer: Optional[bool] = None
    extra_info_1_value: Optional[str] = None
    extra_info_2_value: Optional[str] = None
    extra_info_3_value: Optional[str] = None
    members: List[MemberOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

class WeddingOut(BaseModel):
    id: str
    couple_names: str
    wedding_date: datetime
    wedding_time: str
    location: str
    rsvp_cutoff_date: datetime
    dress_code: Optional[str] = None
    additional_info: Optional[str] = None
    gift_iban: Optional[str] = None
    default_language: LanguageEnum
    allow_guest_additions: bool = False
    dietary_restrictions_enabled: bool = True
    transportation_question_enabled: bool = False
    transportation_question_text: Optional[str] = None
    extra_question_1_enabled: bool = False
    extra_question_1_text: Optional[str] = None
    extra_question_2_enabled: bool = False
    extra_question_2_text: Optional[str] = None
    extra_question_3_enabled: bool = False
    extra_question_3_text: Optional[str] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

class ThemeOut(BaseModel):
    id: str
    name: str
    config: Dict[str, Any] = Field(default_factory=dict)
    preview_image_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

class GuestPageResponse(BaseModel):
    family: FamilyOut
    wedding: WeddingOut
    theme: Optional[ThemeOut] = None
    rsvp_cutoff_passed: bool
    has_submitted_rsvp: bool

class RSVPMemberUpdate(BaseModel):
    id: str
    attending: bool
    dietary_restrictions: Optional[str] = None
    accessibility_needs: Optional[str] = None

    @field_validator("dietary_restrictions", "accessibility_needs")
    @classmethod
    def _clean_text(cls, v: Optional[str]) -> Optional[str]:
        v = (v or "").strip()
        return v or None

class RSVPSubmitRequest(BaseModel):
    members: List[RSVPMemberUpdate] = Field(min_length=1)
    transportation_answer: Optional[bool] = None
    extra_question_1_answer: Optional[bool] = None
    extra_question_2_answer: Optional[bool] = None
    extra_question_3_answer: Optional[bool] = None
    extra_info_1_value: Optional[str] = None
    extra_info_2_value: Optional[str] = None
    extra_info_3_value: Optional[str] = None

    @model_validator(mode="after")
    def _unique_members(self):
        ids = [m.id for m in self.members]
        if len(ids) != len(set(ids)):
            raise ValueError("Cada miembro solo puede aparecer una vez en el RSVP.")
        return self

class RSVPSubmitResponse(BaseModel):
    success: bool = True
    attending_count: int
    confirmation_message: str

# =================================================================================
# 👑 Admin: envíos, enlaces, timeline, notificaciones, engagement
# =================================================================================
class BulkSendRequest(BaseModel):
    family_ids: Optional[List[str]] = None
    channel: ChannelRequest = "PREFERRED"

class ReminderRequest(BaseModel):
    channel: ChannelRequest = "PREFERRED"
    family_ids: Optional[List[str]] = None
    message_template: Optional[str] = None

class MagicLinkOut(BaseModel):
    family_id: str
    url: str

class MagicLinkRequest(BaseModel):
    channel: Optional[ChannelEnum] = None

class TriggeredByUser(BaseModel):
    id: str
    name: str
    email: str

class TimelineEvent(BaseModel):
    id: str
    family_id: str
    family_name: str
    event_type: str
    channel: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    admin_triggered: bool = False
    state: Optional[str] = None
    timestamp: datetime
    triggered_by_user: Optional[TriggeredByUser] = None

class FamilyRef(BaseModel):
    id: str
    name: str

class TimelineResponse(BaseModel):
    events: List[TimelineEvent]
    family: FamilyRef

class NotificationItem(BaseModel):
    id: str
    family_id: str
    family_name: str
    event_type: str
    channel: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    admin_triggered: bool = False
    timestamp: datetime
    read: bool = False
    read_at: Optional[datetime] = None

class NotificationPage(BaseModel):
    items: List[NotificationItem]
    total: int
    page: int
    limit: int
    unread_count: int

class MarkReadRequest(BaseModel):
    event_ids: Optional[List[str]] = None  # None = marcar todas las de la boda.

class MarkReadResult(BaseModel):
    updated: int

class UnreadCount(BaseModel):
    unread_count: int

class EngagementStep(BaseModel):
    key: str  # invited / delivered / read / link_opened / rsvp_confirmed
    done: bool
    at: Optional[datetime] = None
    channel: Optional[str] = None

class GuestEngagement(BaseModel):
    family_id: str
    family_name: str
    steps: List[EngagementStep]
    completion: int  # Porcentaje 0-100.

class WeddingEngagementStats(BaseModel):
    total_families: int = 0
    step_counts: Dict[str, int] = Field(default_factory=dict)
    average_completion: int = 0
    engagements: List[GuestEngagement] = Field(default_factory=list)

class ChannelRate(BaseModel):
    channel: str
    sent: int = 0
    delivered: int = 0
    read: int = 0
    failed: int = 0
    delivery_rate: int = 0  # % de enviados sin fallo.
    read_rate: int = 0      # % de entregados leídos.
