"""initial guest communications schema

Revision ID: 3f1c9a2e7b10
Revises:
Create Date: 2026-10-19 10:12:41.318204

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a2e7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

LANGUAGES = ("ES", "EN", "FR", "IT", "DE")
CHANNELS = ("WHATSAPP", "EMAIL", "SMS")
EVENT_TYPES = (
    "LINK_OPENED", "RSVP_STARTED", "RSVP_SUBMITTED", "RSVP_UPDATED", "GUEST_ADDED",
    "PAYMENT_RECEIVED", "REMINDER_SENT", "INVITATION_SENT", "SAVE_THE_DATE_SENT",
    "TASK_ASSIGNED", "TASK_COMPLETED", "MESSAGE_DELIVERED", "MESSAGE_READ",
    "MESSAGE_FAILED", "MESSAGE_RECEIVED", "AI_REPLY_SENT",
)


def upgrade() -> None:
    """Create weddings, families, templates, tracking events and read state."""
    op.create_table(
        "wedding_planners",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(254), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_table(
        "themes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("planner_id", sa.String(36), sa.ForeignKey("wedding_planners.id"), nullable=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("config", sa.JSON(), nullable=False),
        sa.Column("preview_image_url", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_table(
        "weddings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("planner_id", sa.String(36), sa.ForeignKey("wedding_planners.id"), nullable=True),
        sa.Column("theme_id", sa.String(36), sa.ForeignKey("themes.id"), nullable=True),
        sa.Column("couple_names", sa.String(200), nullable=False),
        sa.Column("wedding_date", sa.DateTime(), nullable=False),
        sa.Column("wedding_time", sa.String(20), nullable=False),
        sa.Column("location", sa.String(300), nullable=False),
        sa.Column("rsvp_cutoff_date", sa.DateTime(), nullable=False),
        sa.Column("dress_code", sa.String(200), nullable=True),
        sa.Column("additional_info", sa.Text(), nullable=True),
        sa.Column("gift_iban", sa.String(64), nullable=True),
        sa.Column("default_language", sa.Enum(*LANGUAGES, name="languageenum"), nullable=False),
        sa.Column("allow_guest_additions", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("dietary_restrictions_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("transportation_question_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("transportation_question_text", sa.String(300), nullable=True),
        sa.Column("extra_question_1_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("extra_question_1_text", sa.String(300), nullable=True),
        sa.Column("extra_question_2_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("extra_question_2_text", sa.String(300), nullable=True),
        sa.Column("extra_question_3_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("extra_question_3_text", sa.String(300), nullable=True),
        sa.Column("save_the_date_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("whatsapp_mode", sa.Enum("BUSINESS", "LINKS", name="whatsappmodeenum"), nullable=False),
        sa.Column("short_url_initials", sa.String(12), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_weddings_planner_id", "weddings", ["planner_id"])

    op.create_table(
        "wedding_admins",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("wedding_id", sa.String(36), sa.ForeignKey("weddings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(254), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_wedding_admins_wedding_id", "wedding_admins", ["wedding_id"])

    op.create_table(
        "families",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("wedding_id", sa.String(36), sa.ForeignKey("weddings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(254), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("whatsapp_number", sa.String(32), nullable=True),
        sa.Column("channel_preference", sa.Enum(*CHANNELS, name="channelenum"), nullable=True),
        sa.Column("preferred_language", sa.Enum(*LANGUAGES, name="languageenum"), nullable=False),
        sa.Column("magic_token", sa.String(36), nullable=True),
        sa.Column("reference_code", sa.String(64), nullable=True),
        sa.Column("short_url_code", sa.String(8), nullable=True),
        sa.Column("save_the_date_sent", sa.DateTime(), nullable=True),
        sa.Column("transportation_answer", sa.Boolean(), nullable=True),
        sa.Column("extra_question_1_answer", sa.Boolean(), nullable=True),
        sa.Column("extra_question_2_answer", sa.Boolean(), nullable=True),
        sa.Column("extra_question_3_answer", sa.Boolean(), nullable=True),
        sa.Column("extra_info_1_value", sa.String(500), nullable=True),
        sa.Column("extra_info_2_value", sa.String(500), nullable=True),
        sa.Column("extra_info_3_value", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("wedding_id", "short_url_code", name="uq_families_wedding_short_code"),
    )
    op.create_index("ix_families_wedding_id", "families", ["wedding_id"])
    op.create_index("ix_families_phone", "families", ["phone"])
    op.create_index("ix_families_whatsapp_number", "families", ["whatsapp_number"])
    op.create_index("ix_families_magic_token", "families", ["magic_token"], unique=True)

    op.create_table(
        "family_members",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("family_id", sa.String(36), sa.ForeignKey("families.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("age", sa.Integer(), nullable=True),
        sa.Column("attending", sa.Boolean(), nullable=True),
        sa.Column("dietary_restrictions", sa.String(500), nullable=True),
        sa.Column("accessibility_needs", sa.String(500), nullable=True),
        sa.Column("added_by_guest", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_family_members_family_id", "family_members", ["family_id"])

    op.create_table(
        "message_templates",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("wedding_id", sa.String(36), sa.ForeignKey("weddings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.Enum("INVITATION", "SAVE_THE_DATE", "REMINDER", "CONFIRMATION", name="templatetypeenum"), nullable=False),
        sa.Column("language", sa.Enum(*LANGUAGES, name="languageenum"), nullable=False),
        sa.Column("channel", sa.Enum(*CHANNELS, name="channelenum"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("subject", sa.String(300), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("image_url", sa.String(500), nullable=True),
        sa.Column("content_template_id", sa.String(64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("wedding_id", "type", "language", "channel", name="uq_templates_lookup"),
    )
    op.create_index("ix_message_templates_wedding_id", "message_templates", ["wedding_id"])

    op.create_table(
        "tracking_events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("family_id", sa.String(36), sa.ForeignKey("families.id", ondelete="CASCADE"), nullable=False),
        sa.Column("wedding_id", sa.String(36), sa.ForeignKey("weddings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("event_type", sa.Enum(*EVENT_TYPES, name="eventtypeenum"), nullable=False),
        sa.Column("channel", sa.Enum(*CHANNELS, name="channelenum"), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("message_sid", sa.String(64), nullable=True),
        sa.Column("admin_triggered", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("state", sa.Enum("PROVISIONAL", "FINALIZED", name="eventstateenum"), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_tracking_events_event_type", "tracking_events", ["event_type"])
    op.create_index("ix_tracking_events_message_sid", "tracking_events", ["message_sid"])
    op.create_index("ix_tracking_events_family_ts", "tracking_events", ["family_id", "timestamp"])
    op.create_index("ix_tracking_events_wedding_ts", "tracking_events", ["wedding_id", "timestamp"])

    op.create_table(
        "notification_reads",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("tracking_events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("admin_id", sa.String(36), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("event_id", "admin_id", name="uq_notification_reads_event_admin"),
    )
    op.create_index("ix_notification_reads_id", "notification_reads", ["id"])
    op.create_index("ix_notification_reads_event_id", "notification_reads", ["event_id"])
    op.create_index("ix_notification_reads_admin_id", "notification_reads", ["admin_id"])

    op.create_table(
        "wedding_photos",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("wedding_id", sa.String(36), sa.ForeignKey("weddings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("url", sa.String(500), nullable=False),
        sa.Column("storage_key", sa.String(500), nullable=False),
        sa.Column("source", sa.Enum("UPLOAD", "WHATSAPP", name="photosourceenum"), nullable=False),
        sa.Column("sender_name", sa.String(200), nullable=True),
        sa.Column("sender_phone", sa.String(32), nullable=True),
        sa.Column("caption", sa.String(1000), nullable=True),
        sa.Column("approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_wedding_photos_wedding_id", "wedding_photos", ["wedding_id"])


def downgrade() -> None:
    """Drop everything in reverse dependency order."""
    op.drop_table("wedding_photos")
    op.drop_table("notification_reads")
    op.drop_table("tracking_events")
    op.drop_table("message_templates")
    op.drop_table("family_members")
    op.drop_table("families")
    op.drop_table("wedding_admins")
    op.drop_table("weddings")
    op.drop_table("themes")
    op.drop_table("wedding_planners")
    for enum_name in (
        "languageenum", "channelenum", "whatsappmodeenum", "templatetypeenum",
        "eventtypeenum", "eventstateenum", "photosourceenum",
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
