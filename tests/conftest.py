# tests/conftest.py
# -------------------------------------------------------------------------------------
# Archivo: tests/conftest.py
# Propósito: Entorno aislado para la suite.
#            - SQLite en un directorio temporal (FORCE_DB=sqlite), esquema limpio por test.
#            - DRY_RUN=1: ningún proveedor real (SendGrid, Twilio) recibe llamadas.
#            - BACKGROUND_INLINE=1: tracking y confirmaciones se ejecutan en el acto.
#            - Fábricas de bodas, familias y plantillas + cabecera JWT de admin.
# Las variables se fijan ANTES de importar `app`: db.py, auth.py y magic_link.py
# leen el entorno al importarse.
# -------------------------------------------------------------------------------------

import os
import tempfile
from datetime import datetime, timedelta

_TMP_DIR = tempfile.mkdtemp(prefix="wedding-comms-tests-")

os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["FORCE_DB"] = "sqlite"
os.environ["DRY_RUN"] = "1"
os.environ["BACKGROUND_INLINE"] = "1"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["TWILIO_AUTH_TOKEN"] = "test-twilio-token"
os.environ["TWILIO_ACCOUNT_SID"] = "ACtest"
os.environ["TWILIO_PHONE_NUMBER"] = "+15550000000"
os.environ["TWILIO_WHATSAPP_NUMBER"] = "+15550000001"
os.environ["MEDIA_ROOT"] = os.path.join(_TMP_DIR, "media")
os.environ["APP_URL"] = "http://localhost:3000"
os.environ.pop("ALERT_WEBHOOK_URL", None)
for _key in ("OPENAI_API_KEY", "GEMINI_API_KEY", "AI_PROVIDER"):
    os.environ.pop(_key, None)

import pytest                                                      # noqa: E402
from fastapi.testclient import TestClient                          # noqa: E402

from app.auth import create_admin_token                            # noqa: E402
from app.db import Base, SessionLocal, engine                      # noqa: E402
from app.models import (                                           # noqa: E402
    AdminRoleEnum,
    ChannelEnum,
    Family,
    FamilyMember,
    LanguageEnum,
    MessageTemplate,
    TemplateTypeEnum,
    Wedding,
    WeddingAdmin,
    WhatsAppModeEnum,
)
from app.rate_limit import get_rate_limiter                        # noqa: E402
from app.short_url import short_url_cache                          # noqa: E402


# =========================
# Esquema y estado global
# =========================
@pytest.fixture(autouse=True)
def _clean_state(monkeypatch):
    """Esquema nuevo, cache de enlaces cortos vacía y rate limiter a cero en cada test."""
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    short_url_cache.clear()
    get_rate_limiter().store.reset()
    yield
    short_url_cache.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    from app.main import app
    return TestClient(app)


# =========================
# Fábricas de datos
# =========================
@pytest.fixture
def make_wedding(db):
    def _make(**overrides) -> Wedding:
        now = datetime.utcnow()
        data = dict(
            couple_names="Laura y Javier",
            wedding_date=now + timedelta(days=90),
            wedding_time="18:00",
            location="Finca El Olivar, Sevilla",
            rsvp_cutoff_date=now + timedelta(days=45),
            default_language=LanguageEnum.ES,
            save_the_date_enabled=True,
            whatsapp_mode=WhatsAppModeEnum.BUSINESS,
        )
        data.update(overrides)
        wedding = Wedding(**data)
        db.add(wedding)
        db.commit()
        db.refresh(wedding)
        return wedding
    return _make


@pytest.fixture
def make_family(db):
    def _make(wedding: Wedding, members=("Ana", "Luis"), **overrides) -> Family:
        data = dict(
            wedding_id=wedding.id,
            name="García",
            email="garcia@example.com",
            phone="+34600111222",
            whatsapp_number="+34600111222",
            preferred_language=LanguageEnum.ES,
        )
        data.update(overrides)
        family = Family(**data)
        family.members = [FamilyMember(name=name) for name in members]
        db.add(family)
        db.commit()
        db.refresh(family)
        return family
    return _make


@pytest.fixture
def make_template(db):
    def _make(wedding: Wedding, template_type=TemplateTypeEnum.INVITATION, channel=ChannelEnum.EMAIL,
              language=LanguageEnum.ES, **overrides) -> MessageTemplate:
        data = dict(
            wedding_id=wedding.id,
            type=template_type,
            language=language,
            channel=channel,
            name=f"{template_type.value} {channel.value}",
            subject="{{coupleNames}} se casan",
            body="Hola {{familyName}}, os esperamos el {{weddingDate}}. Confirma aquí: {{magicLink}}",
        )
        data.update(overrides)
        template = MessageTemplate(**data)
        db.add(template)
        db.commit()
        db.refresh(template)
        return template
    return _make


@pytest.fixture
def wedding(make_wedding):
    return make_wedding()


@pytest.fixture
def family(make_family, wedding):
    return make_family(wedding)


@pytest.fixture
def wedding_admin(db, wedding):
    admin = WeddingAdmin(wedding_id=wedding.id, name="Marta Admin", email="marta@example.com")
    db.add(admin)
    db.commit()
    db.refresh(admin)
    return admin


@pytest.fixture
def admin_headers(wedding_admin):
    token = create_admin_token(wedding_admin.id, AdminRoleEnum.wedding_admin, wedding_admin.wedding_id)
    return {"Authorization": f"Bearer {token}"}
