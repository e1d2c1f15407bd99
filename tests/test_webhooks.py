# tests/test_webhooks.py
# =======================
# Webhooks de Twilio: firma, MESSAGE_RECEIVED en dos fases, respuesta IA, fotos y recibos.
# =======================

import os

import pytest
from twilio.request_validator import RequestValidator

from app import ai_assistant
from app.models import EventStateEnum, EventTypeEnum, TrackingEvent, WeddingPhoto
from app.routers import webhooks

BASE_URL = "http://testserver"
INBOUND_PATH = "/api/webhooks/whatsapp"
STATUS_PATH = "/api/webhooks/twilio/status"


def _signed_post(client, path, params, signature=None):
    if signature is None:
        signature = RequestValidator(os.environ["TWILIO_AUTH_TOKEN"]).compute_signature(BASE_URL + path, params)
    return client.post(path, data=params, headers={"X-Twilio-Signature": signature})


def _inbound(body="¿Cuál es el código de vestimenta?", **extra):
    params = {
        "From": "whatsapp:+34600111222",
        "To": "whatsapp:+15550000001",
        "Body": body,
        "MessageSid": "SMin0001",
        "NumMedia": "0",
    }
    params.update(extra)
    return params


@pytest.fixture
def ai_enabled(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")


# -----------------------
# Firma
# -----------------------
def test_missing_signature_is_400(client, family, db):
    response = client.post(INBOUND_PATH, data=_inbound())
    assert response.status_code == 400
    assert response.json() == {"success": False}
    assert db.query(TrackingEvent).count() == 0


def test_bad_signature_is_403(client, family, db):
    response = _signed_post(client, INBOUND_PATH, _inbound(), signature="forged")
    assert response.status_code == 403
    assert db.query(TrackingEvent).count() == 0


def test_no_ai_finalizes_without_reply(client, family, db):
    response = _signed_post(client, INBOUND_PATH, _inbound())

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/xml")
    assert "<Message>" not in response.text
    event = db.query(TrackingEvent).one()
    assert event.event_type == EventTypeEnum.MESSAGE_RECEIVED
    assert event.state == EventStateEnum.FINALIZED
    assert event.meta["from"] == "+34600111222"


# -----------------------
# Respuesta IA
# -----------------------
def test_ai_reply_finalizes_and_records(client, family, db, ai_enabled, monkeypatch):
    seen = {}

    def fake_reply(message, wedding, fam, language=None, rsvp_url=None):
        seen.update(message=message, language=language, rsvp_url=rsvp_url)
        return "Etiqueta formal <3 & elegante"

    monkeypatch.setattr(ai_assistant, "generate_reply", fake_reply)

    response = _signed_post(client, INBOUND_PATH, _inbound())

    assert response.status_code == 200
    assert "<Message>Etiqueta formal &lt;3 &amp; elegante</Message>" in response.text
    assert seen["language"] == "ES"
    assert seen["rsvp_url"].endswith("?channel=whatsapp")

    received = db.query(TrackingEvent).filter_by(event_type=EventTypeEnum.MESSAGE_RECEIVED).one()
    assert received.state == EventStateEnum.FINALIZED
    assert received.version == 2
    assert received.meta["ai_reply"] == "Etiqueta formal <3 & elegante"
    sent = db.query(TrackingEvent).filter_by(event_type=EventTypeEnum.AI_REPLY_SENT).one()
    assert sent.meta["reply_preview"] == "Etiqueta formal <3 & elegante"


def test_ai_failure_still_answers_200(client, family, db, ai_enabled, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("provider down")

    monkeypatch.setattr(ai_assistant, "generate_reply", broken)

    response = _signed_post(client, INBOUND_PATH, _inbound())

    assert response.status_code == 200
    assert "<Message>" not in response.text
    received = db.query(TrackingEvent).one()
    assert received.state == EventStateEnum.PROVISIONAL          # Queda visible, sin respuesta.
    assert db.query(TrackingEvent).filter_by(event_type=EventTypeEnum.AI_REPLY_SENT).count() == 0


def test_unknown_sender_is_ignored(client, family, db, ai_enabled):
    params = _inbound(From="whatsapp:+447700900123")
    response = _signed_post(client, INBOUND_PATH, params)
    assert response.status_code == 200
    assert db.query(TrackingEvent).count() == 0


# -----------------------
# Fotos
# -----------------------
def test_photo_without_text_is_stored_and_thanked(client, family, db, monkeypatch):
    monkeypatch.setattr(webhooks, "download_media", lambda url: b"\xff\xd8fake-jpeg")
    params = _inbound(
        NumMedia="2",
        MediaUrl0="https://api.twilio.com/media/ME1",
        MediaContentType0="image/jpeg",
        MediaUrl1="https://api.twilio.com/media/ME2",
        MediaContentType1="video/mp4",                            # Solo se guardan imágenes.
    )
    params.pop("Body")                                            # Foto sin texto.

    response = _signed_post(client, INBOUND_PATH, params)

    assert "Gracias por compartir tu foto" in response.text
    photo = db.query(WeddingPhoto).one()
    assert photo.wedding_id == family.wedding_id
    assert photo.storage_key.startswith(f"gallery/{family.wedding_id}/")
    assert photo.storage_key.endswith(".jpeg")
    assert photo.approved is True
    assert db.query(TrackingEvent).count() == 0


# -----------------------
# Recibos de estado
# -----------------------
def _sent_invitation(db, family, sid="SMout0001"):
    event = TrackingEvent(
        family_id=family.id,
        wedding_id=family.wedding_id,
        event_type=EventTypeEnum.INVITATION_SENT,
        message_sid=sid,
        meta={"message_sid": sid, "template_type": "INVITATION"},
    )
    db.add(event)
    db.commit()
    return event


def test_status_callback_links_original_and_is_idempotent(client, family, db):
    original = _sent_invitation(db, family)
    params = {"MessageSid": "SMout0001", "MessageStatus": "delivered"}

    first = _signed_post(client, STATUS_PATH, params)
    second = _signed_post(client, STATUS_PATH, params)

    assert first.json() == {"success": True}
    assert second.json() == {"success": True}
    delivered = db.query(TrackingEvent).filter_by(event_type=EventTypeEnum.MESSAGE_DELIVERED).all()
    assert len(delivered) == 1
    assert delivered[0].meta["original_event_id"] == original.id
    assert delivered[0].meta["original_event_type"] == "INVITATION"


def test_status_undelivered_maps_to_failed(client, family, db):
    _sent_invitation(db, family)
    params = {"MessageSid": "SMout0001", "MessageStatus": "undelivered", "ErrorCode": "63016"}
    _signed_post(client, STATUS_PATH, params)
    failed = db.query(TrackingEvent).filter_by(event_type=EventTypeEnum.MESSAGE_FAILED).one()
    assert failed.meta["error_code"] == "63016"


def test_status_ignored_states_and_unknown_sid(client, family, db):
    _sent_invitation(db, family)
    assert _signed_post(client, STATUS_PATH, {"MessageSid": "SMout0001", "MessageStatus": "sent"}).status_code == 200
    assert _signed_post(client, STATUS_PATH, {"MessageSid": "SMnope", "MessageStatus": "read"}).status_code == 200
    assert db.query(TrackingEvent).count() == 1


def test_status_bad_signature(client, family):
    response = _signed_post(client, STATUS_PATH, {"MessageSid": "x", "MessageStatus": "read"}, signature="bad")
    assert response.status_code == 403
