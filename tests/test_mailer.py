# tests/test_mailer.py
# Correos compuestos: HTML escapado y texto plano legible.

from app import mailer
from app.schemas import DispatchResult


def _capture(monkeypatch):
    sent = {}

    def fake_send(to_email, subject, html_body, text_fallback="", sender_name=None):
        sent.update(to=to_email, subject=subject, html=html_body, text=text_fallback)
        return DispatchResult(success=True)

    monkeypatch.setattr(mailer, "send_email_html", fake_send)
    return sent


def test_confirmation_text_part_is_not_html_escaped(monkeypatch):
    sent = _capture(monkeypatch)

    result = mailer.send_rsvp_confirmation(
        "garcia@example.com", "EN", "O'Brien <Jr>", "Laura & Javier", "June 15, 2025", 2
    )

    assert result.success
    assert "O'Brien <Jr> Family" in sent["text"]
    assert "Laura & Javier's wedding" in sent["text"]
    assert "&#x27;" not in sent["text"]
    assert "O&#x27;Brien &lt;Jr&gt;" in sent["html"]


def test_dynamic_email_appends_link_to_text(monkeypatch):
    sent = _capture(monkeypatch)

    mailer.send_dynamic_email(
        "garcia@example.com", "Invitación", "Hola <b>García</b>", "ES", "Laura y Javier",
        cta_label="Confirmar", cta_url="http://localhost:3000/inv/LJ/a1",
    )

    assert sent["text"] == "Hola <b>García</b>\n\nhttp://localhost:3000/inv/LJ/a1"
    assert "Hola <b>García</b>" in sent["html"]
