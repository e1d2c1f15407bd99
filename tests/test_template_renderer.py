# tests/test_template_renderer.py

import pytest

from app.template_renderer import (
    get_placeholders,
    has_all_placeholders,
    map_to_whatsapp_variables,
    render_template,
)


def test_render_replaces_known_and_keeps_unknown():
    out = render_template("Hola {{familyName}}, {{unknown}} el {{weddingDate}}", {
        "familyName": "García",
        "weddingDate": "15 de junio de 2024",
    })
    assert out == "Hola García, {{unknown}} el 15 de junio de 2024"


def test_render_does_not_escape_html_and_repeats_values():
    out = render_template("<b>{{a}}</b> {{a}}", {"a": "<i>x</i>"})
    assert out == "<b><i>x</i></b> <i>x</i>"


@pytest.mark.parametrize(
    "template, variables, expected",
    [
        ("{{a}} {{b}}", {"a": "X", "b": "Y"}, "X Y"),
        ("{{familyName}}様", {"familyName": "山田"}, "山田様"),                      # CJK.
        ("\u200f{{name}}\u200f", {"name": "عائلة"}, "\u200fعائلة\u200f"),          # Marcas RTL.
        ("💍 {{coupleNames}} 🎉", {"coupleNames": "Ana ❤️ Luis"}, "💍 Ana ❤️ Luis 🎉"),
        ("Hola {{familyName}},\n\nOs esperamos.\r\n{{magicLink}}", {"familyName": "García", "magicLink": "https://x.io/inv/LJ/a1"},
         "Hola García,\n\nOs esperamos.\r\nhttps://x.io/inv/LJ/a1"),
    ],
)
def test_render_keeps_text_unchanged(template, variables, expected):
    assert render_template(template, variables) == expected


def test_render_none_value_keeps_placeholder():
    assert render_template("{{referenceCode}}", {"referenceCode": None}) == "{{referenceCode}}"


def test_get_placeholders_distinct_in_order():
    assert get_placeholders("{{b}} {{a}} {{b}} {{c}}") == ["b", "a", "c"]
    assert get_placeholders("") == []
    assert get_placeholders("🎉 {{familyName}}\n💍 {{magicLink}}\n{{familyName}}") == ["familyName", "magicLink"]


def test_has_all_placeholders():
    assert has_all_placeholders("{{familyName}} {{magicLink}}", ["familyName", "magicLink"])
    assert not has_all_placeholders("{{familyName}}", ["familyName", "magicLink"])


def test_whatsapp_variables_positions(monkeypatch):
    monkeypatch.delenv("PLATFORM_OPTIMIZATION", raising=False)
    monkeypatch.delenv("BLOB_READ_WRITE_TOKEN", raising=False)
    variables = {
        "familyName": "García",
        "coupleNames": "Laura y Javier",
        "weddingDate": "15 de junio de 2024",
        "weddingTime": "18:00",
        "magicLink": "http://localhost:3000/inv/LJ/abc",
        "rsvpCutoffDate": "1 de mayo de 2024",
        "location": "Sevilla",
    }
    mapped = map_to_whatsapp_variables(variables, "https://cdn.example.com/uploads/invite.png?v=2")

    assert mapped["1"] == "García"
    assert mapped["2"] == "Laura y Javier"
    assert mapped["5"] == "invite.png"           # Solo el nombre del fichero.
    assert mapped["6"] == "http://localhost:3000/inv/LJ/abc"
    assert mapped["8"] == ""                     # Sin referenceCode.
    assert mapped["9"] == "Sevilla"
    assert set(mapped) == {str(i) for i in range(1, 10)}


def test_whatsapp_image_full_url_on_blob_platform(monkeypatch):
    monkeypatch.setenv("PLATFORM_OPTIMIZATION", "vercel")
    url = "https://blob.example.com/invite.png?token=abc"
    assert map_to_whatsapp_variables({}, url)["5"] == url
