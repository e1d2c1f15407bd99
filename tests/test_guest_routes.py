# tests/test_guest_routes.py
# =======================
# Rutas públicas del invitado: página RSVP, envío, enlaces cortos y rate limit.
# =======================

import uuid
from datetime import datetime, timedelta

from app.magic_link import generate_magic_link
from app.models import EventTypeEnum, TrackingEvent
from app.rate_limit import MemoryRateLimitStore, RateLimiter, get_rate_limiter


def _token(db, family):
    generate_magic_link(db, family.id)
    return family.magic_token


def test_guest_page_tracks_link_opened(client, db, family):
    token = _token(db, family)

    response = client.get(f"/api/guest/{token}?channel=whatsapp")

    assert response.status_code == 200
    data = response.json()
    assert data["family"]["name"] == "García"
    assert len(data["family"]["members"]) == 2
    assert data["rsvp_cutoff_passed"] is False
    assert data["has_submitted_rsvp"] is False
    opened = db.query(TrackingEvent).one()
    assert opened.event_type == EventTypeEnum.LINK_OPENED
    assert opened.channel.value == "WHATSAPP"


def test_guest_page_unknown_and_malformed_tokens(client):
    assert client.get(f"/api/guest/{uuid.uuid4()}").status_code == 404
    bad = client.get("/api/guest/not-a-token")
    assert bad.status_code == 404
    assert bad.json()["detail"]["code"] == "INVALID_TOKEN_FORMAT"


def test_guest_page_expired_after_wedding(client, db, make_wedding, make_family):
    wedding = make_wedding(
        wedding_date=datetime.utcnow() - timedelta(days=2),
        rsvp_cutoff_date=datetime.utcnow() - timedelta(days=20),
    )
    token = _token(db, make_family(wedding))
    response = client.get(f"/api/guest/{token}")
    assert response.status_code == 410
    assert response.json()["detail"]["code"] == "TOKEN_EXPIRED"


def test_rsvp_submission(client, db, family):
    token = _token(db, family)
    ana, luis = family.members
    payload = {
        "members": [
            {"id": ana.id, "attending": True, "dietary_restrictions": "Vegetariana"},
            {"id": luis.id, "attending": False, "dietary_restrictions": "Sin gluten"},
        ],
        "transportation_answer": True,
    }

    response = client.post(f"/api/guest/{token}/rsvp?channel=email", json=payload)

    assert response.status_code == 200
    body = response.json()
    assert body["attending_count"] == 1
    assert body["confirmation_message"] == (
        "Thank you for your RSVP! We have received your response for 1 attending guest."
    )
    db.expire_all()
    assert ana.dietary_restrictions == "Vegetariana"
    assert luis.attending is False
    assert luis.dietary_restrictions is None                      # Sin detalles si no asiste.
    submitted = db.query(TrackingEvent).filter_by(event_type=EventTypeEnum.RSVP_SUBMITTED).one()
    assert submitted.meta == {"total_members": 2, "attending_count": 1}


def test_rsvp_after_cutoff_is_403(client, db, make_wedding, make_family):
    wedding = make_wedding(rsvp_cutoff_date=datetime.utcnow() - timedelta(days=1))
    family = make_family(wedding)
    token = _token(db, family)
    payload = {"members": [{"id": family.members[0].id, "attending": True}]}

    response = client.post(f"/api/guest/{token}/rsvp", json=payload)

    assert response.status_code == 403
    assert response.json()["detail"] == {
        "code": "RSVP_CUTOFF_PASSED",
        "message": "The RSVP deadline has passed. Please contact the couple directly.",
    }


def test_rsvp_unknown_member_is_400(client, db, family):
    token = _token(db, family)
    payload = {"members": [{"id": "someone-else", "attending": True}]}
    response = client.post(f"/api/guest/{token}/rsvp", json=payload)
    assert response.status_code == 400
    assert response.json()["detail"]["details"] == {"member_ids": ["someone-else"]}


def test_short_url_redirect_keeps_query(client, db, family):
    url = generate_magic_link(db, family.id)
    path = url.replace("http://localhost:3000", "")

    response = client.get(f"{path}?channel=sms", follow_redirects=False)

    assert response.status_code == 307
    assert response.headers["location"] == f"/rsvp/{family.magic_token}?channel=sms"
    assert client.get("/inv/LJ/nope", follow_redirects=False).status_code == 404


def test_rate_limit_returns_429(client, db, family):
    from app.main import app

    limiter = RateLimiter(MemoryRateLimitStore(), max_req=2, window_s=60)
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    try:
        token = _token(db, family)
        codes = [client.get(f"/api/guest/{token}").status_code for _ in range(3)]
    finally:
        app.dependency_overrides.clear()
    assert codes == [200, 200, 429]


def test_rate_limit_counts_distinct_tokens_together(client):
    from app.main import app

    limiter = RateLimiter(MemoryRateLimitStore(), max_req=5, window_s=60)
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    try:
        guest_codes = [client.get(f"/api/guest/{uuid.uuid4()}").status_code for _ in range(8)]
        short_codes = [client.get(f"/inv/AB/x{i}", follow_redirects=False).status_code for i in range(8)]
    finally:
        app.dependency_overrides.clear()

    assert guest_codes == [404] * 5 + [429] * 3
    assert short_codes == [404] * 5 + [429] * 3
    assert len(limiter.store) == 2                                  # Una clave por endpoint, no por token.


def test_memory_store_sweeps_idle_keys():
    store = MemoryRateLimitStore()
    store.SWEEP_EVERY = 4
    for i in range(3):
        store.hit(f"ip-{i}", 10, 60, now=0.0)
    assert len(store) == 3
    store.hit("ip-nuevo", 10, 60, now=120.0)                        # Cuarto hit: barre las claves inactivas.
    assert len(store) == 1
