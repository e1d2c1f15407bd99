# tests/test_admin_routes.py
# =======================
# Rutas de administración: acceso por JWT, envíos en lote, enlaces, timeline,
# notificaciones y engagement.
# =======================

from datetime import datetime, timedelta

from app.auth import create_admin_token
from app.models import (
    AdminRoleEnum,
    ChannelEnum,
    EventTypeEnum,
    TemplateTypeEnum,
    TrackingEvent,
    WeddingPlanner,
)


def _url(wedding_id, suffix):
    return f"/api/admin/weddings/{wedding_id}{suffix}"


def _event(db, family, event_type, minutes_ago=0, channel=None):
    event = TrackingEvent(
        family_id=family.id,
        wedding_id=family.wedding_id,
        event_type=event_type,
        channel=channel,
        meta={},
        timestamp=datetime.utcnow() - timedelta(minutes=minutes_ago),
    )
    db.add(event)
    db.commit()
    return event


# -----------------------
# Autorización
# -----------------------
def test_requires_bearer_token(client, wedding):
    response = client.get(_url(wedding.id, "/notifications"))
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "UNAUTHORIZED"


def test_rejects_invalid_and_expired_tokens(client, wedding, wedding_admin):
    expired = create_admin_token(wedding_admin.id, AdminRoleEnum.wedding_admin, wedding.id, expires_minutes=-5)
    for token in ("garbage", expired):
        response = client.get(_url(wedding.id, "/notifications"), headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401


def test_wedding_admin_cannot_access_other_wedding(client, make_wedding, admin_headers):
    other = make_wedding(couple_names="Emma & Noah")
    response = client.get(_url(other.id, "/notifications"), headers=admin_headers)
    assert response.status_code == 403


def test_planner_access_only_to_own_weddings(client, db, make_wedding):
    planner = WeddingPlanner(name="Pilar", email="pilar@example.com")
    db.add(planner)
    db.commit()
    own = make_wedding(planner_id=planner.id)
    foreign = make_wedding(couple_names="Emma & Noah")
    headers = {"Authorization": f"Bearer {create_admin_token(planner.id, AdminRoleEnum.planner)}"}

    assert client.get(_url(own.id, "/engagement"), headers=headers).status_code == 200
    assert client.get(_url(foreign.id, "/engagement"), headers=headers).status_code == 403
    assert client.get(_url("missing", "/engagement"), headers=headers).status_code == 404


# -----------------------
# Envíos en lote
# -----------------------
def test_invitations_endpoint(client, db, wedding, make_family, make_template, admin_headers, wedding_admin):
    make_template(wedding, TemplateTypeEnum.INVITATION, ChannelEnum.EMAIL)
    make_family(wedding, name="Uno", email="uno@example.com")
    make_family(wedding, name="Dos", email=None, phone=None, whatsapp_number=None)

    response = client.post(_url(wedding.id, "/invitations"), json={"channel": "EMAIL"}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["total"] == 2
    assert response.json()["successful"] == 1
    event = db.query(TrackingEvent).one()
    assert event.meta["admin_id"] == wedding_admin.id


def test_save_the_date_disabled_is_400(client, db, wedding, admin_headers):
    wedding.save_the_date_enabled = False
    db.commit()
    response = client.post(_url(wedding.id, "/save-the-date"), json={}, headers=admin_headers)
    assert response.status_code == 400


def test_save_the_date_only_eligible_families(client, db, wedding, make_family, make_template, admin_headers):
    make_template(wedding, TemplateTypeEnum.SAVE_THE_DATE, ChannelEnum.EMAIL)
    make_family(wedding, name="Nueva")
    make_family(wedding, name="Ya enviada", save_the_date_sent=datetime.utcnow())

    response = client.post(_url(wedding.id, "/save-the-date"), json={}, headers=admin_headers)

    assert response.json()["total"] == 1
    assert response.json()["successful"] == 1


def test_reminders_after_cutoff_is_400(client, db, wedding, admin_headers):
    wedding.rsvp_cutoff_date = datetime.utcnow() - timedelta(days=1)
    db.commit()
    response = client.post(_url(wedding.id, "/reminders"), json={}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "RSVP_CUTOFF_PASSED"


# -----------------------
# Magic links y timeline
# -----------------------
def test_magic_link_generate_and_regenerate(client, db, wedding, family, admin_headers):
    first = client.post(_url(wedding.id, f"/guests/{family.id}/magic-link"), json={"channel": "EMAIL"}, headers=admin_headers)
    assert first.status_code == 200
    assert first.json()["url"].endswith("?channel=email")
    db.expire_all()
    old_token = family.magic_token

    again = client.post(_url(wedding.id, f"/guests/{family.id}/magic-link/regenerate"), headers=admin_headers)

    assert again.status_code == 200
    db.expire_all()
    assert family.magic_token != old_token
    assert client.get(f"/api/guest/{old_token}").status_code == 404


def test_timeline_endpoint(client, db, wedding, family, admin_headers):
    _event(db, family, EventTypeEnum.LINK_OPENED, 3)
    response = client.get(_url(wedding.id, f"/guests/{family.id}/timeline"), headers=admin_headers)
    events = response.json()["events"]
    assert [e["event_type"] for e in events] == ["LINK_OPENED", "GUEST_CREATED"]
    assert client.get(_url(wedding.id, "/guests/missing/timeline"), headers=admin_headers).status_code == 404


# -----------------------
# Notificaciones
# -----------------------
def test_notifications_read_state_per_admin(client, db, wedding, family, admin_headers):
    opened = _event(db, family, EventTypeEnum.LINK_OPENED, 10, ChannelEnum.EMAIL)
    _event(db, family, EventTypeEnum.RSVP_SUBMITTED, 1)

    page = client.get(_url(wedding.id, "/notifications"), headers=admin_headers).json()
    assert page["total"] == 2
    assert page["unread_count"] == 2
    assert page["items"][0]["event_type"] == "RSVP_SUBMITTED"
    assert page["items"][0]["family_name"] == "García"

    marked = client.post(_url(wedding.id, f"/notifications/{opened.id}/read"), headers=admin_headers)
    assert marked.json() == {"updated": 1}
    count = client.get(_url(wedding.id, "/notifications/unread-count"), headers=admin_headers).json()
    assert count == {"unread_count": 1}

    unread = client.get(_url(wedding.id, "/notifications?read=false"), headers=admin_headers).json()
    assert [i["event_type"] for i in unread["items"]] == ["RSVP_SUBMITTED"]

    # Otro admin de la misma boda conserva su propio estado de lectura.
    other = create_admin_token("other-admin", AdminRoleEnum.wedding_admin, wedding.id)
    other_count = client.get(
        _url(wedding.id, "/notifications/unread-count"), headers={"Authorization": f"Bearer {other}"}
    ).json()
    assert other_count == {"unread_count": 2}


def test_mark_all_read_and_filters(client, db, wedding, family, admin_headers):
    _event(db, family, EventTypeEnum.INVITATION_SENT, 20, ChannelEnum.WHATSAPP)
    _event(db, family, EventTypeEnum.LINK_OPENED, 5, ChannelEnum.WHATSAPP)
    _event(db, family, EventTypeEnum.LINK_OPENED, 1, ChannelEnum.EMAIL)

    filtered = client.get(
        _url(wedding.id, "/notifications?event_type=LINK_OPENED&channel=WHATSAPP"), headers=admin_headers
    ).json()
    assert filtered["total"] == 1

    paged = client.get(_url(wedding.id, "/notifications?page=2&limit=2"), headers=admin_headers).json()
    assert len(paged["items"]) == 1
    assert paged["items"][0]["event_type"] == "INVITATION_SENT"

    result = client.post(_url(wedding.id, "/notifications/mark-read"), json={}, headers=admin_headers).json()
    assert result == {"updated": 3}
    again = client.post(_url(wedding.id, "/notifications/mark-read"), json={}, headers=admin_headers).json()
    assert again == {"updated": 0}


# -----------------------
# Engagement
# -----------------------
def test_guest_engagement_and_channel_rates(client, db, wedding, family, admin_headers):
    _event(db, family, EventTypeEnum.INVITATION_SENT, 30, ChannelEnum.WHATSAPP)
    _event(db, family, EventTypeEnum.MESSAGE_DELIVERED, 25, ChannelEnum.WHATSAPP)
    _event(db, family, EventTypeEnum.LINK_OPENED, 10, ChannelEnum.WHATSAPP)

    engagement = client.get(_url(wedding.id, f"/guests/{family.id}/engagement"), headers=admin_headers).json()
    assert [s["done"] for s in engagement["steps"]] == [True, True, False, True, False]
    assert engagement["completion"] == 60

    stats = client.get(_url(wedding.id, "/engagement"), headers=admin_headers).json()
    assert stats["total_families"] == 1
    assert stats["step_counts"]["link_opened"] == 1

    rates = {r["channel"]: r for r in client.get(_url(wedding.id, "/channel-rates"), headers=admin_headers).json()}
    assert rates["WHATSAPP"]["sent"] == 1
    assert rates["WHATSAPP"]["delivery_rate"] == 100
    assert rates["EMAIL"]["sent"] == 0
