# tests/test_storage_and_auth.py

import os

import pytest

from app.auth import create_admin_token, decode_admin_token, verify_admin_token
from app.models import AdminRoleEnum
from app.storage import delete_file, generate_unique_filename, media_root, save_file


# -----------------------
# Almacenamiento local
# -----------------------
def test_save_and_delete_file():
    key = f"gallery/w1/{generate_unique_filename('foto.jpg')}"
    url = save_file(key, b"bytes", "image/jpeg")
    assert url == f"/media/{key}"
    path = media_root() / key
    assert path.read_bytes() == b"bytes"
    delete_file(key)
    assert not path.exists()


def test_unique_filename_keeps_basename():
    name = generate_unique_filename("../../etc/passwd")
    assert name.endswith("-passwd")
    assert os.sep not in name


def test_storage_key_cannot_escape_root():
    with pytest.raises(ValueError):
        save_file("../outside.txt", b"x")


# -----------------------
# JWT de administración
# -----------------------
def test_admin_token_roundtrip_claims():
    token = create_admin_token("admin-1", AdminRoleEnum.wedding_admin, "wedding-1")
    data = decode_admin_token(token)
    assert data["sub"] == "admin-1"
    assert data["role"] == "wedding_admin"
    assert data["wedding_id"] == "wedding-1"
    assert data["type"] == "admin"


def test_wedding_admin_token_requires_wedding():
    with pytest.raises(ValueError):
        create_admin_token("admin-1", AdminRoleEnum.wedding_admin)


def test_planner_token_without_wedding():
    data = verify_admin_token(create_admin_token("planner-1", "planner"))
    assert data["role"] == "planner"
    assert "wedding_id" not in data


def test_verify_rejects_tampered_token():
    token = create_admin_token("planner-1", AdminRoleEnum.planner)
    assert verify_admin_token(token.rsplit(".", 1)[0] + ".firma-falsa") is None
