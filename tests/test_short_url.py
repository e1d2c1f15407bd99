# tests/test_short_url.py

import time

import pytest

from app.short_url import (
    BASE62,
    ShortUrlCache,
    ensure_wedding_initials,
    generate_short_code,
    get_short_url_path,
    parse_initials,
    resolve_short_url,
    short_url_cache,
)


@pytest.mark.parametrize(
    "names, expected",
    [
        ("Laura y Javier", "LJ"),
        ("Emma & Noah", "EN"),
        ("anna and ben", "AB"),
        ("Giulia e Marco", "GM"),
        ("Lena und Paul", "LP"),
        ("Madonna", "MA"),
    ],
)
def test_parse_initials(names, expected):
    assert parse_initials(names) == expected


def test_initials_unique_across_weddings(db, make_wedding):
    first = make_wedding()
    second = make_wedding()
    third = make_wedding()
    assert ensure_wedding_initials(db, first) == "LJ"
    assert ensure_wedding_initials(db, second) == "LJ1"
    assert ensure_wedding_initials(db, third) == "LJ2"
    assert ensure_wedding_initials(db, first) == "LJ"                 # Estable una vez asignadas.


def test_short_code_is_base62(db, wedding):
    code = generate_short_code(db, wedding.id)
    assert len(code) == 3
    assert all(c in BASE62 for c in code)


def test_short_path_and_resolution(db, family):
    family.magic_token = "5f0c6a64-3b8e-4d7a-9c1e-2a4b6c8d0e1f"
    db.commit()
    path = get_short_url_path(db, family)
    _, _, initials, code = path.split("/")
    assert path == f"/inv/LJ/{family.short_url_code}"
    assert resolve_short_url(db, initials, code) == family.magic_token
    assert resolve_short_url(db, initials, "zzzz") is None


def test_cache_entries_expire():
    cache = ShortUrlCache(ttl_s=0.05)
    cache.set("LJ", "abc", "token-1")
    assert cache.get("LJ", "abc") == "token-1"
    time.sleep(0.06)
    assert cache.get("LJ", "abc") is None
    assert len(cache) == 0


def test_cache_evicts_oldest_when_full():
    cache = ShortUrlCache(max_entries=2)
    cache.set("LJ", "a", "t-a")
    cache.set("LJ", "b", "t-b")
    cache.set("LJ", "c", "t-c")
    assert len(cache) == 2
    assert cache.get("LJ", "a") is None
    assert cache.get("LJ", "c") == "t-c"


def test_unknown_codes_are_not_cached(db, wedding):
    for code in ("zz1", "zz2", "zz3"):
        assert resolve_short_url(db, "LJ", code) is None
    assert len(short_url_cache) == 0
