"""Tests for phone canonicalization and contact phone lookup."""

import pytest

from app.core.phone import is_phone_like, legacy_phone_variants, normalize_phone
from app.db.contacts import find_contacts_by_phone

from tests.fixtures_tenants import HOMEOWNER_ID


@pytest.mark.parametrize(
    "raw",
    ["+14155550101", "(415) 555-0101", "415.555.0101", "1-415-555-0101", " 415 555 0101 "],
)
def test_normalize_to_e164(raw):
    assert normalize_phone(raw) == "+14155550101"


@pytest.mark.parametrize("raw", [None, "", "   ", "not a number", "123"])
def test_unparseable_numbers(raw):
    assert normalize_phone(raw) is None


def test_explicit_region():
    assert normalize_phone("020 7946 0018", region="GB") == "+442079460018"


def test_is_phone_like():
    assert is_phone_like("+14155550101")
    assert not is_phone_like("hannah@example.com")
    assert not is_phone_like("web-123")


def test_legacy_variants_cover_common_formats():
    variants = legacy_phone_variants("+14155550101")
    assert variants[0] == "+14155550101"
    assert "(415) 555-0101" in variants
    assert "4155550101" in variants
    assert len(variants) == len(set(variants))


def test_lookup_by_canonical_form(tenants):
    contacts = find_contacts_by_phone("(415) 555-0101")
    assert [c["id"] for c in contacts] == [HOMEOWNER_ID]


def test_legacy_row_is_found_and_backfilled(fake_db):
    legacy = fake_db.seed("contacts", full_name="Old Row", phone_number="(650) 555-0142")

    contacts = find_contacts_by_phone("+16505550142")

    assert [c["id"] for c in contacts] == [legacy["id"]]
    assert contacts[0]["phone_number"] == "+16505550142"
    assert fake_db.get("contacts", legacy["id"])["phone_number"] == "+16505550142"
