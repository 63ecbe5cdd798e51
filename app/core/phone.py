"""Phone number canonicalization.

Every phone number is stored in E.164 form (``+15551234567``) so lookups are
exact-match. Historical rows written before canonicalization may hold national
formats; ``legacy_phone_variants`` produces the formats those rows used so a
fallback lookup can still find (and then backfill) them.
"""

import re

import phonenumbers
from phonenumbers import NumberParseException, PhoneNumberFormat

from app.core.config import get_settings

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw: str | None, region: str | None = None) -> str | None:
    """
    Canonicalize a phone number to E.164.

    Args:
        raw: Phone number in any common format
        region: Region for numbers without a country code (defaults to settings)

    Returns:
        E.164 string, or None if the input cannot be parsed as a valid number
    """
    if not raw or not raw.strip():
        return None

    region = region or get_settings().DEFAULT_PHONE_REGION
    try:
        parsed = phonenumbers.parse(raw.strip(), region)
    except NumberParseException:
        return None

    if not phonenumbers.is_possible_number(parsed):
        return None

    return phonenumbers.format_number(parsed, PhoneNumberFormat.E164)


def is_phone_like(value: str | None) -> bool:
    """Whether a channel identifier looks like a phone number rather than an email."""
    if not value or "@" in value:
        return False
    return len(_NON_DIGITS.sub("", value)) >= 7


def legacy_phone_variants(e164: str) -> list[str]:
    """
    Formats historical un-normalized rows may hold for a canonical number.

    Only the trailing ten digits are significant for NANP numbers, so the
    variants cover the common renderings of those digits.
    """
    digits = _NON_DIGITS.sub("", e164)
    last_ten = digits[-10:]
    if len(last_ten) < 10:
        return [e164, digits]

    area, exchange, line = last_ten[:3], last_ten[3:6], last_ten[6:]
    variants = [
        e164,
        digits,
        last_ten,
        f"1{last_ten}",
        f"+1{last_ten}",
        f"({area}) {exchange}-{line}",
        f"({area}){exchange}-{line}",
        f"{area}-{exchange}-{line}",
        f"{area}.{exchange}.{line}",
        f"{area} {exchange} {line}",
        f"+1 ({area}) {exchange}-{line}",
        f"+1 {area}-{exchange}-{line}",
    ]
    # Preserve order, drop duplicates
    return list(dict.fromkeys(variants))
