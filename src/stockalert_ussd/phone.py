"""Caller identity helpers — phone normalisation and carrier detection."""

import re

from stockalert_ussd.constants import (
    COUNTRY_CODE,
    DEFAULT_PROVIDER,
    NETWORK_CODES,
    PHONE_NUMBER_PATTERN,
    PROVIDER_MAX_MENU_ITEMS,
)

_NON_DIGIT_RE = re.compile(r"\D+")


def normalize_phone_number(raw: str) -> str:
    """Normalise a Kenyan phone number to ``+254XXXXXXXXX``.

    Accepts the four shapes gateways and users send::

        +254712345678   already international
        254712345678    country code without plus
        0712345678      local with trunk prefix
        712345678       bare subscriber number

    Spaces, dashes and brackets are ignored.  Normalising an already
    normalised number returns it unchanged.
    """
    value = (raw or "").strip()
    digits = _NON_DIGIT_RE.sub("", value)
    if value.startswith("+"):
        return f"+{digits}"
    if digits.startswith(COUNTRY_CODE) and len(digits) == len(COUNTRY_CODE) + 9:
        return f"+{digits}"
    if digits.startswith("0"):
        return f"+{COUNTRY_CODE}{digits[1:]}"
    return f"+{COUNTRY_CODE}{digits}"


def is_valid_phone_number(phone: str) -> bool:
    """True for normalised Kenyan mobile numbers (+2547… / +2541…)."""
    return bool(PHONE_NUMBER_PATTERN.match(phone or ""))


def mask_phone_number(phone: str) -> str:
    """Hide the subscriber part of a number for log lines."""
    return f"{phone[:8]}***" if phone else "***"


def detect_provider(network_code: str | None) -> str:
    """Map a gateway network code to a carrier name, defaulting to Safaricom."""
    code = (network_code or "").strip()
    for provider, codes in NETWORK_CODES.items():
        if code in codes:
            return provider
    return DEFAULT_PROVIDER


def max_menu_items(provider: str) -> int:
    """How many list entries the carrier's handsets show on one screen."""
    return PROVIDER_MAX_MENU_ITEMS.get(
        provider, PROVIDER_MAX_MENU_ITEMS[DEFAULT_PROVIDER]
    )
