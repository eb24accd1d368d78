# Overview: Brazilian phone normalisation for storage and sending.
"""
Brazilian phone normalization.

Three representations of the same number:

- storage form: area code + number, no country code ("31988887777").
  Canonically 11 digits; a missing mobile 9th digit is added, never removed.
- send form: "55" + area code + number, with the regional 9th-digit rule
  applied (WhatsApp accounts in some regions are registered without it).
- display form: "(31) 98888-7777", cosmetic only.

None of these raise: malformed input degrades to best-effort passthrough.
"""

from __future__ import annotations

import logging
import re
from typing import Optional


logger = logging.getLogger(__name__)

COUNTRY_CODE = "55"
MIN_AREA_CODE = 11
MAX_AREA_CODE = 99

# (add 9th digit when area code <= first, remove it when area code >= second)
DEFAULT_REGIONAL_RULE = (30, 31)
LEGACY_REGIONAL_RULE = (11, 31)

_NON_DIGITS = re.compile(r"\D")


def _digits(raw: Optional[str]) -> str:
    return _NON_DIGITS.sub("", str(raw))


def _strip_country_code(clean: str) -> str:
    return clean[len(COUNTRY_CODE):] if clean.startswith(COUNTRY_CODE) else clean


def to_storage_form(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return raw

    clean = _strip_country_code(_digits(raw))
    if len(clean) == 10:
        clean = clean[:2] + "9" + clean[2:]
    return clean


def to_send_form(
    raw: Optional[str],
    add_max_area_code: int = DEFAULT_REGIONAL_RULE[0],
    remove_min_area_code: int = DEFAULT_REGIONAL_RULE[1],
) -> Optional[str]:
    """
    Normalize for sending through WhatsApp.

    - area code <= add_max_area_code: 10 digits -> insert the 9th digit
    - area code >= remove_min_area_code: 11 digits starting "DD9" -> drop it
    - area codes in between, outside [11, 99], or odd lengths pass through
    """
    if not raw:
        return raw

    clean = _strip_country_code(_digits(raw))

    if len(clean) < 10 or len(clean) > 11:
        logger.warning("Invalid phone length for sending: %r -> %s", raw, clean)
        return COUNTRY_CODE + clean

    area_code = int(clean[:2])
    if area_code < MIN_AREA_CODE or area_code > MAX_AREA_CODE:
        logger.warning("Invalid area code for sending: %r -> %s", raw, area_code)
        return COUNTRY_CODE + clean

    number = clean[2:]
    if area_code <= add_max_area_code:
        if len(number) == 8:
            number = "9" + number
    elif area_code >= remove_min_area_code:
        if len(number) == 9 and number.startswith("9"):
            number = number[1:]

    return COUNTRY_CODE + clean[:2] + number


def regional_rule_from_config(config) -> tuple[int, int]:
    return (
        int(config.get("PHONE_ADD_NINTH_DIGIT_MAX_DDD", DEFAULT_REGIONAL_RULE[0])),
        int(config.get("PHONE_REMOVE_NINTH_DIGIT_MIN_DDD", DEFAULT_REGIONAL_RULE[1])),
    )


def to_display_form(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return raw

    clean = _strip_country_code(_digits(raw))
    if len(clean) >= 10:
        area_code, number = clean[:2], clean[2:]
        if len(number) == 9:
            return f"({area_code}) {number[:5]}-{number[5:]}"
        if len(number) == 8:
            return f"({area_code}) {number[:4]}-{number[4:]}"
    return raw


def phones_match(a: Optional[str], b: Optional[str]) -> bool:
    """Same subscriber once both are in storage form."""
    if not a or not b:
        return False
    return to_storage_form(a) == to_storage_form(b)
