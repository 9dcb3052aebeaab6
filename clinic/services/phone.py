"""
Phone number helpers shared by the SMS sender and the serializers.

Numbers are normalised to E.164 before they reach Twilio.  Ten digit
numbers starting with 6-9 are treated as Indian mobiles (+91); any other
ten digit number is treated as North American (+1).
"""
from __future__ import annotations

import re

US_PATTERN = re.compile(r"^(\+?1[-.\s]?)?\(?([0-9]{3})\)?[-.\s]?([0-9]{3})[-.\s]?([0-9]{4})$")
INDIA_PATTERN = re.compile(r"^(\+?91[-.\s]?)?[6-9]\d{9}$")
INTERNATIONAL_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")
NON_DIGITS = re.compile(r"\D")

DEFAULT_COUNTRY_CODE = "+91"


def is_valid_phone(phone: str | None) -> bool:
    if not phone or not phone.strip():
        return False
    phone = phone.strip()
    return bool(
        INTERNATIONAL_PATTERN.match(phone)
        or US_PATTERN.match(phone)
        or INDIA_PATTERN.match(phone)
    )


def format_for_sms(phone: str, default_country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    if not phone or not phone.strip():
        raise ValueError("Phone number cannot be empty")
    digits = NON_DIGITS.sub("", phone)
    if phone.strip().startswith("+"):
        return f"+{digits}"
    if len(digits) == 12 and digits.startswith("91"):
        return f"+{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    if len(digits) == 10:
        return f"+91{digits}" if digits[0] in "6789" else f"+1{digits}"
    return f"{default_country_code}{digits}"


def format_for_display(phone: str | None) -> str:
    if not phone:
        return ""
    digits = NON_DIGITS.sub("", phone)
    if len(digits) == 10 and digits[0] in "6789":
        return f"+91 {digits[:5]} {digits[5:]}"
    if len(digits) == 12 and digits.startswith("91"):
        return f"+91 {digits[2:7]} {digits[7:]}"
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+1 ({digits[1:4]}) {digits[4:7]}-{digits[7:]}"
    return phone if phone.startswith("+") else f"+{digits}"


def validation_error(phone: str | None) -> str | None:
    if not phone or not phone.strip():
        return "Phone number is required"
    if not is_valid_phone(phone):
        return "Please enter a valid phone number (e.g., (123) 456-7890 or +1234567890)"
    return None
