"""Shared validation utilities"""

import re
import unicodedata
from typing import NamedTuple, Optional

import phonenumbers

from ..config import DEFAULT_PHONE_COUNTRY

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(:[0-5]\d)?$")
SLUG_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")
COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")

# Countries whose numbers are often written with a trunk zero after the prefix: +49 (0)171...
_TRUNK_ZERO = re.compile(r"^(\+(?:49|43|41|39))0(\d)")

_KNOWN_PREFIXES = re.compile(r"^(48|49|44|380|420|421|43|41|33|39|34|31|32|1)")


class NormalizedPhone(NamedTuple):
    phone: str
    is_valid: bool
    error: Optional[str] = None


def _clean_phone(phone: str) -> str:
    cleaned = re.sub(r"[\s\-().]", "", phone)
    if cleaned.startswith("00"):
        cleaned = "+" + cleaned[2:]
    if cleaned.startswith("+00"):
        cleaned = "+" + cleaned[3:]
    return _TRUNK_ZERO.sub(r"\1\2", cleaned)


def normalize_phone(phone: Optional[str], default_country: str = DEFAULT_PHONE_COUNTRY) -> NormalizedPhone:
    """
    Normalize a phone number to E.164.

    Accepts spaces, dashes, dots, parentheses, 00 and +00 international
    prefixes, and a trunk zero after the country code.
    """
    if not phone:
        return NormalizedPhone("", False, "Empty phone number")

    cleaned = _clean_phone(phone)

    candidates = [(cleaned, default_country)]
    if not cleaned.startswith("+"):
        candidates.append(("+" + cleaned, None))

    for candidate, region in candidates:
        try:
            parsed = phonenumbers.parse(candidate, region)
        except phonenumbers.NumberParseException:
            continue
        if phonenumbers.is_valid_number(parsed):
            return NormalizedPhone(
                phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164), True
            )

    return NormalizedPhone(cleaned, False, f"Invalid phone for country {default_country}")


def normalize_phone_or_fallback(phone: str, default_country: str = DEFAULT_PHONE_COUNTRY) -> str:
    """
    Best-effort E.164 normalization that always returns a number.
    Used for sending SMS to numbers the parser does not accept.
    """
    result = normalize_phone(phone, default_country)
    if result.is_valid:
        return result.phone

    fallback = _clean_phone(phone or "")

    # Doubled Polish prefix: +4848..., 4848...
    if fallback.startswith("+4848"):
        fallback = "+48" + fallback[5:]
    elif fallback.startswith("4848"):
        fallback = "+48" + fallback[4:]

    if fallback.startswith("+"):
        return fallback

    calling_code = str(phonenumbers.country_code_for_region(default_country) or 48)
    if re.fullmatch(r"\d{9}", fallback):
        return f"+{calling_code}{fallback}"
    if len(fallback) == 11 and fallback.startswith("48"):
        return "+" + fallback
    if len(fallback) >= 11 and _KNOWN_PREFIXES.match(fallback):
        return "+" + fallback
    return f"+{calling_code}{fallback}"


def validate_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate and normalize a phone number for storage.

    Raises:
        ValueError: If the phone number is invalid
    """
    if not phone:
        return phone
    result = normalize_phone(phone)
    if not result.is_valid:
        raise ValueError(result.error or "Invalid phone number")
    return result.phone


def validate_time(value: Optional[str]) -> Optional[str]:
    """Validate HH:MM (or HH:MM:SS) and return HH:MM"""
    if value is None:
        return value
    value = value.strip()
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM format")
    return value[:5]


def validate_slug(slug: Optional[str]) -> Optional[str]:
    """Lowercase subdomain-safe slug"""
    if slug is None:
        return slug
    slug = slug.strip().lower()
    if not SLUG_PATTERN.match(slug):
        raise ValueError("Slug may contain only lowercase letters, digits and hyphens")
    return slug


def validate_color(color: Optional[str]) -> Optional[str]:
    if not color:
        return color
    if not COLOR_PATTERN.match(color):
        raise ValueError("Color must be a hex value like #1a2b3c")
    return color.lower()


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")
    return email


def require_text(value: Optional[str], field: str) -> str:
    """Strip and reject blank strings"""
    if value is None or not value.strip():
        raise ValueError(f"{field} is required")
    return value.strip()


_SLUG_TRANSLATION = str.maketrans(
    {
        "ą": "a", "ć": "c", "ę": "e", "ł": "l", "ń": "n",
        "ó": "o", "ś": "s", "ź": "z", "ż": "z",
    }
)


def slugify(text: str) -> str:
    """Slug from a display name, folding Polish letters and other accents"""
    folded = unicodedata.normalize("NFKD", text.lower().translate(_SLUG_TRANSLATION))
    folded = folded.encode("ascii", "ignore").decode()
    return re.sub(r"-+", "-", re.sub(r"[^a-z0-9]", "-", folded)).strip("-")
