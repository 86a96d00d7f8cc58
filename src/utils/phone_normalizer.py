"""
Phone Number Normalization Service

Handles E.164 validation and normalization for outbound recipients and
inbound senders. Providers decorate numbers differently ("whatsapp:+39...",
"39...", "0039..."), so every number is normalized before it is compared,
logged or handed to a sender.
"""

import phonenumbers
from phonenumbers import NumberParseException, PhoneNumberFormat
from dataclasses import dataclass
from typing import Optional
from src.utils.observability import logger


@dataclass
class NormalizedPhone:
    """Result of phone normalization."""
    original: str
    e164: str  # Normalized E.164 format
    country_code: str  # e.g., "39" for Italy
    is_mobile: bool
    region: str  # e.g., "IT"

    @property
    def digits(self) -> str:
        """E.164 without the leading '+', the format SMS gateways expect."""
        return self.e164[1:]


class PhoneNormalizationError(Exception):
    """Raised when phone number cannot be normalized."""
    pass


class PhoneNormalizer:
    """
    Normalizes phone numbers to E.164 format.

    Usage:
        normalizer = PhoneNormalizer()
        result = normalizer.normalize("whatsapp:+39 345 123 4567")
        print(result.e164)  # "+393451234567"
    """

    DEFAULT_REGION = "IT"

    # Channel prefixes providers put in front of numbers
    CHANNEL_PREFIXES = ("whatsapp:", "sms:", "tel:")

    def normalize(
        self,
        phone: str,
        default_region: Optional[str] = None,
    ) -> NormalizedPhone:
        """
        Normalize a phone number to E.164 format.

        Args:
            phone: Phone number in any format, optionally channel-prefixed
            default_region: ISO country code for numbers without a country code

        Returns:
            NormalizedPhone with normalized data

        Raises:
            PhoneNormalizationError: If number is invalid
        """
        original = phone
        region = default_region or self.DEFAULT_REGION
        cleaned = self._clean_input(phone)

        if not cleaned or cleaned == "+":
            raise PhoneNormalizationError(f"Empty phone number: {original!r}")

        # Bare digits starting with a country code ("393451234567") are common
        # from SMS gateways; try them as international before falling back.
        candidates = [cleaned]
        if not cleaned.startswith("+") and not cleaned.startswith("00"):
            candidates.insert(0, "+" + cleaned)

        last_error: Optional[str] = None
        for candidate in candidates:
            try:
                parsed = phonenumbers.parse(candidate, region)
            except NumberParseException as e:
                last_error = str(e)
                continue

            if not phonenumbers.is_valid_number(parsed):
                last_error = "not a valid number"
                continue

            e164 = phonenumbers.format_number(parsed, PhoneNumberFormat.E164)
            number_type = phonenumbers.number_type(parsed)
            is_mobile = number_type in (
                phonenumbers.PhoneNumberType.MOBILE,
                phonenumbers.PhoneNumberType.FIXED_LINE_OR_MOBILE,
            )
            region_code = phonenumbers.region_code_for_number(parsed)

            logger.bind(region=region_code).debug(f"Normalized phone -> {e164}")

            return NormalizedPhone(
                original=original,
                e164=e164,
                country_code=str(parsed.country_code),
                is_mobile=is_mobile,
                region=region_code or region,
            )

        raise PhoneNormalizationError(
            f"Cannot normalize phone number '{original}': {last_error}"
        )

    def _clean_input(self, phone: str) -> str:
        """Remove channel prefixes and formatting characters."""
        phone = phone.strip()
        lowered = phone.lower()
        for prefix in self.CHANNEL_PREFIXES:
            if lowered.startswith(prefix):
                phone = phone[len(prefix):].strip()
                break

        if phone.startswith("+"):
            return "+" + "".join(c for c in phone[1:] if c.isdigit())
        return "".join(c for c in phone if c.isdigit())


# Singleton instance
_normalizer: Optional[PhoneNormalizer] = None


def get_phone_normalizer() -> PhoneNormalizer:
    """Get or create the phone normalizer singleton."""
    global _normalizer
    if _normalizer is None:
        _normalizer = PhoneNormalizer()
    return _normalizer
