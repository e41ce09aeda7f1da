"""
Simulated payment and duration checks for plot bookings.

There is no payment gateway behind this: a booking is "paid" once the card
details pass the format checks below. Not suitable for production use.
"""

import re
from dataclasses import dataclass
from datetime import date

from errors import CardExpired, InvalidCardFormat, InvalidCvv, InvalidDuration, PolicyRejected

CARD_NUMBER_RE = re.compile(r'[0-9]{16}')
CVV_RE = re.compile(r'[0-9]{3}')
EXPIRY_RE = re.compile(r'\s*([0-9]{1,2})\s*/\s*([0-9]{2}|[0-9]{4})\s*')
CARD_SEPARATORS_RE = re.compile(r'[\s-]')

DEFAULT_MIN_EXPIRY_YEAR = 2026
DEFAULT_MAX_MONTHS = 12


@dataclass(frozen=True)
class PaymentInfo:
    card_number: str
    expiry_month: int
    expiry_year: int
    cvv: str

    @classmethod
    def from_form(cls, data):
        """Build from request data holding either ``expiry`` ("MM/YY") or month and year fields."""
        if data.get('expiry'):
            month, year = parse_expiry(data['expiry'])
        else:
            month, year = data.get('expiry_month'), data.get('expiry_year')
        return cls(
            card_number=str(data.get('card_number') or ''),
            expiry_month=month,
            expiry_year=year,
            cvv=str(data.get('cvv') or ''),
        )

    @property
    def last4(self):
        return normalize_card_number(self.card_number)[-4:]


def normalize_card_number(card_number):
    digits = CARD_SEPARATORS_RE.sub('', card_number or '')
    if not CARD_NUMBER_RE.fullmatch(digits):
        raise InvalidCardFormat('Card number must be 16 digits')
    return digits


def parse_expiry(value):
    match = EXPIRY_RE.fullmatch(value) if isinstance(value, str) else None
    if not match:
        raise InvalidCardFormat('Expiration date must look like MM/YY')
    return int(match.group(1)), int(match.group(2))


def _as_int(value):
    if isinstance(value, bool):
        raise ValueError(value)
    if isinstance(value, str):
        value = value.strip()
        if not value.isascii():
            raise ValueError(value)
    return int(value)


def validate_expiry(month, year, today=None, min_year=DEFAULT_MIN_EXPIRY_YEAR):
    today = today or date.today()
    try:
        month = _as_int(month)
        year = _as_int(year)
    except (TypeError, ValueError):
        raise InvalidCardFormat('Invalid expiration date')

    if not 1 <= month <= 12:
        raise InvalidCardFormat('Invalid expiration month')
    if year < 100:
        year += 2000

    # Cards are good through the last day of their expiry month
    if (year, month) < (today.year, today.month):
        raise CardExpired('Card has expired')
    if year < min_year:
        raise PolicyRejected(f'Expiration year must be {min_year} or later')
    return month, year


def validate_cvv(cvv):
    if not CVV_RE.fullmatch(cvv or ''):
        raise InvalidCvv('CVV must be 3 digits')


def validate_duration(months, max_months=DEFAULT_MAX_MONTHS):
    if isinstance(months, bool) or not isinstance(months, int):
        raise InvalidDuration('Duration must be a whole number of months')
    if not 1 <= months <= max_months:
        raise InvalidDuration(f'Duration must be between 1 and {max_months} months')


def validate_booking(payment, duration_months, today=None,
                     min_year=DEFAULT_MIN_EXPIRY_YEAR, max_months=DEFAULT_MAX_MONTHS):
    """Raise the first failing check, in card, expiry, CVV, duration order."""
    normalize_card_number(payment.card_number)
    validate_expiry(payment.expiry_month, payment.expiry_year, today=today, min_year=min_year)
    validate_cvv(payment.cvv)
    validate_duration(duration_months, max_months=max_months)
