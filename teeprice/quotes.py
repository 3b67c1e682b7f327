"""
Quote building and verification.

A quote is the signed price offer the checkout page shows. The client sends
it back unmodified when paying; the verifier recomputes the HMAC over the
same canonical bytes and refuses anything tampered with or expired.
"""
from __future__ import annotations

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Mapping, Optional

from teeprice.errors import ConfigurationError, ExpiredQuoteError, InvalidQuoteHashError, ValidationError
from teeprice.pricing import round_half_up
from teeprice.rules import PriceCalculationResult

logger = logging.getLogger(__name__)

HOLE_MULTIPLIERS = {9: 0.6, 18: 1.0, 27: 1.4}
DEFAULT_TAX_RATE = 0.16
DEFAULT_TTL_MINUTES = 10
DEFAULT_CURRENCY = "USD"

SIGNED_FIELDS = (
    "currency",
    "tax_rate",
    "subtotal_cents",
    "discount_cents",
    "tax_cents",
    "total_cents",
    "expires_at",
)


def hole_multiplier(holes: int) -> float:
    try:
        return HOLE_MULTIPLIERS[int(holes)]
    except (KeyError, TypeError, ValueError):
        raise ValidationError(f"Unsupported hole count {holes!r}; expected 9, 18 or 27") from None


def format_expires_at(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_expires_at(value: str) -> datetime:
    raw = str(value or "").strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def canonical_payload(
    currency: str,
    tax_rate: float,
    subtotal_cents: int,
    discount_cents: int,
    tax_cents: int,
    total_cents: int,
    expires_at: str,
) -> bytes:
    """Compact JSON in a fixed field order; both signer and verifier must produce identical bytes."""
    payload = {
        "currency": currency,
        "tax_rate": tax_rate,
        "subtotal_cents": subtotal_cents,
        "discount_cents": discount_cents,
        "tax_cents": tax_cents,
        "total_cents": total_cents,
        "expires_at": expires_at,
    }
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


@dataclass(frozen=True)
class SigningKey:
    secret: bytes

    def __post_init__(self):
        secret = self.secret.encode("utf-8") if isinstance(self.secret, str) else bytes(self.secret or b"")
        if not secret:
            raise ConfigurationError("Quote signing key is not configured")
        object.__setattr__(self, "secret", secret)

    def __repr__(self) -> str:
        return "SigningKey(<redacted>)"

    def sign(self, payload: bytes) -> str:
        return hmac.new(self.secret, payload, hashlib.sha256).hexdigest()

    def matches(self, payload: bytes, signature: str) -> bool:
        return hmac.compare_digest(self.sign(payload), str(signature or ""))


@dataclass(frozen=True)
class Quote:
    currency: str
    tax_rate: float
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    total_cents: int
    quote_hash: str
    expires_at: str
    promo_code: Optional[str] = None

    def signed_bytes(self) -> bytes:
        return canonical_payload(*(getattr(self, name) for name in SIGNED_FIELDS))

    def to_wire(self) -> dict:
        data = {
            "currency": self.currency,
            "tax_rate": self.tax_rate,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "quote_hash": self.quote_hash,
            "expires_at": self.expires_at,
        }
        if self.promo_code:
            data["promo_code"] = self.promo_code
        return data

    @classmethod
    def from_wire(cls, fields: Mapping) -> "Quote":
        try:
            return cls(
                currency=str(fields["currency"]),
                tax_rate=fields["tax_rate"],
                subtotal_cents=fields["subtotal_cents"],
                discount_cents=fields["discount_cents"],
                tax_cents=fields["tax_cents"],
                total_cents=fields["total_cents"],
                quote_hash=str(fields["quote_hash"]),
                expires_at=str(fields["expires_at"]),
                promo_code=fields.get("promo_code"),
            )
        except KeyError:
            raise InvalidQuoteHashError() from None


class QuoteService:
    """Builds signed, expiring quotes from engine results. Persists nothing."""

    def __init__(
        self,
        signing_key: SigningKey,
        tax_rate: float = DEFAULT_TAX_RATE,
        ttl_minutes: int = DEFAULT_TTL_MINUTES,
        currency: str = DEFAULT_CURRENCY,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.signing_key = signing_key
        self.tax_rate = tax_rate
        self.ttl_minutes = ttl_minutes
        self.currency = currency
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def build_quote(
        self,
        price_result: PriceCalculationResult,
        holes: int,
        discount_usd: float = 0.0,
        tax_rate: Optional[float] = None,
        ttl_minutes: Optional[int] = None,
        promo_code: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Quote:
        tax_rate = self.tax_rate if tax_rate is None else tax_rate
        ttl_minutes = self.ttl_minutes if ttl_minutes is None else ttl_minutes
        now = now or self._clock()

        per_player = price_result.final_price_per_player * hole_multiplier(holes)
        subtotal_cents = round_half_up(per_player * price_result.players * 100)

        # Never negative, never more than the subtotal.
        discount_usd = min(max(float(discount_usd or 0), 0.0), subtotal_cents / 100)
        discount_cents = round_half_up(discount_usd * 100)

        taxable_cents = max(subtotal_cents - discount_cents, 0)
        tax_cents = round_half_up(taxable_cents * tax_rate)
        total_cents = taxable_cents + tax_cents

        expires_at = format_expires_at(now + timedelta(minutes=ttl_minutes))
        quote_hash = self.signing_key.sign(
            canonical_payload(
                self.currency, tax_rate, subtotal_cents, discount_cents, tax_cents, total_cents, expires_at
            )
        )

        logger.info(
            "[QUOTE] subtotal=%s discount=%s tax=%s total=%s expires_at=%s",
            subtotal_cents, discount_cents, tax_cents, total_cents, expires_at,
        )
        return Quote(
            currency=self.currency,
            tax_rate=tax_rate,
            subtotal_cents=subtotal_cents,
            discount_cents=discount_cents,
            tax_cents=tax_cents,
            total_cents=total_cents,
            quote_hash=quote_hash,
            expires_at=expires_at,
            promo_code=promo_code or None,
        )


class QuoteVerifier:
    """Checks a re-submitted quote before payment is authorized."""

    def __init__(self, signing_key: SigningKey, clock: Optional[Callable[[], datetime]] = None):
        self.signing_key = signing_key
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def verify(self, fields, now: Optional[datetime] = None) -> Quote:
        quote = fields if isinstance(fields, Quote) else Quote.from_wire(fields)
        now = now or self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

        try:
            expires_at = parse_expires_at(quote.expires_at)
        except ValueError:
            logger.warning("[QUOTE] rejected quote with unparseable expires_at")
            raise InvalidQuoteHashError()

        if now > expires_at:
            raise ExpiredQuoteError(f"Quote expired at {quote.expires_at}; request a new quote")

        if not self.signing_key.matches(quote.signed_bytes(), quote.quote_hash):
            logger.warning("[QUOTE] signature mismatch for quote expiring %s", quote.expires_at)
            raise InvalidQuoteHashError()

        return quote
