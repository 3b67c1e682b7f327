# teeprice/deps.py
"""FastAPI dependencies. Tests swap these out through app.dependency_overrides."""

from fastapi import Depends

from teeprice import config
from teeprice.bulk import BulkRuleService
from teeprice.database import get_session_factory
from teeprice.dedupe import DedupeService
from teeprice.integrations import CouponService, coupon_service_from_env
from teeprice.pricing import PricingEngine
from teeprice.quotes import QuoteService, QuoteVerifier, SigningKey
from teeprice.rule_store import RuleStore, SqlRuleStore


def get_rule_store() -> RuleStore:
    return SqlRuleStore(get_session_factory())


def get_pricing_engine() -> PricingEngine:
    return PricingEngine()


def get_signing_key() -> SigningKey:
    # Raises ConfigurationError (503) while QUOTE_SECRET is unset.
    return SigningKey(config.QUOTE_SECRET)


def get_coupon_service() -> CouponService:
    return coupon_service_from_env()


def get_quote_service(signing_key: SigningKey = Depends(get_signing_key)) -> QuoteService:
    return QuoteService(
        signing_key,
        tax_rate=config.TAX_RATE,
        ttl_minutes=config.QUOTE_TTL_MINUTES,
        currency=config.QUOTE_CURRENCY,
    )


def get_quote_verifier(signing_key: SigningKey = Depends(get_signing_key)) -> QuoteVerifier:
    return QuoteVerifier(signing_key)


def get_dedupe_service(store: RuleStore = Depends(get_rule_store)) -> DedupeService:
    return DedupeService(store)


def get_bulk_rule_service(store: RuleStore = Depends(get_rule_store)) -> BulkRuleService:
    return BulkRuleService(store)
