# teeprice/routers/checkout.py
import logging

from fastapi import APIRouter, Depends

from teeprice import schemas
from teeprice.deps import (
    get_coupon_service,
    get_pricing_engine,
    get_quote_service,
    get_quote_verifier,
    get_rule_store,
)
from teeprice.integrations import CouponService, calculate_discount
from teeprice.pricing import PricingEngine
from teeprice.quotes import QuoteService, QuoteVerifier, hole_multiplier
from teeprice.rule_store import RuleStore
from teeprice.rules import PriceRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post("/quote", response_model=schemas.QuoteOut, response_model_exclude_none=True)
def create_quote(
    req: schemas.QuoteRequest,
    store: RuleStore = Depends(get_rule_store),
    engine: PricingEngine = Depends(get_pricing_engine),
    quotes: QuoteService = Depends(get_quote_service),
    coupons: CouponService = Depends(get_coupon_service),
):
    """
    Signed checkout quote.

    basePrice is only a fallback for courses without a configured base
    product; the discount always comes from the coupon service.
    """
    multiplier = hole_multiplier(req.holes)
    request = PriceRequest.parse(req.course_id, req.date, req.time, req.players)

    data = store.load_pricing_data(request.course_id)
    result = engine.calculate(data, request, fallback_base_price=req.base_price)

    subtotal_usd = result.final_price_per_player * multiplier * result.players
    discount_usd = calculate_discount(
        coupons,
        subtotal_usd,
        req.promo_code,
        user_id=req.user_id,
        user_email=req.user_email,
    )

    quote = quotes.build_quote(result, req.holes, discount_usd=discount_usd, promo_code=req.promo_code)
    return quote.to_wire()


@router.post("/verify", response_model=schemas.QuoteVerifyOut)
def verify_quote(
    req: schemas.QuoteVerifyRequest,
    verifier: QuoteVerifier = Depends(get_quote_verifier),
):
    """Gate for payment authorization: 200 only for an untampered, unexpired quote."""
    quote = verifier.verify(req.model_dump())
    logger.info("[QUOTE] verified total=%s %s", quote.total_cents, quote.currency)
    return schemas.QuoteVerifyOut(ok=True, currency=quote.currency, total_cents=quote.total_cents)
