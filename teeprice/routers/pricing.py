# teeprice/routers/pricing.py
from fastapi import APIRouter, Depends, HTTPException, Query

from teeprice import schemas
from teeprice.deps import get_pricing_engine, get_rule_store
from teeprice.errors import ConfigurationError
from teeprice.pricing import PricingEngine
from teeprice.rule_store import RuleStore
from teeprice.rules import PriceRequest

router = APIRouter(prefix="/pricing", tags=["pricing"])


@router.post("/calculate", response_model=schemas.PriceCalculationOut)
def calculate_price(
    req: schemas.PriceCalculateRequest,
    store: RuleStore = Depends(get_rule_store),
    engine: PricingEngine = Depends(get_pricing_engine),
):
    """Price one tee time from the course's stored rules."""
    request = PriceRequest.parse(
        req.course_id,
        req.date,
        req.time,
        req.players,
        lead_time_hours=req.lead_time_hours,
        occupancy_percent=req.occupancy_percent,
    )
    data = store.load_pricing_data(request.course_id)
    result = engine.calculate(data, request)
    return schemas.PriceCalculationOut.from_result(result)


@router.get("/min-price", response_model=schemas.MinPriceOut)
def get_min_price(
    course_id: str = Query(..., alias="courseId", min_length=1),
    store: RuleStore = Depends(get_rule_store),
    engine: PricingEngine = Depends(get_pricing_engine),
):
    """Lowest single-rule price, shown as "from $X" on course listings."""
    data = store.load_pricing_data(course_id)
    try:
        min_price = engine.minimum_price(data)
    except ConfigurationError:
        raise HTTPException(status_code=404, detail="Base price not found for course")
    return schemas.MinPriceOut(course_id=course_id, min_price=min_price)


@router.get("/calendar", response_model=schemas.CalendarOut)
def get_price_calendar(
    course_id: str = Query(..., alias="courseId", min_length=1),
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    players: int = Query(4, ge=1),
    store: RuleStore = Depends(get_rule_store),
    engine: PricingEngine = Depends(get_pricing_engine),
):
    """Per-day, per-band prices for a month; blocked slots are left out."""
    data = store.load_pricing_data(course_id)
    entries = engine.price_calendar(data, course_id, year, month, players=players)
    return schemas.CalendarOut(
        course_id=course_id,
        year=year,
        month=month,
        players=players,
        entries=[schemas.CalendarEntryOut.from_entry(e) for e in entries],
    )
