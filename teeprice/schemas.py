# teeprice/schemas.py

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from teeprice.pricing import CalendarEntry
from teeprice.rules import PriceCalculationResult

# Wire names are camelCase (courseId, basePrice, ...) except the quote body,
# which is snake_case because its fields are what gets signed.
_CAMEL = {"populate_by_name": True}


# ------------------------------------------------------------------
# PRICING
# ------------------------------------------------------------------

class PriceCalculateRequest(BaseModel):
    course_id: str = Field(alias="courseId", min_length=1)
    date: str
    time: str
    players: int = Field(ge=1)
    lead_time_hours: Optional[float] = Field(default=None, alias="leadTimeHours")
    occupancy_percent: Optional[float] = Field(default=None, alias="occupancyPercent", ge=0, le=100)

    model_config = _CAMEL


class AppliedRuleOut(BaseModel):
    rule_id: str = Field(alias="ruleId")
    name: str
    type: str
    value: float
    result_price: float = Field(alias="resultPrice")

    model_config = _CAMEL


class PriceCalculationOut(BaseModel):
    base_price: float = Field(alias="basePrice")
    applied_rules: List[AppliedRuleOut] = Field(alias="appliedRules")
    final_price_per_player: float = Field(alias="finalPricePerPlayer")
    total_price: float = Field(alias="totalPrice")
    players: int
    calculation_timestamp: datetime = Field(alias="calculationTimestamp")

    model_config = _CAMEL

    @classmethod
    def from_result(cls, result: PriceCalculationResult) -> "PriceCalculationOut":
        return cls(
            base_price=result.base_price,
            applied_rules=[
                AppliedRuleOut(
                    rule_id=a.rule_id, name=a.name, type=a.type, value=a.value, result_price=a.result_price
                )
                for a in result.applied_rules
            ],
            final_price_per_player=result.final_price_per_player,
            total_price=result.total_price,
            players=result.players,
            calculation_timestamp=result.calculation_timestamp,
        )


class MinPriceOut(BaseModel):
    ok: bool = True
    course_id: str = Field(alias="courseId")
    min_price: float = Field(alias="minPrice")

    model_config = _CAMEL


class CalendarEntryOut(BaseModel):
    day: date = Field(alias="date")
    time_band_id: str = Field(alias="timeBandId")
    time_band_label: str = Field(alias="timeBandLabel")
    price_per_player: float = Field(alias="pricePerPlayer")
    total_price: float = Field(alias="totalPrice")

    model_config = _CAMEL

    @classmethod
    def from_entry(cls, entry: CalendarEntry) -> "CalendarEntryOut":
        return cls(
            day=entry.date,
            time_band_id=entry.time_band_id,
            time_band_label=entry.time_band_label,
            price_per_player=entry.price_per_player,
            total_price=entry.total_price,
        )


class CalendarOut(BaseModel):
    course_id: str = Field(alias="courseId")
    year: int
    month: int
    players: int
    entries: List[CalendarEntryOut]

    model_config = _CAMEL


# ------------------------------------------------------------------
# CHECKOUT
# ------------------------------------------------------------------

class QuoteRequest(BaseModel):
    course_id: str = Field(alias="courseId", min_length=1)
    date: str
    time: str
    players: int = Field(ge=1)
    holes: int
    base_price: Optional[float] = Field(default=None, alias="basePrice")
    promo_code: Optional[str] = Field(default=None, alias="promoCode")
    user_id: Optional[str] = Field(default=None, alias="userId")
    user_email: Optional[EmailStr] = Field(default=None, alias="userEmail")

    model_config = _CAMEL


class QuoteOut(BaseModel):
    currency: str
    tax_rate: float
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    total_cents: int
    quote_hash: str
    expires_at: str
    promo_code: Optional[str] = None


class QuoteVerifyRequest(QuoteOut):
    """The quote exactly as the client received it."""
    pass


class QuoteVerifyOut(BaseModel):
    ok: bool
    currency: str
    total_cents: int


# ------------------------------------------------------------------
# ADMIN
# ------------------------------------------------------------------

class DedupeRequest(BaseModel):
    course_id: str = Field(alias="courseId")
    type: str
    strategy: Optional[str] = None

    model_config = _CAMEL


class DedupeOut(BaseModel):
    success: bool
    removed_count: int = Field(alias="removedCount")
    message: str

    model_config = _CAMEL


class BulkFiltersIn(BaseModel):
    season_id: Optional[str] = Field(default=None, alias="seasonId")
    time_band_id: Optional[str] = Field(default=None, alias="timeBandId")
    dow: Optional[List[int]] = None

    model_config = _CAMEL


class BulkChangeIn(BaseModel):
    type: str
    value: float


class BulkPriceChangeRequest(BaseModel):
    course_id: str = Field(alias="courseId", min_length=1)
    filters: BulkFiltersIn = Field(default_factory=BulkFiltersIn)
    change: BulkChangeIn

    model_config = _CAMEL


class DuplicateRulesRequest(BaseModel):
    course_id: str = Field(alias="courseId", min_length=1)
    source_start_date: str = Field(alias="sourceStartDate")
    source_end_date: str = Field(alias="sourceEndDate")
    target_start_date: str = Field(alias="targetStartDate")
    target_end_date: str = Field(alias="targetEndDate")

    model_config = _CAMEL


class RuleValueOut(BaseModel):
    id: str
    name: str
    price_value: float = Field(alias="priceValue")

    model_config = _CAMEL


class BulkRulesOut(BaseModel):
    success: bool
    count: int
    rules: List[RuleValueOut]

    model_config = _CAMEL

    @classmethod
    def from_rules(cls, rules) -> "BulkRulesOut":
        return cls(
            success=True,
            count=len(rules),
            rules=[RuleValueOut(id=r.id, name=r.name, price_value=r.price_value) for r in rules],
        )
