from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, time
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Iterable, List, Optional

from teeprice.errors import BookingBlockedError, ConfigurationError
from teeprice.rules import (
    AppliedRule,
    OverrideType,
    PriceCalculationResult,
    PriceRequest,
    PriceRule,
    PriceType,
    PricingData,
    Season,
    SpecialOverride,
    TimeBand,
    js_weekday,
    updated_ts,
)

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    # Ties go away from zero: -2.5 becomes -3.
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def round_to_multiple(value: float, step: float) -> float:
    unit = Decimal(str(step))
    units = (Decimal(str(value)) / unit).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return float(units * unit)


def _clamp(price: float, rule: PriceRule) -> float:
    if rule.min_price is not None and price < rule.min_price:
        price = rule.min_price
    if rule.max_price is not None and price > rule.max_price:
        price = rule.max_price
    return price


def _apply(price: float, rule: PriceRule) -> float:
    if rule.price_type == PriceType.FIXED:
        return rule.price_value
    if rule.price_type == PriceType.DELTA:
        return price + rule.price_value
    return price * rule.price_value


def _precedence_key(record):
    # Priority desc, then most recently updated, then id so input order never matters.
    return (-int(record.priority or 0), -updated_ts(record.updated_at), str(record.id))


@dataclass(frozen=True)
class PricingContext:
    """Resolved facts about one request that rule filters are matched against."""

    tee_date: date
    tee_time: time
    players: int
    lead_time_hours: float
    occupancy_percent: float
    today: date
    season: Optional[Season] = None
    time_band: Optional[TimeBand] = None

    @property
    def dow(self) -> int:
        return js_weekday(self.tee_date)

    def lead_time_for(self, rule: PriceRule) -> float:
        # Past tee times count as zero lead time unless the rule itself reaches below zero.
        if rule.filters.accepts_negative_lead_time:
            return self.lead_time_hours
        return max(self.lead_time_hours, 0.0)


def _in_range(value: float, low, high) -> bool:
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True


def _matches(ctx: PricingContext, rule: PriceRule) -> bool:
    if not rule.active:
        return False

    f = rule.filters

    if not _in_range(ctx.today, f.effective_from, f.effective_to):
        return False

    if f.season_id is not None:
        if ctx.season is None or ctx.season.id != f.season_id:
            return False

    if f.dow is not None and ctx.dow not in f.dow:
        return False

    if f.time_band_id is not None:
        if ctx.time_band is None or ctx.time_band.id != f.time_band_id:
            return False

    if not _in_range(ctx.lead_time_for(rule), f.lead_time_min, f.lead_time_max):
        return False

    if not _in_range(ctx.occupancy_percent, f.occupancy_min, f.occupancy_max):
        return False

    if not _in_range(ctx.players, f.players_min, f.players_max):
        return False

    return True


def select_season(seasons: Iterable[Season], on: date) -> Optional[Season]:
    covering = [s for s in seasons if s.active and s.covers(on)]
    if not covering:
        return None
    return sorted(covering, key=_precedence_key)[0]


def select_time_band(bands: Iterable[TimeBand], at: time) -> Optional[TimeBand]:
    for band in sorted((b for b in bands if b.active), key=lambda b: (b.start_time, str(b.id))):
        if band.contains(at):
            return band
    return None


def select_rules(rules: Iterable[PriceRule], ctx: PricingContext) -> List[PriceRule]:
    return sorted((r for r in rules if _matches(ctx, r)), key=_precedence_key)


def covering_overrides(
    overrides: Iterable[SpecialOverride], on: date, at: time
) -> List[SpecialOverride]:
    return sorted((o for o in overrides if o.active and o.covers(on, at)), key=_precedence_key)


class PricingEngine:
    """
    Turns a (course, date, time, players) request into a deterministic price.

    Order of evaluation:
    1. Base price (BaseProduct, or the caller's fallback)
    2. Season and time band resolution
    3. Block overrides (fail), then price overrides (replace everything)
    4. Matching price rules folded by priority, with per-rule clamping
    5. Rounding from the last applied rule
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or datetime.now

    def now(self) -> datetime:
        return self._clock()

    def calculate(
        self,
        data: PricingData,
        request: PriceRequest,
        now: Optional[datetime] = None,
        fallback_base_price: Optional[float] = None,
    ) -> PriceCalculationResult:
        now = now or self.now()

        base_price = self._resolve_base_price(data, request.course_id, fallback_base_price)

        season = select_season(data.seasons, request.date)
        band = select_time_band(data.time_bands, request.time)

        lead_time = request.lead_time_hours
        if lead_time is None:
            lead_time = (request.tee_datetime - now).total_seconds() / 3600.0
        occupancy = request.occupancy_percent if request.occupancy_percent is not None else 0.0

        overrides = covering_overrides(data.special_overrides, request.date, request.time)
        for override in overrides:
            if override.override_type == OverrideType.BLOCK:
                logger.info(
                    "[PRICING] course=%s %s %s blocked by override %s",
                    request.course_id, request.date, request.time, override.id,
                )
                raise BookingBlockedError(override.id, override.name)

        price_overrides = [o for o in overrides if o.override_type == OverrideType.PRICE]
        if price_overrides:
            override = price_overrides[0]
            running = float(override.price_value)
            applied = [
                AppliedRule(
                    rule_id=override.id,
                    name=override.name,
                    type=PriceType.FIXED.value,
                    value=running,
                    result_price=running,
                )
            ]
            return self._result(base_price, applied, running, request.players, now)

        ctx = PricingContext(
            tee_date=request.date,
            tee_time=request.time,
            players=int(request.players),
            lead_time_hours=float(lead_time),
            occupancy_percent=float(occupancy),
            today=now.date(),
            season=season,
            time_band=band,
        )

        running = base_price
        applied: List[AppliedRule] = []
        last_rule: Optional[PriceRule] = None
        for rule in select_rules(data.price_rules, ctx):
            running = _clamp(_apply(running, rule), rule)
            applied.append(
                AppliedRule(
                    rule_id=rule.id,
                    name=rule.name,
                    type=rule.price_type.value,
                    value=rule.price_value,
                    result_price=running,
                )
            )
            last_rule = rule

        if last_rule is not None and last_rule.round_to:
            running = round_to_multiple(running, last_rule.round_to)
            applied[-1] = replace(applied[-1], result_price=running)

        return self._result(base_price, applied, running, request.players, now)

    def _resolve_base_price(
        self, data: PricingData, course_id: str, fallback_base_price: Optional[float]
    ) -> float:
        if data.base_product is not None:
            return float(data.base_product.green_fee_base_usd)
        if fallback_base_price is not None and fallback_base_price > 0:
            logger.warning("[PRICING] course=%s has no base product, using caller fallback", course_id)
            return float(fallback_base_price)
        raise ConfigurationError(f"No base price configured for course {course_id}")

    @staticmethod
    def _result(
        base_price: float, applied: List[AppliedRule], per_player: float, players: int, now: datetime
    ) -> PriceCalculationResult:
        return PriceCalculationResult(
            base_price=base_price,
            applied_rules=tuple(applied),
            final_price_per_player=per_player,
            total_price=per_player * int(players),
            players=int(players),
            calculation_timestamp=now,
        )

    def minimum_price(self, data: PricingData, now: Optional[datetime] = None) -> float:
        """
        Lowest single-rule price for "from $X" listings.

        Each active, currently effective rule is applied alone to the base price
        (with its own clamp and rounding). Filters other than the effective
        window are ignored; this is a teaser, not a quote.
        """
        now = now or self.now()
        if data.base_product is None:
            raise ConfigurationError("No base price configured for minimum price")

        base = float(data.base_product.green_fee_base_usd)
        lowest = base
        today = now.date()
        for rule in data.price_rules:
            if not rule.active:
                continue
            if not _in_range(today, rule.filters.effective_from, rule.filters.effective_to):
                continue
            candidate = _clamp(_apply(base, rule), rule)
            if rule.round_to:
                candidate = round_to_multiple(candidate, rule.round_to)
            lowest = min(lowest, candidate)
        return max(lowest, 0.0)

    def price_calendar(
        self,
        data: PricingData,
        course_id: str,
        year: int,
        month: int,
        players: int = 4,
        lead_time_hours: float = 24,
        now: Optional[datetime] = None,
    ) -> List["CalendarEntry"]:
        """Pre-compute a price per day per active band start time; blocked slots are skipped."""
        now = now or self.now()
        _, days_in_month = calendar.monthrange(year, month)
        bands = sorted((b for b in data.time_bands if b.active), key=lambda b: (b.start_time, str(b.id)))

        entries: List[CalendarEntry] = []
        for day in range(1, days_in_month + 1):
            on = date(year, month, day)
            for band in bands:
                request = PriceRequest(
                    course_id=course_id,
                    date=on,
                    time=band.start_time,
                    players=players,
                    lead_time_hours=lead_time_hours,
                )
                try:
                    result = self.calculate(data, request, now=now)
                except BookingBlockedError:
                    continue
                entries.append(
                    CalendarEntry(
                        date=on,
                        time_band_id=band.id,
                        time_band_label=band.label,
                        price_per_player=result.final_price_per_player,
                        total_price=result.total_price,
                    )
                )
        return entries


@dataclass(frozen=True)
class CalendarEntry:
    date: date
    time_band_id: str
    time_band_label: str
    price_per_player: float
    total_price: float
