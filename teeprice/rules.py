from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Optional, Tuple

from teeprice.errors import ValidationError


class PriceType(str, enum.Enum):
    FIXED = "fixed"
    DELTA = "delta"
    MULTIPLIER = "multiplier"


class OverrideType(str, enum.Enum):
    PRICE = "price"
    BLOCK = "block"


# ------------------------------------------------------------------
# PARSING HELPERS
# ------------------------------------------------------------------

def normalize_str(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip().lower()
    return value or None


def parse_hhmm(value) -> time:
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    raw = str(value or "").strip()
    parts = raw.split(":")
    if len(parts) != 2:
        raise ValidationError(f"Invalid time '{value}'. Use HH:mm.")
    try:
        hh = int(parts[0])
        mm = int(parts[1])
    except ValueError as e:
        raise ValidationError(f"Invalid time '{value}'. Use HH:mm.") from e
    if hh < 0 or hh > 23 or mm < 0 or mm > 59:
        raise ValidationError(f"Invalid time '{value}'. Use HH:mm.")
    return time(hour=hh, minute=mm)


def parse_ymd(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value or "").strip(), "%Y-%m-%d").date()
    except ValueError as e:
        raise ValidationError(f"Invalid date '{value}'. Use YYYY-MM-DD.") from e


def format_hhmm(value: time) -> str:
    return value.strftime("%H:%M")


def js_weekday(d: date) -> int:
    # Python weekday(): Monday=0 ... Sunday=6. Rules use Sunday=0 ... Saturday=6.
    return (d.weekday() + 1) % 7


def updated_ts(value: Optional[datetime]) -> float:
    """Sort key for "most recently updated"; records without a timestamp sort oldest."""
    if value is None:
        return 0.0
    return value.timestamp()


def _check_range(name: str, low, high) -> None:
    if low is not None and high is not None and low > high:
        raise ValidationError(f"{name} min ({low}) exceeds max ({high})")


# ------------------------------------------------------------------
# RECORDS
# ------------------------------------------------------------------

@dataclass(frozen=True)
class Season:
    id: str
    course_id: str
    name: str
    start_date: date
    end_date: date
    priority: int = 0
    active: bool = True
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.start_date > self.end_date:
            raise ValidationError(f"Season {self.id}: start_date is after end_date")

    def covers(self, on: date) -> bool:
        return self.start_date <= on <= self.end_date


@dataclass(frozen=True)
class TimeBand:
    id: str
    course_id: str
    label: str
    start_time: time
    end_time: time
    active: bool = True
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.start_time >= self.end_time:
            raise ValidationError(f"Time band {self.id}: start_time must be before end_time")

    def contains(self, at: time) -> bool:
        return self.start_time <= at < self.end_time


@dataclass(frozen=True)
class RuleFilters:
    """Optional match conditions of a price rule. None means "any"."""

    season_id: Optional[str] = None
    dow: Optional[Tuple[int, ...]] = None
    time_band_id: Optional[str] = None
    lead_time_min: Optional[float] = None
    lead_time_max: Optional[float] = None
    occupancy_min: Optional[float] = None
    occupancy_max: Optional[float] = None
    players_min: Optional[int] = None
    players_max: Optional[int] = None
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None

    def __post_init__(self):
        if self.dow is not None:
            days = tuple(int(d) for d in self.dow)
            if any(d < 0 or d > 6 for d in days):
                raise ValidationError(f"dow values must be 0-6, got {list(days)}")
            # An empty list carries no restriction.
            object.__setattr__(self, "dow", days or None)
        _check_range("lead_time", self.lead_time_min, self.lead_time_max)
        _check_range("occupancy", self.occupancy_min, self.occupancy_max)
        _check_range("players", self.players_min, self.players_max)
        _check_range("effective", self.effective_from, self.effective_to)

    @property
    def accepts_negative_lead_time(self) -> bool:
        return any(v is not None and v < 0 for v in (self.lead_time_min, self.lead_time_max))


@dataclass(frozen=True)
class PriceRule:
    id: str
    course_id: str
    name: str
    price_type: PriceType
    price_value: float
    priority: int = 0
    active: bool = True
    filters: RuleFilters = field(default_factory=RuleFilters)
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    round_to: Optional[float] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        try:
            object.__setattr__(self, "price_type", PriceType(self.price_type))
        except ValueError as e:
            raise ValidationError(f"Price rule {self.id}: unknown price type '{self.price_type}'") from e
        _check_range(f"Price rule {self.id}: price", self.min_price, self.max_price)
        if self.round_to is not None and self.round_to <= 0:
            raise ValidationError(f"Price rule {self.id}: round_to must be positive")


@dataclass(frozen=True)
class SpecialOverride:
    id: str
    course_id: str
    name: str
    start_date: date
    end_date: date
    override_type: OverrideType
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    price_value: Optional[float] = None
    priority: int = 0
    active: bool = True
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        try:
            object.__setattr__(self, "override_type", OverrideType(self.override_type))
        except ValueError as e:
            raise ValidationError(f"Override {self.id}: unknown override type '{self.override_type}'") from e
        if self.start_date > self.end_date:
            raise ValidationError(f"Override {self.id}: start_date is after end_date")
        if self.override_type == OverrideType.PRICE and self.price_value is None:
            raise ValidationError(f"Override {self.id}: price override without price_value")

    def covers(self, on: date, at: time) -> bool:
        if not (self.start_date <= on <= self.end_date):
            return False
        # Time bounds are inclusive and independent. With only start_time set the
        # window runs to the end of the day; with only end_time it starts at midnight.
        if self.start_time is not None and at < self.start_time:
            return False
        if self.end_time is not None and at > self.end_time:
            return False
        return True


@dataclass(frozen=True)
class BaseProduct:
    course_id: str
    green_fee_base_usd: float
    cart_fee_usd: Optional[float] = None
    caddie_fee_usd: Optional[float] = None
    insurance_fee_usd: Optional[float] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.green_fee_base_usd < 0:
            raise ValidationError(f"Base product {self.course_id}: negative green fee")


@dataclass(frozen=True)
class PricingData:
    """Everything the engine needs for one course."""

    seasons: Tuple[Season, ...] = ()
    time_bands: Tuple[TimeBand, ...] = ()
    price_rules: Tuple[PriceRule, ...] = ()
    special_overrides: Tuple[SpecialOverride, ...] = ()
    base_product: Optional[BaseProduct] = None

    def __post_init__(self):
        for name in ("seasons", "time_bands", "price_rules", "special_overrides"):
            object.__setattr__(self, name, tuple(getattr(self, name) or ()))


@dataclass(frozen=True)
class PriceRequest:
    course_id: str
    date: date
    time: time
    players: int
    lead_time_hours: Optional[float] = None
    occupancy_percent: Optional[float] = None

    def __post_init__(self):
        if not self.course_id:
            raise ValidationError("course_id is required")
        if int(self.players) < 1:
            raise ValidationError("players must be at least 1")
        if self.occupancy_percent is not None and not (0 <= self.occupancy_percent <= 100):
            raise ValidationError("occupancy_percent must be between 0 and 100")

    @classmethod
    def parse(
        cls,
        course_id: str,
        date_str: str,
        time_str: str,
        players: int,
        lead_time_hours: Optional[float] = None,
        occupancy_percent: Optional[float] = None,
    ) -> "PriceRequest":
        return cls(
            course_id=str(course_id or "").strip(),
            date=parse_ymd(date_str),
            time=parse_hhmm(time_str),
            players=int(players),
            lead_time_hours=lead_time_hours,
            occupancy_percent=occupancy_percent,
        )

    @property
    def tee_datetime(self) -> datetime:
        return datetime.combine(self.date, self.time)


@dataclass(frozen=True)
class AppliedRule:
    rule_id: str
    name: str
    type: str
    value: float
    result_price: float


@dataclass(frozen=True)
class PriceCalculationResult:
    base_price: float
    applied_rules: Tuple[AppliedRule, ...]
    final_price_per_player: float
    total_price: float
    players: int
    calculation_timestamp: datetime
