"""
Bulk edits over a course's price rules.

Both operations are planned over the loaded PricingData and written back
through RuleStore.save_pricing_data, which upserts only the rules handed to it.
"""
from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Callable, Iterable, List, Optional, Tuple

from teeprice.errors import ValidationError
from teeprice.models import utcnow
from teeprice.pricing import round_half_up
from teeprice.rule_store import RuleStore
from teeprice.rules import PriceRule, PriceType, PricingData, parse_ymd

logger = logging.getLogger(__name__)

DUPLICATE_SUFFIX = " (Duplicated)"


class BulkChangeType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass(frozen=True)
class BulkFilters:
    """Which rules a bulk change touches. None means "any"."""

    season_id: Optional[str] = None
    time_band_id: Optional[str] = None
    dow: Optional[Tuple[int, ...]] = None

    def __post_init__(self):
        if self.dow is not None:
            object.__setattr__(self, "dow", tuple(int(d) for d in self.dow) or None)

    def selects(self, rule: PriceRule) -> bool:
        f = rule.filters
        if self.season_id and f.season_id != self.season_id:
            return False
        if self.time_band_id and f.time_band_id != self.time_band_id:
            return False
        # A rule without days applies every day, so any day filter reaches it.
        if self.dow and f.dow and not set(f.dow) & set(self.dow):
            return False
        return True


def _new_rule_id() -> str:
    return uuid.uuid4().hex


def plan_bulk_price_change(
    rules: Iterable[PriceRule],
    filters: BulkFilters,
    change_type: BulkChangeType,
    value: float,
    now: datetime,
) -> List[PriceRule]:
    """Selected fixed and delta rules with their new price_value; multipliers are left alone."""
    change_type = BulkChangeType(change_type)
    changed = []
    for rule in rules:
        if rule.price_type == PriceType.MULTIPLIER or not filters.selects(rule):
            continue
        if change_type == BulkChangeType.PERCENTAGE:
            new_value = rule.price_value * (1 + value / 100)
        else:
            new_value = rule.price_value + value
        changed.append(replace(rule, price_value=float(round_half_up(new_value)), updated_at=now))
    return changed


def plan_duplicate_rules(
    rules: Iterable[PriceRule],
    source_start: date,
    source_end: date,
    target_start: date,
    target_end: date,
    now: datetime,
    new_id: Callable[[], str] = _new_rule_id,
) -> List[PriceRule]:
    """
    Copies of every rule whose effective window lies inside the source range,
    re-dated to the target range. Rules without both effective bounds are
    never copied.
    """
    if source_start > source_end:
        raise ValidationError("Source start date is after source end date")
    if target_start > target_end:
        raise ValidationError("Target start date is after target end date")

    copies = []
    for rule in rules:
        f = rule.filters
        if f.effective_from is None or f.effective_to is None:
            continue
        if f.effective_from < source_start or f.effective_to > source_end:
            continue
        copies.append(
            replace(
                rule,
                id=new_id(),
                name=f"{rule.name}{DUPLICATE_SUFFIX}",
                filters=replace(f, effective_from=target_start, effective_to=target_end),
                updated_at=now,
            )
        )
    return copies


class BulkRuleService:
    def __init__(self, store: RuleStore, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self._clock = clock or utcnow

    def apply_bulk_price_change(
        self, course_id: str, filters: BulkFilters, change_type, value: float
    ) -> List[PriceRule]:
        try:
            change_type = BulkChangeType(change_type)
        except ValueError:
            raise ValidationError(f"Unknown change type {change_type!r}; expected percentage or fixed") from None

        data = self.store.load_pricing_data(course_id)
        changed = plan_bulk_price_change(data.price_rules, filters, change_type, float(value), self._clock())
        if changed:
            self.store.save_pricing_data(course_id, PricingData(price_rules=changed))
        logger.info(
            "[BULK] course=%s %s change of %s applied to %d rule(s)",
            course_id, change_type.value, value, len(changed),
        )
        return changed

    def duplicate_rules_for_date_range(
        self, course_id: str, source_start, source_end, target_start, target_end
    ) -> List[PriceRule]:
        data = self.store.load_pricing_data(course_id)
        copies = plan_duplicate_rules(
            data.price_rules,
            parse_ymd(source_start),
            parse_ymd(source_end),
            parse_ymd(target_start),
            parse_ymd(target_end),
            self._clock(),
        )
        if copies:
            self.store.save_pricing_data(course_id, PricingData(price_rules=copies))
        logger.info("[BULK] course=%s duplicated %d rule(s) into %s..%s", course_id, len(copies), target_start, target_end)
        return copies
