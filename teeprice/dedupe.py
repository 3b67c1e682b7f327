"""
Duplicate cleanup for admin-edited pricing data.

Admin imports and repeated saves leave semantically identical time bands and
price rules behind. The planners below only compute which ids to drop; the
RuleStore applies each run's deletions as one batch, so a failed run leaves
the course untouched and can simply be retried.

Runs on the same course must not overlap; different courses are independent.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

from teeprice.errors import ValidationError
from teeprice.rule_store import DedupeConfig, RuleStore
from teeprice.rules import PriceRule, TimeBand, format_hhmm, normalize_str, updated_ts

logger = logging.getLogger(__name__)


class DedupeType(str, enum.Enum):
    TIME_BANDS = "timeBands"
    PRICE_RULES = "priceRules"
    ALL = "all"
    PRICE_RULES_BY_NAME = "priceRulesByName"


class NameStrategy(str, enum.Enum):
    HIGHEST_PRIORITY = "highest_priority"
    LATEST = "latest"


@dataclass(frozen=True)
class DedupePlan:
    time_band_ids: Tuple[str, ...] = ()
    price_rule_ids: Tuple[str, ...] = ()

    @property
    def removed_count(self) -> int:
        return len(self.time_band_ids) + len(self.price_rule_ids)


# ------------------------------------------------------------------
# SEMANTIC KEYS
# ------------------------------------------------------------------

def _opt(value) -> str:
    return "" if value is None else str(value)


def time_band_key(band: TimeBand) -> tuple:
    return (normalize_str(band.label) or "", format_hhmm(band.start_time), format_hhmm(band.end_time))


def price_rule_key(rule: PriceRule) -> tuple:
    f = rule.filters
    return (
        normalize_str(rule.name) or "",
        _opt(f.season_id),
        _opt(f.time_band_id),
        ",".join(str(d) for d in (f.dow or ())),
        _opt(f.lead_time_min),
        _opt(f.lead_time_max),
        _opt(f.occupancy_min),
        _opt(f.occupancy_max),
        _opt(f.players_min),
        _opt(f.players_max),
        rule.price_type.value,
        str(float(rule.price_value)),
        str(rule.priority),
        str(rule.active),
        _opt(f.effective_from),
        _opt(f.effective_to),
        _opt(rule.min_price),
        _opt(rule.max_price),
        _opt(rule.round_to),
    )


def _first_seen_duplicates(records: Iterable, key) -> List[str]:
    seen = set()
    drop = []
    for record in records:
        k = key(record)
        if k in seen:
            drop.append(record.id)
        else:
            seen.add(k)
    return drop


def _pick(records: Sequence, rank) -> object:
    # max() keeps the first of equal-ranked records, i.e. the first seen.
    return max(records, key=rank)


def _by_priority_then_latest(rule: PriceRule) -> tuple:
    return (int(rule.priority or 0), updated_ts(rule.updated_at))


def _by_latest(rule: PriceRule) -> float:
    return updated_ts(rule.updated_at)


# ------------------------------------------------------------------
# PLANNERS
# ------------------------------------------------------------------

def plan_time_bands(bands: Sequence[TimeBand], config: DedupeConfig) -> List[str]:
    if config.canonical_bands:
        keep = set()
        for canonical in config.canonical_bands:
            for band in bands:
                if band.start_time == canonical.start_time and band.end_time == canonical.end_time:
                    keep.add(band.id)
                    break
        return [b.id for b in bands if b.id not in keep]
    return _first_seen_duplicates(bands, time_band_key)


def plan_price_rules(rules: Sequence[PriceRule], config: DedupeConfig) -> List[str]:
    if not config.group_rules_by_band:
        return _first_seen_duplicates(rules, price_rule_key)

    groups: Dict[str, List[PriceRule]] = {}
    for rule in rules:
        band_id = rule.filters.time_band_id
        if band_id:
            groups.setdefault(band_id, []).append(rule)

    # Rules without a band are general rules and always stay.
    keep = {r.id for r in rules if not r.filters.time_band_id}
    for group in groups.values():
        keep.add(_pick(group, _by_priority_then_latest).id)
    return [r.id for r in rules if r.id not in keep]


def plan_price_rules_by_name(rules: Sequence[PriceRule], strategy: NameStrategy) -> List[str]:
    rank = _by_latest if strategy == NameStrategy.LATEST else _by_priority_then_latest
    groups: Dict[str, List[PriceRule]] = {}
    for rule in rules:
        groups.setdefault(normalize_str(rule.name) or "", []).append(rule)

    keep = {_pick(group, rank).id for group in groups.values()}
    return [r.id for r in rules if r.id not in keep]


def parse_strategy(value) -> NameStrategy:
    if isinstance(value, NameStrategy):
        return value
    # Anything other than "latest" means the default strategy.
    if normalize_str(str(value or "")) == NameStrategy.LATEST.value:
        return NameStrategy.LATEST
    return NameStrategy.HIGHEST_PRIORITY


# ------------------------------------------------------------------
# SERVICE
# ------------------------------------------------------------------

class DedupeService:
    def __init__(self, store: RuleStore):
        self.store = store

    def plan(self, course_id: str, dedupe_type: DedupeType, strategy=None) -> DedupePlan:
        """Compute the deletions for a run without touching the store."""
        dedupe_type = DedupeType(dedupe_type)
        data = self.store.load_pricing_data(course_id)

        band_ids: List[str] = []
        rule_ids: List[str] = []
        if dedupe_type == DedupeType.PRICE_RULES_BY_NAME:
            rule_ids = plan_price_rules_by_name(data.price_rules, parse_strategy(strategy))
        else:
            config = self.store.load_dedupe_config(course_id)
            if dedupe_type in (DedupeType.TIME_BANDS, DedupeType.ALL):
                band_ids = plan_time_bands(data.time_bands, config)
            if dedupe_type in (DedupeType.PRICE_RULES, DedupeType.ALL):
                rule_ids = plan_price_rules(data.price_rules, config)
        return DedupePlan(time_band_ids=tuple(band_ids), price_rule_ids=tuple(rule_ids))

    def run(self, course_id: str, dedupe_type: DedupeType, strategy=None) -> int:
        plan = self.plan(course_id, dedupe_type, strategy)
        if plan.removed_count:
            self.store.apply_deletions(
                course_id, time_band_ids=plan.time_band_ids, price_rule_ids=plan.price_rule_ids
            )
        logger.info(
            "[DEDUPE] course=%s type=%s removed bands=%d rules=%d",
            course_id, DedupeType(dedupe_type).value, len(plan.time_band_ids), len(plan.price_rule_ids),
        )
        return plan.removed_count

    def dedupe_time_bands(self, course_id: str) -> int:
        return self.run(course_id, DedupeType.TIME_BANDS)

    def dedupe_price_rules(self, course_id: str) -> int:
        return self.run(course_id, DedupeType.PRICE_RULES)

    def dedupe_price_rules_by_name(self, course_id: str, strategy=NameStrategy.HIGHEST_PRIORITY) -> int:
        return self.run(course_id, DedupeType.PRICE_RULES_BY_NAME, strategy)

    def dedupe_all(self, course_id: str) -> int:
        """Bands and rules in one batch."""
        return self.run(course_id, DedupeType.ALL)


def run_dedupe(service: DedupeService, course_id: str, dedupe_type, strategy=None) -> int:
    """Entry point of the admin action: {courseId, type, strategy?} -> removed count."""
    if not str(course_id or "").strip():
        raise ValidationError("Course ID is required")
    try:
        dedupe_type = DedupeType(dedupe_type)
    except ValueError:
        raise ValidationError(
            f"Unknown dedupe type {dedupe_type!r}; expected one of "
            + ", ".join(t.value for t in DedupeType)
        ) from None
    return service.run(str(course_id).strip(), dedupe_type, strategy)
