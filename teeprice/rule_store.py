from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import time
from typing import Callable, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from teeprice import models
from teeprice.errors import RepositoryError, ValidationError
from teeprice.rules import (
    BaseProduct,
    PriceRule,
    PricingData,
    RuleFilters,
    Season,
    SpecialOverride,
    TimeBand,
    format_hhmm,
    parse_hhmm,
    parse_ymd,
)

logger = logging.getLogger(__name__)

DEDUPE_RULES_BY_BAND_KEY = "dedupe_rules_by_band"


@dataclass(frozen=True)
class CanonicalBand:
    start_time: time
    end_time: time
    label: Optional[str] = None


@dataclass(frozen=True)
class DedupeConfig:
    """Per-course dedupe settings, kept as data instead of course-id conditionals."""

    canonical_bands: Tuple[CanonicalBand, ...] = ()
    group_rules_by_band: bool = False


class RuleStore:
    """Persistence for a course's pricing records. The core only talks to this interface."""

    def load_pricing_data(self, course_id: str) -> PricingData:
        raise NotImplementedError

    def load_dedupe_config(self, course_id: str) -> DedupeConfig:
        raise NotImplementedError

    def apply_deletions(
        self, course_id: str, time_band_ids: Iterable[str] = (), price_rule_ids: Iterable[str] = ()
    ) -> int:
        """Delete the given records in one all-or-nothing batch; returns rows removed."""
        raise NotImplementedError

    def save_pricing_data(self, course_id: str, data: PricingData) -> None:
        raise NotImplementedError

    def list_course_ids(self) -> List[str]:
        raise NotImplementedError


# ------------------------------------------------------------------
# ROW -> RECORD CONVERSION
# ------------------------------------------------------------------

def _opt_float(value) -> Optional[float]:
    return None if value is None else float(value)


def _opt_int(value) -> Optional[int]:
    return None if value is None else int(value)


def _opt_time(value) -> Optional[time]:
    if value is None or str(value).strip() == "":
        return None
    return parse_hhmm(value)


def _opt_date(value):
    return None if value is None else parse_ymd(value)


def _active(value) -> bool:
    # Documents written before the flag existed count as active.
    return True if value is None else bool(value)


def season_from_row(row: models.PricingSeason) -> Season:
    return Season(
        id=row.id,
        course_id=row.course_id,
        name=row.name or "",
        start_date=parse_ymd(row.start_date),
        end_date=parse_ymd(row.end_date),
        priority=int(row.priority or 0),
        active=_active(row.active),
        updated_at=row.updated_at,
    )


def time_band_from_row(row: models.PricingTimeBand) -> TimeBand:
    return TimeBand(
        id=row.id,
        course_id=row.course_id,
        label=row.label or "",
        start_time=parse_hhmm(row.start_time),
        end_time=parse_hhmm(row.end_time),
        active=_active(row.active),
        updated_at=row.updated_at,
    )


def price_rule_from_row(row: models.PricingPriceRule) -> PriceRule:
    dow = row.dow
    if dow is not None and not isinstance(dow, (list, tuple)):
        raise ValidationError(f"Price rule {row.id}: dow must be a list")
    return PriceRule(
        id=row.id,
        course_id=row.course_id,
        name=row.name or "",
        price_type=str(row.price_type or "").strip().lower(),
        price_value=float(row.price_value),
        priority=int(row.priority or 0),
        active=_active(row.active),
        filters=RuleFilters(
            season_id=row.season_id or None,
            dow=tuple(dow) if dow is not None else None,
            time_band_id=row.time_band_id or None,
            lead_time_min=_opt_float(row.lead_time_min),
            lead_time_max=_opt_float(row.lead_time_max),
            occupancy_min=_opt_float(row.occupancy_min),
            occupancy_max=_opt_float(row.occupancy_max),
            players_min=_opt_int(row.players_min),
            players_max=_opt_int(row.players_max),
            effective_from=_opt_date(row.effective_from),
            effective_to=_opt_date(row.effective_to),
        ),
        min_price=_opt_float(row.min_price),
        max_price=_opt_float(row.max_price),
        round_to=_opt_float(row.round_to) or None,
        updated_at=row.updated_at,
    )


def special_override_from_row(row: models.PricingSpecialOverride) -> SpecialOverride:
    return SpecialOverride(
        id=row.id,
        course_id=row.course_id,
        name=row.name or "",
        start_date=parse_ymd(row.start_date),
        end_date=parse_ymd(row.end_date),
        start_time=_opt_time(row.start_time),
        end_time=_opt_time(row.end_time),
        override_type=str(row.override_type or "").strip().lower(),
        price_value=_opt_float(row.price_value),
        priority=int(row.priority or 0),
        active=_active(row.active),
        updated_at=row.updated_at,
    )


def base_product_from_row(row: models.PricingBaseProduct) -> Optional[BaseProduct]:
    if row.green_fee_base_usd is None:
        return None
    return BaseProduct(
        course_id=row.course_id,
        green_fee_base_usd=float(row.green_fee_base_usd),
        cart_fee_usd=_opt_float(row.cart_fee_usd),
        caddie_fee_usd=_opt_float(row.caddie_fee_usd),
        insurance_fee_usd=_opt_float(row.insurance_fee_usd),
        updated_at=row.updated_at,
    )


def _convert(rows, convert: Callable, kind: str, course_id: str) -> tuple:
    records = []
    for row in rows:
        try:
            records.append(convert(row))
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning("[STORE] course=%s skipping invalid %s %s: %s", course_id, kind, getattr(row, "id", "?"), e)
    return tuple(records)


def _setting_flag(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    raw = str(value).strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes"}


# ------------------------------------------------------------------
# SQLALCHEMY STORE
# ------------------------------------------------------------------

class SqlRuleStore(RuleStore):
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _ordered(self, db: Session, model, course_id: str):
        # Store order is creation order; dedupe "first seen" relies on it.
        return (
            db.query(model)
            .filter(model.course_id == course_id)
            .order_by(model.created_at, model.id)
            .all()
        )

    def load_pricing_data(self, course_id: str) -> PricingData:
        try:
            with self._session_factory() as db:
                seasons = _convert(self._ordered(db, models.PricingSeason, course_id), season_from_row, "season", course_id)
                bands = _convert(self._ordered(db, models.PricingTimeBand, course_id), time_band_from_row, "time band", course_id)
                rules = _convert(self._ordered(db, models.PricingPriceRule, course_id), price_rule_from_row, "price rule", course_id)
                overrides = _convert(
                    self._ordered(db, models.PricingSpecialOverride, course_id),
                    special_override_from_row,
                    "override",
                    course_id,
                )
                base_row = db.get(models.PricingBaseProduct, course_id)
                base_product = _convert([base_row], base_product_from_row, "base product", course_id) if base_row else ()
        except SQLAlchemyError as e:
            logger.error("[STORE] course=%s load failed: %s", course_id, str(e)[:240])
            raise RepositoryError(f"Could not load pricing data for course {course_id}") from e

        return PricingData(
            seasons=seasons,
            time_bands=bands,
            price_rules=rules,
            special_overrides=overrides,
            base_product=base_product[0] if base_product and base_product[0] is not None else None,
        )

    def load_dedupe_config(self, course_id: str) -> DedupeConfig:
        try:
            with self._session_factory() as db:
                rows = (
                    db.query(models.CanonicalTimeBand)
                    .filter(models.CanonicalTimeBand.course_id == course_id)
                    .order_by(models.CanonicalTimeBand.id)
                    .all()
                )
                setting = db.get(models.CourseSetting, (course_id, DEDUPE_RULES_BY_BAND_KEY))
        except SQLAlchemyError as e:
            raise RepositoryError(f"Could not load dedupe config for course {course_id}") from e

        canonical = []
        for row in rows:
            try:
                canonical.append(
                    CanonicalBand(start_time=parse_hhmm(row.start_time), end_time=parse_hhmm(row.end_time), label=row.label)
                )
            except ValidationError as e:
                logger.warning("[STORE] course=%s skipping invalid canonical band %s: %s", course_id, row.id, e)

        return DedupeConfig(
            canonical_bands=tuple(canonical),
            group_rules_by_band=_setting_flag(setting.value if setting else None, False),
        )

    def apply_deletions(
        self, course_id: str, time_band_ids: Iterable[str] = (), price_rule_ids: Iterable[str] = ()
    ) -> int:
        band_ids = list(dict.fromkeys(time_band_ids))
        rule_ids = list(dict.fromkeys(price_rule_ids))
        if not band_ids and not rule_ids:
            return 0

        with self._session_factory() as db:
            try:
                removed = 0
                if band_ids:
                    removed += (
                        db.query(models.PricingTimeBand)
                        .filter(models.PricingTimeBand.course_id == course_id, models.PricingTimeBand.id.in_(band_ids))
                        .delete(synchronize_session=False)
                    )
                if rule_ids:
                    removed += (
                        db.query(models.PricingPriceRule)
                        .filter(models.PricingPriceRule.course_id == course_id, models.PricingPriceRule.id.in_(rule_ids))
                        .delete(synchronize_session=False)
                    )
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error("[STORE] course=%s deletion batch rolled back: %s", course_id, str(e)[:240])
                raise RepositoryError(f"Deletion batch failed for course {course_id}") from e

        logger.info("[STORE] course=%s deleted %d band(s), %d rule(s)", course_id, len(band_ids), len(rule_ids))
        return removed

    def save_pricing_data(self, course_id: str, data: PricingData) -> None:
        with self._session_factory() as db:
            try:
                for s in data.seasons:
                    db.merge(
                        models.PricingSeason(
                            id=s.id, course_id=course_id, name=s.name, start_date=s.start_date, end_date=s.end_date,
                            priority=s.priority, active=s.active, updated_at=s.updated_at or models.utcnow(),
                        )
                    )
                for b in data.time_bands:
                    db.merge(
                        models.PricingTimeBand(
                            id=b.id, course_id=course_id, label=b.label,
                            start_time=format_hhmm(b.start_time), end_time=format_hhmm(b.end_time),
                            active=b.active, updated_at=b.updated_at or models.utcnow(),
                        )
                    )
                for r in data.price_rules:
                    f = r.filters
                    db.merge(
                        models.PricingPriceRule(
                            id=r.id, course_id=course_id, name=r.name,
                            season_id=f.season_id, dow=list(f.dow) if f.dow else None, time_band_id=f.time_band_id,
                            lead_time_min=f.lead_time_min, lead_time_max=f.lead_time_max,
                            occupancy_min=f.occupancy_min, occupancy_max=f.occupancy_max,
                            players_min=f.players_min, players_max=f.players_max,
                            effective_from=f.effective_from, effective_to=f.effective_to,
                            price_type=r.price_type.value, price_value=r.price_value, priority=r.priority,
                            active=r.active, min_price=r.min_price, max_price=r.max_price, round_to=r.round_to,
                            updated_at=r.updated_at or models.utcnow(),
                        )
                    )
                for o in data.special_overrides:
                    db.merge(
                        models.PricingSpecialOverride(
                            id=o.id, course_id=course_id, name=o.name, start_date=o.start_date, end_date=o.end_date,
                            start_time=format_hhmm(o.start_time) if o.start_time else None,
                            end_time=format_hhmm(o.end_time) if o.end_time else None,
                            override_type=o.override_type.value, price_value=o.price_value,
                            priority=o.priority, active=o.active, updated_at=o.updated_at or models.utcnow(),
                        )
                    )
                if data.base_product is not None:
                    bp = data.base_product
                    db.merge(
                        models.PricingBaseProduct(
                            course_id=course_id, green_fee_base_usd=bp.green_fee_base_usd,
                            cart_fee_usd=bp.cart_fee_usd, caddie_fee_usd=bp.caddie_fee_usd,
                            insurance_fee_usd=bp.insurance_fee_usd, updated_at=bp.updated_at or models.utcnow(),
                        )
                    )
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise RepositoryError(f"Could not save pricing data for course {course_id}") from e

    def save_dedupe_config(self, course_id: str, config: DedupeConfig) -> None:
        with self._session_factory() as db:
            try:
                db.query(models.CanonicalTimeBand).filter(models.CanonicalTimeBand.course_id == course_id).delete(
                    synchronize_session=False
                )
                for band in config.canonical_bands:
                    db.add(
                        models.CanonicalTimeBand(
                            course_id=course_id,
                            start_time=format_hhmm(band.start_time),
                            end_time=format_hhmm(band.end_time),
                            label=band.label,
                        )
                    )
                db.merge(
                    models.CourseSetting(
                        course_id=course_id,
                        key=DEDUPE_RULES_BY_BAND_KEY,
                        value="1" if config.group_rules_by_band else "0",
                        updated_at=models.utcnow(),
                    )
                )
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise RepositoryError(f"Could not save dedupe config for course {course_id}") from e

    def list_course_ids(self) -> List[str]:
        try:
            with self._session_factory() as db:
                ids = set()
                for model in (
                    models.PricingSeason,
                    models.PricingTimeBand,
                    models.PricingPriceRule,
                    models.PricingSpecialOverride,
                    models.PricingBaseProduct,
                ):
                    ids.update(row[0] for row in db.query(model.course_id).distinct().all())
        except SQLAlchemyError as e:
            raise RepositoryError("Could not list courses") from e
        return sorted(ids)
