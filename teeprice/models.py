# teeprice/models.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Float, Integer, String, Text

from teeprice.database import Base


def _new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    # Columns are naive and hold UTC.
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Rows mirror the admin-edited pricing documents and are loosely typed on purpose
# (times as "HH:MM" text, dow as a JSON list). teeprice.rule_store validates them
# into teeprice.rules records before the engine sees anything.

class PricingSeason(Base):
    __tablename__ = "pricing_seasons"
    id = Column(String(64), primary_key=True, default=_new_id)
    course_id = Column(String(120), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    priority = Column(Integer, default=0)
    active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)


class PricingTimeBand(Base):
    __tablename__ = "pricing_time_bands"
    id = Column(String(64), primary_key=True, default=_new_id)
    course_id = Column(String(120), nullable=False, index=True)
    label = Column(String(120), nullable=True)
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)    # HH:MM, exclusive
    active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)


class PricingPriceRule(Base):
    __tablename__ = "pricing_price_rules"
    id = Column(String(64), primary_key=True, default=_new_id)
    course_id = Column(String(120), nullable=False, index=True)
    name = Column(String(200), nullable=False)

    # Optional filters; NULL means "any".
    season_id = Column(String(64), nullable=True, index=True)
    dow = Column(JSON, nullable=True)  # list of 0=Sun ... 6=Sat
    time_band_id = Column(String(64), nullable=True, index=True)
    lead_time_min = Column(Float, nullable=True)
    lead_time_max = Column(Float, nullable=True)
    occupancy_min = Column(Float, nullable=True)
    occupancy_max = Column(Float, nullable=True)
    players_min = Column(Integer, nullable=True)
    players_max = Column(Integer, nullable=True)
    effective_from = Column(Date, nullable=True)
    effective_to = Column(Date, nullable=True)

    price_type = Column(String(20), nullable=False)  # fixed | delta | multiplier
    price_value = Column(Float, nullable=False)
    priority = Column(Integer, default=0, index=True)
    active = Column(Boolean, default=True)
    min_price = Column(Float, nullable=True)
    max_price = Column(Float, nullable=True)
    round_to = Column(Float, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)


class PricingSpecialOverride(Base):
    __tablename__ = "pricing_special_overrides"
    id = Column(String(64), primary_key=True, default=_new_id)
    course_id = Column(String(120), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=True)
    end_time = Column(String(5), nullable=True)
    override_type = Column(String(20), nullable=False)  # price | block
    price_value = Column(Float, nullable=True)
    priority = Column(Integer, default=0)
    active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)


class PricingBaseProduct(Base):
    __tablename__ = "pricing_base_products"
    course_id = Column(String(120), primary_key=True)
    green_fee_base_usd = Column(Float, nullable=True)
    cart_fee_usd = Column(Float, nullable=True)
    caddie_fee_usd = Column(Float, nullable=True)
    insurance_fee_usd = Column(Float, nullable=True)
    updated_at = Column(DateTime, default=utcnow)


class CanonicalTimeBand(Base):
    """Per-course allowlist: when a course has rows here, band dedupe keeps only these windows."""
    __tablename__ = "pricing_canonical_time_bands"
    id = Column(Integer, primary_key=True, autoincrement=True)
    course_id = Column(String(120), nullable=False, index=True)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    label = Column(String(120), nullable=True)


class CourseSetting(Base):
    __tablename__ = "course_settings"
    course_id = Column(String(120), primary_key=True)
    key = Column(String(200), primary_key=True)
    value = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=utcnow)
