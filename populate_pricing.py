# populate_pricing.py - Run this once to seed a demo course's pricing rules
from datetime import date

from teeprice.database import get_session_factory, init_db
from teeprice.rule_store import CanonicalBand, DedupeConfig, SqlRuleStore
from teeprice.rules import (
    BaseProduct,
    PriceRule,
    PricingData,
    RuleFilters,
    Season,
    SpecialOverride,
    TimeBand,
    parse_hhmm,
)

COURSE_ID = "puerto-los-cabos"


def _demo_data(year: int) -> PricingData:
    seasons = [
        Season(id="high", course_id=COURSE_ID, name="High season", start_date=date(year, 11, 1), end_date=date(year + 1, 4, 30), priority=10),
        Season(id="low", course_id=COURSE_ID, name="Low season", start_date=date(year, 5, 1), end_date=date(year, 10, 31), priority=5),
    ]
    bands = [
        TimeBand(id="early", course_id=COURSE_ID, label="Early Bird", start_time=parse_hhmm("07:00"), end_time=parse_hhmm("11:50")),
        TimeBand(id="prime", course_id=COURSE_ID, label="Prime Time", start_time=parse_hhmm("12:00"), end_time=parse_hhmm("13:20")),
        TimeBand(id="twilight", course_id=COURSE_ID, label="Twilight", start_time=parse_hhmm("13:30"), end_time=parse_hhmm("19:00")),
    ]
    # dow: 0=Sun ... 6=Sat
    rules = [
        PriceRule(id="high-season", course_id=COURSE_ID, name="High season uplift", price_type="multiplier", price_value=1.2, priority=50,
                  filters=RuleFilters(season_id="high")),
        PriceRule(id="weekend", course_id=COURSE_ID, name="Weekend", price_type="delta", price_value=25, priority=40,
                  filters=RuleFilters(dow=(0, 6))),
        PriceRule(id="early-bird", course_id=COURSE_ID, name="Early bird", price_type="multiplier", price_value=0.9, priority=30,
                  filters=RuleFilters(time_band_id="early"), min_price=90),
        PriceRule(id="twilight", course_id=COURSE_ID, name="Twilight", price_type="multiplier", price_value=0.7, priority=30,
                  filters=RuleFilters(time_band_id="twilight"), min_price=80, round_to=5),
        PriceRule(id="last-minute", course_id=COURSE_ID, name="Last minute", price_type="delta", price_value=-15, priority=10,
                  filters=RuleFilters(lead_time_min=0, lead_time_max=24, occupancy_max=50), round_to=5),
    ]
    overrides = [
        SpecialOverride(id="christmas", course_id=COURSE_ID, name="Christmas Day", start_date=date(year, 12, 25), end_date=date(year, 12, 25),
                        override_type="price", price_value=250, priority=100),
        SpecialOverride(id="maintenance", course_id=COURSE_ID, name="Greens aeration", start_date=date(year, 8, 4), end_date=date(year, 8, 6),
                        override_type="block", priority=100),
    ]
    base_product = BaseProduct(course_id=COURSE_ID, green_fee_base_usd=150, cart_fee_usd=35, caddie_fee_usd=40, insurance_fee_usd=5)
    return PricingData(seasons, bands, rules, overrides, base_product)


def populate_pricing(year: int = None):
    year = year or date.today().year
    init_db()
    store = SqlRuleStore(get_session_factory())

    data = _demo_data(year)
    print(f"Populating pricing for {COURSE_ID} ({year})...")
    store.save_pricing_data(COURSE_ID, data)
    print(f"  Seasons: {len(data.seasons)}")
    print(f"  Time bands: {len(data.time_bands)}")
    print(f"  Price rules: {len(data.price_rules)}")
    print(f"  Overrides: {len(data.special_overrides)}")
    print(f"  Base green fee: ${data.base_product.green_fee_base_usd:.2f}")

    # This course keeps exactly its three bands and one rule per band.
    store.save_dedupe_config(
        COURSE_ID,
        DedupeConfig(
            canonical_bands=tuple(CanonicalBand(b.start_time, b.end_time, b.label) for b in data.time_bands),
            group_rules_by_band=True,
        ),
    )
    print("\nOK: pricing seeded.")


if __name__ == "__main__":
    populate_pricing()
