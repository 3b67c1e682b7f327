import random
import unittest
from datetime import date, datetime, time

from teeprice.errors import BookingBlockedError, ConfigurationError, ValidationError
from teeprice.pricing import PricingEngine, round_half_up, round_to_multiple, select_season, select_time_band
from teeprice.rules import (
    BaseProduct,
    PriceRequest,
    PriceRule,
    PricingData,
    RuleFilters,
    Season,
    SpecialOverride,
    TimeBand,
)

COURSE = "demo-course"
NOW = datetime(2026, 1, 15, 12, 0, 0)
SATURDAY = date(2026, 2, 7)
FRIDAY = date(2026, 2, 6)


def _rule(rule_id, price_type, value, priority=0, **kwargs):
    filters = kwargs.pop("filters", RuleFilters())
    return PriceRule(
        id=rule_id,
        course_id=COURSE,
        name=kwargs.pop("name", rule_id),
        price_type=price_type,
        price_value=value,
        priority=priority,
        filters=filters,
        **kwargs,
    )


def _data(rules=(), overrides=(), seasons=(), bands=(), base=100.0):
    base_product = BaseProduct(course_id=COURSE, green_fee_base_usd=base) if base is not None else None
    return PricingData(
        seasons=seasons,
        time_bands=bands,
        price_rules=rules,
        special_overrides=overrides,
        base_product=base_product,
    )


def _request(on=SATURDAY, at=time(8, 0), players=2, **kwargs):
    return PriceRequest(course_id=COURSE, date=on, time=at, players=players, **kwargs)


class PricingEngineTests(unittest.TestCase):
    def setUp(self):
        self.engine = PricingEngine(clock=lambda: NOW)

    def test_base_price_when_nothing_matches(self):
        result = self.engine.calculate(_data(), _request(players=3))

        self.assertEqual(result.base_price, 100.0)
        self.assertEqual(result.applied_rules, ())
        self.assertEqual(result.final_price_per_player, 100.0)
        self.assertEqual(result.total_price, 300.0)
        self.assertEqual(result.players, 3)
        self.assertEqual(result.calculation_timestamp, NOW)

    def test_saturday_multiplier_applies_only_on_saturday(self):
        data = _data(rules=[_rule("weekend", "multiplier", 1.2, priority=1, filters=RuleFilters(dow=[6]))])

        saturday = self.engine.calculate(data, _request(on=SATURDAY))
        friday = self.engine.calculate(data, _request(on=FRIDAY))

        self.assertAlmostEqual(saturday.final_price_per_player, 120.0)
        self.assertEqual([a.rule_id for a in saturday.applied_rules], ["weekend"])
        self.assertEqual(friday.final_price_per_player, 100.0)

    def test_empty_dow_list_matches_every_day(self):
        data = _data(rules=[_rule("any-day", "delta", 10, filters=RuleFilters(dow=[]))])

        result = self.engine.calculate(data, _request(on=FRIDAY))

        self.assertEqual(result.final_price_per_player, 110.0)

    def test_block_override_short_circuits_rules(self):
        rules = [_rule(f"r{i}", "delta", i, priority=i) for i in range(10)]
        block = SpecialOverride(
            id="closed",
            course_id=COURSE,
            name="Tournament",
            start_date=SATURDAY,
            end_date=SATURDAY,
            override_type="block",
        )

        with self.assertRaises(BookingBlockedError) as ctx:
            self.engine.calculate(_data(rules=rules, overrides=[block]), _request())

        self.assertEqual(ctx.exception.override_id, "closed")

    def test_block_override_outside_its_hours_does_not_block(self):
        block = SpecialOverride(
            id="morning-shotgun",
            course_id=COURSE,
            name="Shotgun start",
            start_date=SATURDAY,
            end_date=SATURDAY,
            start_time=time(7, 0),
            end_time=time(10, 0),
            override_type="block",
        )
        data = _data(overrides=[block])

        with self.assertRaises(BookingBlockedError):
            self.engine.calculate(data, _request(at=time(10, 0)))
        result = self.engine.calculate(data, _request(at=time(10, 1)))
        self.assertEqual(result.final_price_per_player, 100.0)

    def test_one_sided_override_window_runs_to_end_of_day(self):
        block = SpecialOverride(
            id="afternoon-event",
            course_id=COURSE,
            name="Member event",
            start_date=SATURDAY,
            end_date=SATURDAY,
            start_time=time(13, 0),
            override_type="block",
        )
        data = _data(overrides=[block])

        with self.assertRaises(BookingBlockedError):
            self.engine.calculate(data, _request(at=time(17, 30)))
        result = self.engine.calculate(data, _request(at=time(8, 0)))
        self.assertEqual(result.final_price_per_player, 100.0)

    def test_inactive_block_override_is_ignored(self):
        block = SpecialOverride(
            id="old",
            course_id=COURSE,
            name="Cancelled closure",
            start_date=SATURDAY,
            end_date=SATURDAY,
            override_type="block",
            active=False,
        )

        result = self.engine.calculate(_data(overrides=[block]), _request())

        self.assertEqual(result.final_price_per_player, 100.0)

    def test_price_override_replaces_all_rules(self):
        rules = [_rule("uplift", "multiplier", 2, priority=50)]
        holiday = SpecialOverride(
            id="xmas",
            course_id=COURSE,
            name="Holiday rate",
            start_date=SATURDAY,
            end_date=SATURDAY,
            override_type="price",
            price_value=250,
        )

        result = self.engine.calculate(_data(rules=rules, overrides=[holiday]), _request(players=4))

        self.assertEqual(result.base_price, 100.0)
        self.assertEqual(len(result.applied_rules), 1)
        self.assertEqual(result.applied_rules[0].rule_id, "xmas")
        self.assertEqual(result.applied_rules[0].type, "fixed")
        self.assertEqual(result.final_price_per_player, 250.0)
        self.assertEqual(result.total_price, 1000.0)

    def test_higher_priority_price_override_wins(self):
        low = SpecialOverride(
            id="low", course_id=COURSE, name="Low", start_date=SATURDAY, end_date=SATURDAY,
            override_type="price", price_value=180, priority=1,
        )
        high = SpecialOverride(
            id="high", course_id=COURSE, name="High", start_date=SATURDAY, end_date=SATURDAY,
            override_type="price", price_value=220, priority=9,
        )

        result = self.engine.calculate(_data(overrides=[low, high]), _request())

        self.assertEqual(result.final_price_per_player, 220.0)

    def test_calculate_is_deterministic(self):
        data = _data(
            rules=[
                _rule("a", "multiplier", 1.15, priority=5, round_to=5),
                _rule("b", "delta", -7.5, priority=10),
            ]
        )

        first = self.engine.calculate(data, _request())
        second = self.engine.calculate(data, _request())

        self.assertEqual(first, second)

    def test_input_order_does_not_change_result(self):
        rules = [
            _rule("a", "delta", 20, priority=10, updated_at=datetime(2026, 1, 1)),
            _rule("b", "multiplier", 1.1, priority=10, updated_at=datetime(2026, 1, 5)),
            _rule("c", "delta", -5, priority=3),
            _rule("d", "multiplier", 0.95, priority=3),
            _rule("e", "fixed", 140, priority=7, max_price=130),
            _rule("f", "delta", 3, priority=1, round_to=2),
        ]
        expected = self.engine.calculate(_data(rules=rules), _request())

        rng = random.Random(7)
        for _ in range(20):
            shuffled = list(rules)
            rng.shuffle(shuffled)
            self.assertEqual(self.engine.calculate(_data(rules=shuffled), _request()), expected)

    def test_ties_break_on_most_recent_update(self):
        older = _rule("older", "fixed", 90, priority=5, updated_at=datetime(2025, 12, 1))
        newer = _rule("newer", "fixed", 110, priority=5, updated_at=datetime(2026, 1, 1))

        result = self.engine.calculate(_data(rules=[older, newer]), _request())

        self.assertEqual([a.rule_id for a in result.applied_rules], ["newer", "older"])
        self.assertEqual(result.final_price_per_player, 90.0)

    def test_fixed_rule_overwrites_running_price(self):
        rules = [
            _rule("surge", "delta", 50, priority=10),
            _rule("flat", "fixed", 80, priority=5),
            _rule("fee", "delta", 5, priority=1),
        ]

        result = self.engine.calculate(_data(rules=rules), _request())

        self.assertEqual([a.result_price for a in result.applied_rules], [150.0, 80.0, 85.0])
        self.assertEqual(result.final_price_per_player, 85.0)

    def test_clamp_applies_right_after_its_rule(self):
        rules = [
            _rule("half-off", "multiplier", 0.5, priority=10, min_price=70),
            _rule("promo", "delta", -30, priority=5),
        ]

        result = self.engine.calculate(_data(rules=rules), _request())

        self.assertEqual(result.applied_rules[0].result_price, 70.0)
        self.assertEqual(result.final_price_per_player, 40.0)

    def test_max_price_clamp(self):
        rules = [_rule("peak", "multiplier", 3, max_price=250)]

        result = self.engine.calculate(_data(rules=rules), _request())

        self.assertEqual(result.final_price_per_player, 250.0)

    def test_round_to_from_last_rule(self):
        rules = [
            _rule("uplift", "multiplier", 1.13, priority=10),
            _rule("nice-number", "delta", 0, priority=1, round_to=5),
        ]

        result = self.engine.calculate(_data(rules=rules), _request())

        self.assertEqual(result.final_price_per_player, 115)
        self.assertEqual(result.final_price_per_player % 5, 0)
        self.assertEqual(result.applied_rules[-1].result_price, 115)

    def test_fractional_round_to_leaves_no_float_noise(self):
        rules = [_rule("uplift", "multiplier", 1.234, round_to=0.05)]

        result = self.engine.calculate(_data(rules=rules, base=10.0), _request())

        self.assertEqual(result.final_price_per_player, 12.35)
        self.assertEqual(result.applied_rules[-1].result_price, 12.35)
        self.assertEqual(result.total_price, 24.7)

    def test_round_to_of_earlier_rule_is_ignored(self):
        rules = [
            _rule("first", "delta", 7, priority=10, round_to=50),
            _rule("last", "delta", 1, priority=5),
        ]

        result = self.engine.calculate(_data(rules=rules), _request())

        self.assertEqual(result.final_price_per_player, 108.0)

    def test_missing_base_product_is_configuration_error(self):
        with self.assertRaises(ConfigurationError):
            self.engine.calculate(_data(base=None), _request())

    def test_caller_fallback_base_price(self):
        result = self.engine.calculate(_data(base=None), _request(), fallback_base_price=90)
        self.assertEqual(result.base_price, 90.0)
        self.assertEqual(result.final_price_per_player, 90.0)

        with self.assertRaises(ConfigurationError):
            self.engine.calculate(_data(base=None), _request(), fallback_base_price=0)

    def test_base_product_beats_fallback(self):
        result = self.engine.calculate(_data(base=120), _request(), fallback_base_price=90)
        self.assertEqual(result.base_price, 120.0)

    def test_season_scoped_rule(self):
        seasons = [
            Season(id="winter", course_id=COURSE, name="Winter", start_date=date(2026, 1, 1), end_date=date(2026, 3, 31), priority=1),
            Season(id="festival", course_id=COURSE, name="Festival", start_date=date(2026, 2, 1), end_date=date(2026, 2, 14), priority=5),
        ]
        rules = [
            _rule("winter-rate", "fixed", 70, filters=RuleFilters(season_id="winter")),
            _rule("festival-rate", "fixed", 160, filters=RuleFilters(season_id="festival")),
        ]
        data = _data(rules=rules, seasons=seasons)

        self.assertEqual(self.engine.calculate(data, _request(on=SATURDAY)).final_price_per_player, 160.0)
        self.assertEqual(self.engine.calculate(data, _request(on=date(2026, 3, 7))).final_price_per_player, 70.0)
        self.assertEqual(self.engine.calculate(data, _request(on=date(2026, 4, 4))).final_price_per_player, 100.0)

    def test_time_band_is_half_open(self):
        bands = [
            TimeBand(id="am", course_id=COURSE, label="Morning", start_time=time(7, 0), end_time=time(12, 0)),
        ]
        data = _data(rules=[_rule("am-rate", "delta", -20, filters=RuleFilters(time_band_id="am"))], bands=bands)

        self.assertEqual(self.engine.calculate(data, _request(at=time(7, 0))).final_price_per_player, 80.0)
        self.assertEqual(self.engine.calculate(data, _request(at=time(11, 59))).final_price_per_player, 80.0)
        self.assertEqual(self.engine.calculate(data, _request(at=time(12, 0))).final_price_per_player, 100.0)

    def test_lead_time_derived_from_now(self):
        # 2026-02-07 08:00 is 12 hours after 2026-02-06 20:00.
        rules = [_rule("last-minute", "delta", -10, filters=RuleFilters(lead_time_min=0, lead_time_max=24))]
        data = _data(rules=rules)

        soon = self.engine.calculate(data, _request(), now=datetime(2026, 2, 6, 20, 0))
        later = self.engine.calculate(data, _request(), now=datetime(2026, 2, 5, 20, 0))

        self.assertEqual(soon.final_price_per_player, 90.0)
        self.assertEqual(later.final_price_per_player, 100.0)

    def test_past_tee_time_counts_as_zero_lead_time(self):
        past = datetime(2026, 2, 7, 20, 0)
        zero_based = _data(rules=[_rule("same-day", "delta", -10, filters=RuleFilters(lead_time_min=0, lead_time_max=1))])
        negative = _data(rules=[_rule("walk-up", "delta", -20, filters=RuleFilters(lead_time_max=-1))])

        self.assertEqual(self.engine.calculate(zero_based, _request(), now=past).final_price_per_player, 90.0)
        self.assertEqual(self.engine.calculate(negative, _request(), now=past).final_price_per_player, 80.0)

    def test_explicit_lead_time_is_used(self):
        rules = [_rule("early-booker", "multiplier", 0.8, filters=RuleFilters(lead_time_min=720))]

        result = self.engine.calculate(_data(rules=rules), _request(lead_time_hours=1000))

        self.assertAlmostEqual(result.final_price_per_player, 80.0)

    def test_occupancy_defaults_to_zero(self):
        rules = [_rule("busy", "delta", 25, filters=RuleFilters(occupancy_min=50))]
        data = _data(rules=rules)

        self.assertEqual(self.engine.calculate(data, _request()).final_price_per_player, 100.0)
        self.assertEqual(self.engine.calculate(data, _request(occupancy_percent=80)).final_price_per_player, 125.0)

    def test_players_filter(self):
        rules = [_rule("group", "delta", -15, filters=RuleFilters(players_min=4))]
        data = _data(rules=rules)

        self.assertEqual(self.engine.calculate(data, _request(players=2)).final_price_per_player, 100.0)
        group = self.engine.calculate(data, _request(players=4))
        self.assertEqual(group.final_price_per_player, 85.0)
        self.assertEqual(group.total_price, 340.0)

    def test_effective_window_is_checked_against_now(self):
        rules = [
            _rule("expired", "delta", 10, filters=RuleFilters(effective_to=date(2026, 1, 14))),
            _rule("current", "delta", 5, filters=RuleFilters(effective_from=date(2026, 1, 15))),
            _rule("future", "delta", 1, filters=RuleFilters(effective_from=date(2026, 1, 16))),
        ]

        result = self.engine.calculate(_data(rules=rules), _request())

        self.assertEqual([a.rule_id for a in result.applied_rules], ["current"])

    def test_inactive_rule_is_skipped(self):
        rules = [_rule("off", "fixed", 1, active=False)]
        self.assertEqual(self.engine.calculate(_data(rules=rules), _request()).final_price_per_player, 100.0)


class MinimumPriceTests(unittest.TestCase):
    def setUp(self):
        self.engine = PricingEngine(clock=lambda: NOW)

    def test_lowest_single_rule_price(self):
        rules = [
            _rule("twilight", "multiplier", 0.7, round_to=5),
            _rule("promo", "delta", -60, min_price=100),
            _rule("disabled", "fixed", 10, active=False),
            _rule("old", "fixed", 20, filters=RuleFilters(effective_to=date(2025, 12, 31))),
        ]

        self.assertEqual(self.engine.minimum_price(_data(rules=rules, base=150)), 100.0)

    def test_base_price_when_no_rules(self):
        self.assertEqual(self.engine.minimum_price(_data(base=150)), 150.0)

    def test_requires_base_product(self):
        with self.assertRaises(ConfigurationError):
            self.engine.minimum_price(_data(base=None))


class PriceCalendarTests(unittest.TestCase):
    def setUp(self):
        self.engine = PricingEngine(clock=lambda: NOW)
        self.bands = [
            TimeBand(id="pm", course_id=COURSE, label="Afternoon", start_time=time(13, 0), end_time=time(18, 0)),
            TimeBand(id="am", course_id=COURSE, label="Morning", start_time=time(7, 0), end_time=time(12, 0)),
        ]

    def test_one_entry_per_day_and_band(self):
        rules = [_rule("pm-rate", "delta", -20, filters=RuleFilters(time_band_id="pm"))]

        entries = self.engine.price_calendar(_data(rules=rules, bands=self.bands), COURSE, 2026, 2, players=2)

        self.assertEqual(len(entries), 28 * 2)
        self.assertEqual(entries[0].date, date(2026, 2, 1))
        self.assertEqual([e.time_band_id for e in entries[:2]], ["am", "pm"])
        self.assertEqual(entries[0].price_per_player, 100.0)
        self.assertEqual(entries[1].price_per_player, 80.0)
        self.assertEqual(entries[1].total_price, 160.0)

    def test_blocked_slots_are_skipped(self):
        block = SpecialOverride(
            id="aeration",
            course_id=COURSE,
            name="Aeration",
            start_date=date(2026, 2, 10),
            end_date=date(2026, 2, 10),
            override_type="block",
        )

        entries = self.engine.price_calendar(_data(overrides=[block], bands=self.bands), COURSE, 2026, 2)

        self.assertEqual(len(entries), 27 * 2)
        self.assertNotIn(date(2026, 2, 10), {e.date for e in entries})


class SelectionTests(unittest.TestCase):
    def test_season_tie_breaks_on_update_time(self):
        a = Season(id="a", course_id=COURSE, name="A", start_date=date(2026, 1, 1), end_date=date(2026, 12, 31),
                   priority=3, updated_at=datetime(2026, 1, 1))
        b = Season(id="b", course_id=COURSE, name="B", start_date=date(2026, 1, 1), end_date=date(2026, 12, 31),
                   priority=3, updated_at=datetime(2026, 1, 2))
        inactive = Season(id="c", course_id=COURSE, name="C", start_date=date(2026, 1, 1), end_date=date(2026, 12, 31),
                          priority=99, active=False)

        self.assertEqual(select_season([a, b, inactive], SATURDAY).id, "b")
        self.assertIsNone(select_season([a, b], date(2027, 1, 1)))

    def test_first_band_by_start_time(self):
        wide = TimeBand(id="wide", course_id=COURSE, label="All day", start_time=time(6, 0), end_time=time(20, 0))
        narrow = TimeBand(id="narrow", course_id=COURSE, label="Prime", start_time=time(9, 0), end_time=time(11, 0))

        self.assertEqual(select_time_band([narrow, wide], time(10, 0)).id, "wide")

    def test_rounding_helpers(self):
        self.assertEqual(round_half_up(1439.5), 1440)
        self.assertEqual(round_half_up(2.5), 3)
        self.assertEqual(round_to_multiple(112.5, 5), 115)

    def test_fractional_round_to_is_an_exact_multiple(self):
        self.assertEqual(round_to_multiple(12.34, 0.05), 12.35)
        self.assertEqual(round_to_multiple(10.1 * 3, 0.1), 30.3)

    def test_negative_ties_round_away_from_zero(self):
        self.assertEqual(round_half_up(-2.5), -3)
        self.assertEqual(round_half_up(-2.4), -2)


class RecordValidationTests(unittest.TestCase):
    def test_time_band_requires_start_before_end(self):
        with self.assertRaises(ValidationError):
            TimeBand(id="bad", course_id=COURSE, label="Bad", start_time=time(12, 0), end_time=time(12, 0))

    def test_season_requires_ordered_dates(self):
        with self.assertRaises(ValidationError):
            Season(id="bad", course_id=COURSE, name="Bad", start_date=date(2026, 2, 1), end_date=date(2026, 1, 1))

    def test_rule_rejects_unknown_type_and_bad_ranges(self):
        with self.assertRaises(ValidationError):
            _rule("bad", "percent", 10)
        with self.assertRaises(ValidationError):
            _rule("bad", "delta", 10, min_price=50, max_price=40)
        with self.assertRaises(ValidationError):
            _rule("bad", "delta", 10, filters=RuleFilters(dow=[7]))

    def test_price_override_needs_a_price(self):
        with self.assertRaises(ValidationError):
            SpecialOverride(id="bad", course_id=COURSE, name="Bad", start_date=SATURDAY, end_date=SATURDAY, override_type="price")

    def test_request_parsing(self):
        request = PriceRequest.parse(COURSE, "2026-02-07", "08:30", 2)
        self.assertEqual(request.date, SATURDAY)
        self.assertEqual(request.time, time(8, 30))

        with self.assertRaises(ValidationError):
            PriceRequest.parse(COURSE, "2026-02-07", "25:00", 2)
        with self.assertRaises(ValidationError):
            PriceRequest.parse(COURSE, "07/02/2026", "08:30", 2)
        with self.assertRaises(ValidationError):
            PriceRequest.parse(COURSE, "2026-02-07", "08:30", 0)
        with self.assertRaises(ValidationError):
            PriceRequest.parse("", "2026-02-07", "08:30", 2)


if __name__ == "__main__":
    unittest.main()
