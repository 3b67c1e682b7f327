import itertools
import unittest
from datetime import date, datetime

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from teeprice.bulk import (
    BulkChangeType,
    BulkFilters,
    BulkRuleService,
    plan_bulk_price_change,
    plan_duplicate_rules,
)
from teeprice.database import init_db
from teeprice.errors import ValidationError
from teeprice.rule_store import SqlRuleStore
from teeprice.rules import PriceRule, PricingData, RuleFilters

COURSE = "demo-course"
NOW = datetime(2026, 3, 1, 9, 0, 0)
STAMP = datetime(2026, 1, 1)


def _rule(rule_id, price_type="fixed", value=100.0, **filters):
    return PriceRule(
        id=rule_id,
        course_id=COURSE,
        name=rule_id.title(),
        price_type=price_type,
        price_value=value,
        filters=RuleFilters(**filters),
        updated_at=STAMP,
    )


class BulkPriceChangeTests(unittest.TestCase):
    def test_percentage_change_rounds_to_whole_units(self):
        rules = [_rule("green-fee", "fixed", 100.0), _rule("surcharge", "delta", 15.0)]

        changed = plan_bulk_price_change(rules, BulkFilters(), BulkChangeType.PERCENTAGE, 10, NOW)

        self.assertEqual([(r.id, r.price_value) for r in changed], [("green-fee", 110.0), ("surcharge", 17.0)])
        self.assertTrue(all(r.updated_at == NOW for r in changed))
        self.assertEqual(rules[0].price_value, 100.0)

    def test_fixed_change_and_multipliers_untouched(self):
        rules = [_rule("green-fee", "fixed", 100.0), _rule("weekend", "multiplier", 1.2)]

        changed = plan_bulk_price_change(rules, BulkFilters(), "fixed", -5, NOW)

        self.assertEqual([(r.id, r.price_value) for r in changed], [("green-fee", 95.0)])

    def test_filters_select_rules(self):
        rules = [
            _rule("high-am", season_id="high", time_band_id="am", dow=[6]),
            _rule("high-pm", season_id="high", time_band_id="pm"),
            _rule("low-am", season_id="low", time_band_id="am"),
            _rule("high-am-sunday", season_id="high", time_band_id="am", dow=[0]),
            _rule("high-am-daily", season_id="high", time_band_id="am"),
        ]
        filters = BulkFilters(season_id="high", time_band_id="am", dow=[5, 6])

        changed = plan_bulk_price_change(rules, filters, BulkChangeType.FIXED, 10, NOW)

        self.assertEqual([r.id for r in changed], ["high-am", "high-am-daily"])


class DuplicateRulesTests(unittest.TestCase):
    def setUp(self):
        counter = itertools.count(1)
        self.new_id = lambda: f"copy-{next(counter)}"

    def test_rules_inside_source_range_are_copied(self):
        rules = [
            _rule("january", effective_from=date(2026, 1, 1), effective_to=date(2026, 1, 31)),
            _rule("mid-january", "delta", 5.0, effective_from=date(2026, 1, 10), effective_to=date(2026, 1, 20)),
            _rule("spills-over", effective_from=date(2026, 1, 15), effective_to=date(2026, 2, 15)),
            _rule("open-ended", effective_from=date(2026, 1, 1)),
            _rule("always"),
        ]

        copies = plan_duplicate_rules(
            rules, date(2026, 1, 1), date(2026, 1, 31), date(2027, 1, 1), date(2027, 1, 31), NOW, new_id=self.new_id
        )

        self.assertEqual([c.id for c in copies], ["copy-1", "copy-2"])
        self.assertEqual([c.name for c in copies], ["January (Duplicated)", "Mid-January (Duplicated)"])
        for copy in copies:
            self.assertEqual(copy.filters.effective_from, date(2027, 1, 1))
            self.assertEqual(copy.filters.effective_to, date(2027, 1, 31))
            self.assertEqual(copy.updated_at, NOW)
        self.assertEqual(copies[1].price_value, 5.0)
        self.assertEqual(rules[0].filters.effective_from, date(2026, 1, 1))

    def test_backwards_ranges_are_rejected(self):
        with self.assertRaises(ValidationError):
            plan_duplicate_rules([], date(2026, 2, 1), date(2026, 1, 1), date(2027, 1, 1), date(2027, 1, 31), NOW)
        with self.assertRaises(ValidationError):
            plan_duplicate_rules([], date(2026, 1, 1), date(2026, 1, 31), date(2027, 2, 1), date(2027, 1, 1), NOW)


class BulkRuleServiceTests(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        init_db(self.engine)
        self.store = SqlRuleStore(sessionmaker(autocommit=False, autoflush=False, bind=self.engine))
        self.store.save_pricing_data(COURSE, PricingData(price_rules=[
            _rule("green-fee", "fixed", 100.0, effective_from=date(2026, 1, 1), effective_to=date(2026, 1, 31)),
            _rule("weekend", "multiplier", 1.2),
        ]))
        self.service = BulkRuleService(self.store, clock=lambda: NOW)

    def tearDown(self):
        self.engine.dispose()

    def _rules(self):
        return {r.id: r for r in self.store.load_pricing_data(COURSE).price_rules}

    def test_bulk_change_is_persisted(self):
        changed = self.service.apply_bulk_price_change(COURSE, BulkFilters(), "percentage", 25)

        self.assertEqual([r.id for r in changed], ["green-fee"])
        rules = self._rules()
        self.assertEqual(rules["green-fee"].price_value, 125.0)
        self.assertEqual(rules["green-fee"].updated_at, NOW)
        self.assertEqual(rules["weekend"].price_value, 1.2)

    def test_unknown_change_type_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.service.apply_bulk_price_change(COURSE, BulkFilters(), "double", 2)

    def test_duplicates_are_persisted_next_to_source_rules(self):
        copies = self.service.duplicate_rules_for_date_range(
            COURSE, "2026-01-01", "2026-01-31", "2026-02-01", "2026-02-28"
        )

        rules = self._rules()
        self.assertEqual(len(rules), 3)
        copy = rules[copies[0].id]
        self.assertEqual(copy.name, "Green-Fee (Duplicated)")
        self.assertEqual(copy.filters.effective_from, date(2026, 2, 1))
        self.assertEqual(rules["green-fee"].filters.effective_to, date(2026, 1, 31))

    def test_nothing_to_duplicate(self):
        copies = self.service.duplicate_rules_for_date_range(
            COURSE, "2025-01-01", "2025-01-31", "2026-02-01", "2026-02-28"
        )

        self.assertEqual(copies, [])
        self.assertEqual(len(self._rules()), 2)


if __name__ == "__main__":
    unittest.main()
