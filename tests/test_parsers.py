# tests/test_parsers.py

"""Tests for strict upstream payload parsing."""

import copy
import json
import unittest
from pathlib import Path
from typing import Any

from gamedeals.api.parsers import (
    build_search_page,
    decode_json,
    parse_deals_page,
    parse_game_prices,
    parse_price_history,
    parse_search_results,
)
from gamedeals.models.errors import MalformedResponse
from gamedeals.models.filter import Filter, SortOrder

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def load_fixture(name: str) -> Any:
    with open(FIXTURES_DIR / name, encoding="utf-8") as f:
        return json.load(f)


class TestDealsPage(unittest.TestCase):
    """Parsing of the browse listing endpoint."""

    def setUp(self) -> None:
        self.payload = load_fixture("deals_page.json")

    def test_parses_all_deals(self) -> None:
        page = parse_deals_page(self.payload, 0, 50, Filter())
        self.assertEqual(len(page), 3)
        self.assertEqual(
            [d.game.title for d in page.deals],
            ["Portal 2", "Half-Life 2", "Hades"],
        )
        self.assertEqual(page.offset, 0)
        self.assertEqual(page.next_offset, 3)
        self.assertTrue(page.has_more)

    def test_deal_fields(self) -> None:
        page = parse_deals_page(self.payload, 0, 50, Filter())
        portal = page.deals[0]
        self.assertEqual(portal.game.id, "018d937f-11e5-7148-a2a5-7d9c1d2fb0a1")
        self.assertEqual(portal.store.name, "Steam")
        self.assertEqual(portal.price.amount, 1.99)
        assert portal.regular_price is not None
        self.assertEqual(portal.regular_price.amount, 9.99)
        self.assertEqual(portal.discount, 80)
        self.assertEqual(portal.history_low, 0.99)
        assert portal.expiry is not None
        self.assertEqual(portal.expiry.year, 2026)
        self.assertIsNotNone(portal.expiry.tzinfo)

    def test_optional_fields_may_be_null_or_absent(self) -> None:
        page = parse_deals_page(self.payload, 0, 50, Filter())
        half_life, hades = page.deals[1], page.deals[2]
        self.assertIsNone(half_life.expiry)
        self.assertIsNone(hades.history_low)

    def test_unknown_store_keeps_payload_name(self) -> None:
        page = parse_deals_page(self.payload, 0, 50, Filter())
        self.assertEqual(page.deals[2].store.id, 999)
        self.assertEqual(page.deals[2].store.name, "Tiny Indie Shop")

    def test_min_discount_applied_locally(self) -> None:
        page = parse_deals_page(self.payload, 0, 50, Filter(min_discount=60))
        self.assertEqual(
            [d.game.title for d in page.deals], ["Portal 2", "Half-Life 2"]
        )
        # Cursor still follows the raw upstream list
        self.assertEqual(page.next_offset, 3)
        self.assertTrue(page.has_more)

    def test_store_subset_applied_locally(self) -> None:
        flt = Filter(store_ids=frozenset({61}))
        page = parse_deals_page(self.payload, 0, 50, flt)
        self.assertEqual([d.store.id for d in page.deals], [61])

    def test_price_range_applied_locally(self) -> None:
        flt = Filter(min_price=1.0, max_price=15.0)
        page = parse_deals_page(self.payload, 0, 50, flt)
        self.assertEqual(
            [d.game.title for d in page.deals], ["Portal 2", "Hades"]
        )
        self.assertEqual(page.next_offset, 3)
        self.assertTrue(page.has_more)

    def test_title_sort_applied_locally(self) -> None:
        page = parse_deals_page(
            self.payload, 0, 50, Filter(sort=SortOrder.TITLE)
        )
        self.assertEqual(
            [d.game.title for d in page.deals],
            ["Hades", "Half-Life 2", "Portal 2"],
        )

    def test_missing_cursor_fields_are_derived(self) -> None:
        del self.payload["hasMore"]
        del self.payload["nextOffset"]
        page = parse_deals_page(self.payload, 10, 3, Filter())
        self.assertEqual(page.next_offset, 13)
        self.assertTrue(page.has_more)

        short = parse_deals_page(self.payload, 10, 50, Filter())
        self.assertFalse(short.has_more)

    def test_empty_list_is_final(self) -> None:
        page = parse_deals_page(
            {"list": [], "hasMore": True, "nextOffset": 0}, 0, 50, Filter()
        )
        self.assertEqual(len(page), 0)
        self.assertFalse(page.has_more)

    def test_discount_out_of_range_is_malformed(self) -> None:
        self.payload["list"][0]["deal"]["cut"] = 150
        with self.assertRaises(MalformedResponse):
            parse_deals_page(self.payload, 0, 50, Filter())

    def test_price_above_regular_is_malformed(self) -> None:
        self.payload["list"][1]["deal"]["price"]["amount"] = 99.0
        with self.assertRaises(MalformedResponse):
            parse_deals_page(self.payload, 0, 50, Filter())

    def test_wrong_types_are_malformed(self) -> None:
        cases: list[tuple[str, Any]] = [
            ("cut", "80"),
            ("cut", True),
            ("url", 42),
            ("shop", "Steam"),
            ("price", {"amount": "1.99", "currency": "USD"}),
            ("expiry", "next tuesday"),
        ]
        for key, value in cases:
            with self.subTest(key=key, value=value):
                payload = copy.deepcopy(self.payload)
                payload["list"][0]["deal"][key] = value
                with self.assertRaises(MalformedResponse):
                    parse_deals_page(payload, 0, 50, Filter())

    def test_non_finite_numbers_are_malformed(self) -> None:
        """NaN and Infinity decode as floats but are never valid prices."""
        for literal in ("NaN", "Infinity", "-Infinity"):
            with self.subTest(literal=literal):
                text = json.dumps(self.payload).replace(
                    '"amount": 1.99', f'"amount": {literal}', 1
                )
                with self.assertRaises(MalformedResponse):
                    parse_deals_page(decode_json(text), 0, 50, Filter())

    def test_non_finite_history_low_is_malformed(self) -> None:
        text = json.dumps(self.payload).replace(
            '"amount": 0.99', '"amount": NaN', 1
        )
        with self.assertRaises(MalformedResponse):
            parse_deals_page(decode_json(text), 0, 50, Filter())

    def test_missing_required_fields_are_malformed(self) -> None:
        for key in ("shop", "price", "regular", "cut", "url"):
            with self.subTest(key=key):
                payload = copy.deepcopy(self.payload)
                del payload["list"][0]["deal"][key]
                with self.assertRaises(MalformedResponse):
                    parse_deals_page(payload, 0, 50, Filter())

    def test_missing_deal_object_is_malformed(self) -> None:
        del self.payload["list"][0]["deal"]
        with self.assertRaises(MalformedResponse):
            parse_deals_page(self.payload, 0, 50, Filter())

    def test_non_boolean_has_more_is_malformed(self) -> None:
        self.payload["hasMore"] = "yes"
        with self.assertRaises(MalformedResponse):
            parse_deals_page(self.payload, 0, 50, Filter())

    def test_backwards_cursor_is_malformed(self) -> None:
        with self.assertRaises(MalformedResponse):
            parse_deals_page(self.payload, 10, 50, Filter())

    def test_top_level_must_be_object(self) -> None:
        with self.assertRaises(MalformedResponse):
            parse_deals_page([], 0, 50, Filter())


class TestDecodeJson(unittest.TestCase):
    def test_invalid_json_is_malformed(self) -> None:
        with self.assertRaises(MalformedResponse):
            decode_json("<html>Bad Gateway</html>")

    def test_valid_json(self) -> None:
        self.assertEqual(decode_json('{"list": []}'), {"list": []})


class TestSearch(unittest.TestCase):
    """Parsing of the two-step title search."""

    def setUp(self) -> None:
        self.games = parse_search_results(load_fixture("search_results.json"))
        self.prices = load_fixture("game_prices.json")

    def test_search_results_deduplicated(self) -> None:
        self.assertEqual(
            [g.id for g in self.games],
            ["g-portal", "g-portal-2", "g-portal-knights"],
        )

    def test_best_deal_per_game(self) -> None:
        best = parse_game_prices(self.prices, self.games)
        self.assertEqual(set(best), {"g-portal", "g-portal-2"})
        # Equal price: the deeper cut wins
        self.assertEqual(best["g-portal"].store.name, "Humble Store")
        self.assertEqual(best["g-portal"].history_low, 0.79)
        self.assertIsNone(best["g-portal-2"].history_low)

    def test_prices_for_unrequested_games_ignored(self) -> None:
        best = parse_game_prices(self.prices, self.games[:1])
        self.assertEqual(set(best), {"g-portal"})

    def test_search_page_is_single_and_final(self) -> None:
        best = parse_game_prices(self.prices, self.games)
        page = build_search_page(self.games, best, Filter(query="portal"))
        self.assertEqual(
            [d.game.id for d in page.deals], ["g-portal", "g-portal-2"]
        )
        self.assertFalse(page.has_more)
        self.assertEqual(page.next_offset, 0)

    def test_search_page_sorted_locally(self) -> None:
        best = parse_game_prices(self.prices, self.games)
        flt = Filter(query="portal", sort=SortOrder.PRICE_DESC)
        page = build_search_page(self.games, best, flt)
        self.assertEqual(
            [d.game.id for d in page.deals], ["g-portal-2", "g-portal"]
        )

    def test_search_page_applies_min_discount(self) -> None:
        best = parse_game_prices(self.prices, self.games)
        flt = Filter(query="portal", min_discount=80)
        page = build_search_page(self.games, best, flt)
        self.assertEqual([d.game.id for d in page.deals], ["g-portal"])

    def test_search_result_without_title_is_malformed(self) -> None:
        with self.assertRaises(MalformedResponse):
            parse_search_results([{"id": "g1"}])


class TestPriceHistory(unittest.TestCase):
    def test_points_sorted_and_gaps_skipped(self) -> None:
        points = parse_price_history(load_fixture("price_history.json"))
        self.assertEqual(len(points), 2)
        self.assertEqual(
            [p.store_name for p in points], ["Humble Store", "Steam"]
        )
        self.assertEqual([p.price for p in points], [0.99, 1.99])
        self.assertLess(points[0].timestamp, points[1].timestamp)

    def test_history_must_be_list(self) -> None:
        with self.assertRaises(MalformedResponse):
            parse_price_history({"history": []})


if __name__ == "__main__":
    unittest.main()
