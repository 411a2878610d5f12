# tests/test_change_detector.py

"""Tests for ChangeDetector snapshot diffing."""

import unittest

from src.models.listing import Listing, Snapshot, StockStatus
from src.services.change_detector import ChangeDetector

IN = StockStatus.IN_STOCK
OUT = StockStatus.OUT_OF_STOCK
UNKNOWN = StockStatus.UNKNOWN


def _make(
    listing_id: str,
    price: str = "€ 10,00",
    in_stock: StockStatus = IN,
    group: str = "bol",
) -> Listing:
    """Create a listing with an explicit id."""
    return Listing(
        id=listing_id,
        title=f"Listing {listing_id}",
        url=f"https://shop.nl/p/{listing_id}",
        source_group=group,
        price_raw=price,
        in_stock=in_stock,
    )


def _snap(*listings: Listing, group: str = "bol") -> Snapshot:
    return Snapshot.from_listings(group, listings)


class TestDetect(unittest.TestCase):
    """ChangeDetector.detect behaviour."""

    def test_identical_snapshots_yield_nothing(self) -> None:
        snap = _snap(
            _make("a"),
            _make("b", price="", in_stock=UNKNOWN),
            _make("c", in_stock=OUT),
        )
        changes = ChangeDetector.detect(snap, snap)
        self.assertEqual(changes.added, [])
        self.assertEqual(changes.price_dropped, [])
        self.assertEqual(changes.restocked, [])
        self.assertTrue(changes.is_empty())

    def test_new_listing_added_exactly_once(self) -> None:
        old = _snap(_make("a"))
        new = _snap(_make("a"), _make("b"), _make("b"))
        changes = ChangeDetector.detect(old, new)
        self.assertEqual([l.id for l in changes.added], ["b"])

    def test_everything_new_against_empty_snapshot(self) -> None:
        changes = ChangeDetector.detect(
            Snapshot(source_group="bol"), _snap(_make("a"), _make("b")),
        )
        self.assertEqual(len(changes.added), 2)

    def test_price_drop_preserves_old_price(self) -> None:
        old = _snap(_make("a", price="€ 10,00"))
        new = _snap(_make("a", price="€ 8,00"))
        changes = ChangeDetector.detect(old, new)
        self.assertEqual(len(changes.price_dropped), 1)
        drop = changes.price_dropped[0]
        self.assertEqual(drop.id, "a")
        self.assertEqual(drop.old_price, 10.0)
        self.assertEqual(drop.new_price, 8.0)

    def test_price_increase_not_reported(self) -> None:
        old = _snap(_make("a", price="€ 8,00"))
        new = _snap(_make("a", price="€ 10,00"))
        self.assertTrue(ChangeDetector.detect(old, new).is_empty())

    def test_notation_change_is_not_a_drop(self) -> None:
        old = _snap(_make("a", price="€ 12,99"))
        new = _snap(_make("a", price="12.99"))
        self.assertEqual(ChangeDetector.detect(old, new).price_dropped, [])

    def test_indeterminate_price_excluded(self) -> None:
        old = _snap(_make("a", price="Prijs onbekend"), _make("b", price="€ 9,00"))
        new = _snap(_make("a", price="€ 1,00"), _make("b", price=""))
        self.assertEqual(ChangeDetector.detect(old, new).price_dropped, [])

    def test_restock_requires_confirmed_in_stock(self) -> None:
        old = _snap(_make("a", in_stock=OUT), _make("b", in_stock=OUT))
        new = _snap(_make("a", in_stock=IN), _make("b", in_stock=UNKNOWN))
        changes = ChangeDetector.detect(old, new)
        self.assertEqual([l.id for l in changes.restocked], ["a"])

    def test_unknown_to_in_stock_is_not_restock(self) -> None:
        old = _snap(_make("a", in_stock=UNKNOWN))
        new = _snap(_make("a", in_stock=IN))
        self.assertEqual(ChangeDetector.detect(old, new).restocked, [])

    def test_drop_and_restock_both_reported(self) -> None:
        old = _snap(_make("a", price="€ 10,00", in_stock=OUT))
        new = _snap(_make("a", price="€ 7,50", in_stock=IN))
        changes = ChangeDetector.detect(old, new)
        self.assertEqual([d.id for d in changes.price_dropped], ["a"])
        self.assertEqual([l.id for l in changes.restocked], ["a"])

    def test_delisted_not_reported(self) -> None:
        old = _snap(_make("a"), _make("gone"))
        new = _snap(_make("a"))
        self.assertTrue(ChangeDetector.detect(old, new).is_empty())

    def test_output_independent_of_input_order(self) -> None:
        listings = [_make(x) for x in "dcab"]
        first = ChangeDetector.detect(_snap(), _snap(*listings))
        second = ChangeDetector.detect(_snap(), _snap(*reversed(listings)))
        self.assertEqual(
            [l.id for l in first.added], [l.id for l in second.added]
        )

    def test_mismatched_groups_rejected(self) -> None:
        with self.assertRaises(ValueError):
            ChangeDetector.detect(_snap(group="bol"), _snap(group="dreamland"))


class TestScenarios(unittest.TestCase):
    """End-to-end diff scenarios."""

    def test_new_listing_and_price_drop(self) -> None:
        old = _snap(_make("a", price="€10,00", in_stock=OUT))
        new = _snap(
            _make("a", price="€8,00", in_stock=OUT),
            _make("b", price="€5,00", in_stock=IN),
        )
        changes = ChangeDetector.detect(old, new)
        self.assertEqual([l.id for l in changes.added], ["b"])
        self.assertEqual(len(changes.price_dropped), 1)
        self.assertEqual(changes.price_dropped[0].id, "a")
        self.assertEqual(changes.price_dropped[0].old_price, 10.0)
        self.assertEqual(changes.price_dropped[0].new_price, 8.0)
        self.assertEqual(changes.restocked, [])

    def test_restock_with_unchanged_price(self) -> None:
        old = _snap(_make("a", in_stock=OUT))
        new = _snap(_make("a", in_stock=IN))
        changes = ChangeDetector.detect(old, new)
        self.assertEqual([l.id for l in changes.restocked], ["a"])
        self.assertEqual(changes.price_dropped, [])
        self.assertEqual(changes.added, [])


if __name__ == "__main__":
    unittest.main()
