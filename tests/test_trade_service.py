import os
import unittest
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import models  # noqa: F401
from database import Base, SessionLocal, engine
from models.user import User
from schemas.trade import TradeCreate
from services.portfolio.positions import AssetRef
from services.settings_service import ensure_user_bootstrap
from services.trade_service import (
    TradeNotFoundError,
    create_trade,
    delete_trade,
    list_trades,
    list_trades_page,
    parse_sort,
    to_trade_like,
    update_trade,
)

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _payload(symbol="AAPL", side="BUY", qty=1.0, price=10.0, days=0, **kw):
    return TradeCreate(
        occurred_at=T0 + timedelta(days=days),
        symbol=symbol,
        asset_type=kw.pop("asset_type", "stock"),
        side=side,
        quantity=qty,
        price=price,
        **kw,
    )


class TestTradeCreateValidation(unittest.TestCase):
    def test_normalizes_fields(self):
        t = TradeCreate(
            occurred_at=T0,
            symbol="  aapl ",
            asset_type="stock",
            side="buy",
            quantity=1,
            price=0,
            currency="inr",
            platform="   ",
            notes="  ",
        )
        self.assertEqual(t.symbol, "AAPL")
        self.assertEqual(t.side, "BUY")
        self.assertEqual(t.currency, "INR")
        self.assertEqual(t.platform, "Manual")
        self.assertIsNone(t.notes)
        self.assertEqual(t.fees, 0)

    def test_rejects_bad_values(self):
        bad = [
            {"quantity": 0},
            {"quantity": -1},
            {"price": -0.01},
            {"fees": -1},
            {"symbol": "   "},
            {"symbol": "X" * 33},
            {"currency": "US"},
            {"currency": "U5D"},
            {"side": "HOLD"},
            {"asset_type": "bond"},
            {"platform": "P" * 65},
        ]
        for override in bad:
            data = {
                "occurred_at": T0,
                "symbol": "AAPL",
                "asset_type": "stock",
                "side": "BUY",
                "quantity": 1,
                "price": 1,
                **override,
            }
            with self.subTest(override=override):
                with self.assertRaises(ValidationError):
                    TradeCreate(**data)


class TestTradeService(unittest.TestCase):
    def setUp(self):
        Base.metadata.drop_all(bind=engine)
        Base.metadata.create_all(bind=engine)
        self.db = SessionLocal()
        user = User(supabase_user_id="sub-1", email="a@example.com")
        self.db.add(user)
        self.db.commit()
        self.portfolio = ensure_user_bootstrap(self.db, user.id)

        other = User(supabase_user_id="sub-2", email="b@example.com")
        self.db.add(other)
        self.db.commit()
        self.other_portfolio = ensure_user_bootstrap(self.db, other.id)

    def tearDown(self):
        self.db.close()

    def test_create_and_convert_to_trade_like(self):
        row = create_trade(self.db, self.portfolio.id, _payload("btc", qty=0.5, price=40000, fees=2, asset_type="crypto"))

        self.assertEqual(len(row.id), 36)
        self.assertEqual(row.platform, "Manual")
        tl = to_trade_like(row)
        self.assertEqual(tl.asset, AssetRef(symbol="BTC", type="crypto"))
        self.assertEqual((tl.side, tl.quantity, tl.price, tl.fees, tl.currency), ("BUY", 0.5, 40000, 2, "USD"))
        self.assertEqual(tl.id, row.id)

    def test_update_and_delete_are_scoped_to_portfolio(self):
        row = create_trade(self.db, self.portfolio.id, _payload())

        with self.assertRaises(TradeNotFoundError):
            update_trade(self.db, self.other_portfolio.id, row.id, _payload(qty=9))
        with self.assertRaises(TradeNotFoundError):
            delete_trade(self.db, self.other_portfolio.id, row.id)

        updated = update_trade(self.db, self.portfolio.id, row.id, _payload(qty=9, side="SELL"))
        self.assertEqual((updated.quantity, updated.side), (9, "SELL"))

        delete_trade(self.db, self.portfolio.id, row.id)
        self.assertEqual(list_trades(self.db, self.portfolio.id), [])
        with self.assertRaises(TradeNotFoundError):
            delete_trade(self.db, self.portfolio.id, row.id)

    def test_platform_filter_treats_missing_as_manual(self):
        create_trade(self.db, self.portfolio.id, _payload("AAPL", platform="Zerodha"))
        manual = create_trade(self.db, self.portfolio.id, _payload("MSFT"))
        legacy = create_trade(self.db, self.portfolio.id, _payload("NVDA"))
        legacy.platform = None
        self.db.commit()

        zerodha = list_trades(self.db, self.portfolio.id, platform="Zerodha")
        self.assertEqual([t.asset_symbol for t in zerodha], ["AAPL"])

        manual_rows = list_trades(self.db, self.portfolio.id, platform="Manual")
        self.assertEqual(sorted(t.id for t in manual_rows), sorted([manual.id, legacy.id]))

        self.assertEqual(len(list_trades(self.db, self.portfolio.id)), 3)

    def test_other_portfolio_trades_are_invisible(self):
        create_trade(self.db, self.other_portfolio.id, _payload())
        self.assertEqual(list_trades(self.db, self.portfolio.id), [])
        self.assertEqual(list_trades_page(self.db, self.portfolio.id).total, 0)

    def test_page_defaults_to_newest_first(self):
        for i in range(25):
            create_trade(self.db, self.portfolio.id, _payload(f"S{i:02d}", days=i))

        first = list_trades_page(self.db, self.portfolio.id)
        self.assertEqual(first.total, 25)
        self.assertEqual(first.total_pages, 2)
        self.assertEqual(first.sort, "date:desc")
        self.assertEqual(len(first.items), 20)
        self.assertEqual(first.items[0].asset_symbol, "S24")

        second = list_trades_page(self.db, self.portfolio.id, page=2)
        self.assertEqual([t.asset_symbol for t in second.items], ["S04", "S03", "S02", "S01", "S00"])

    def test_search_and_sort(self):
        create_trade(self.db, self.portfolio.id, _payload("AAPL", qty=3, price=5))
        create_trade(self.db, self.portfolio.id, _payload("PAA", qty=1, price=50))
        create_trade(self.db, self.portfolio.id, _payload("MSFT", qty=2, price=500))

        page = list_trades_page(self.db, self.portfolio.id, search=" aa ", sort="qty:asc")
        self.assertEqual([t.asset_symbol for t in page.items], ["PAA", "AAPL"])
        self.assertEqual(page.search, "aa")

        page = list_trades_page(self.db, self.portfolio.id, sort="price:desc")
        self.assertEqual([t.asset_symbol for t in page.items], ["MSFT", "PAA", "AAPL"])

        page = list_trades_page(self.db, self.portfolio.id, sort="asset:asc")
        self.assertEqual([t.asset_symbol for t in page.items], ["AAPL", "MSFT", "PAA"])

    def test_search_matches_wildcard_characters_literally(self):
        create_trade(self.db, self.portfolio.id, _payload("AAPL"))
        create_trade(self.db, self.portfolio.id, _payload("BRK_B"))

        page = list_trades_page(self.db, self.portfolio.id, search="_")
        self.assertEqual([t.asset_symbol for t in page.items], ["BRK_B"])

        self.assertEqual(list_trades_page(self.db, self.portfolio.id, search="%").total, 0)
        self.assertEqual(list_trades_page(self.db, self.portfolio.id, search="K_b").total, 1)

    def test_empty_page_still_reports_one_page(self):
        page = list_trades_page(self.db, self.portfolio.id, page=3)
        self.assertEqual((page.total, page.total_pages, page.items), (0, 1, []))

    def test_parse_sort(self):
        self.assertEqual(parse_sort(None), ("date", "desc"))
        self.assertEqual(parse_sort("asset:asc"), ("asset", "asc"))
        self.assertEqual(parse_sort("bogus:asc"), ("date", "asc"))
        self.assertEqual(parse_sort("qty:sideways"), ("qty", "desc"))


if __name__ == "__main__":
    unittest.main()
