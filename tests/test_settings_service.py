import os
import unittest

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import models  # noqa: F401
from database import Base, SessionLocal, engine
from models.portfolio import Portfolio
from models.user import User
from models.user_settings import UserSettings
from services.settings_service import (
    ensure_user_bootstrap,
    get_settings,
    normalize_platforms,
    update_base_currency,
    update_platforms,
)


class TestNormalizePlatforms(unittest.TestCase):
    def test_trims_dedupes_and_keeps_first_spelling(self):
        self.assertEqual(
            normalize_platforms([" Zerodha ", "", "zerodha", "Groww", "GROWW", "  "]),
            ["Zerodha", "Groww"],
        )

    def test_never_empty(self):
        self.assertEqual(normalize_platforms(None), ["Manual"])
        self.assertEqual(normalize_platforms(["", "   "]), ["Manual"])


class TestSettingsService(unittest.TestCase):
    def setUp(self):
        Base.metadata.drop_all(bind=engine)
        Base.metadata.create_all(bind=engine)
        self.db = SessionLocal()
        self.user = User(supabase_user_id="sub-1", email="a@example.com")
        self.db.add(self.user)
        self.db.commit()

    def tearDown(self):
        self.db.close()

    def test_bootstrap_creates_defaults_once(self):
        first = ensure_user_bootstrap(self.db, self.user.id)
        second = ensure_user_bootstrap(self.db, self.user.id)

        self.assertEqual(first.id, second.id)
        self.assertEqual(first.name, "Main")
        self.assertEqual(self.db.query(Portfolio).count(), 1)
        self.assertEqual(self.db.query(UserSettings).count(), 1)

        settings = get_settings(self.db, self.user.id)
        self.assertEqual(settings.base_currency, "USD")
        self.assertEqual(settings.platforms, ["Manual"])

    def test_bootstrap_fills_in_missing_settings_only(self):
        self.db.add(Portfolio(user_id=self.user.id, name="Long term"))
        self.db.commit()

        portfolio = ensure_user_bootstrap(self.db, self.user.id)
        self.assertEqual(portfolio.name, "Long term")
        self.assertIsNotNone(get_settings(self.db, self.user.id))

    def test_update_base_currency(self):
        settings = update_base_currency(self.db, self.user.id, " inr ")
        self.assertEqual(settings.base_currency, "INR")

        with self.assertRaises(ValueError):
            update_base_currency(self.db, self.user.id, "EUR")
        self.assertEqual(get_settings(self.db, self.user.id).base_currency, "INR")

    def test_update_platforms_from_text_or_list(self):
        settings = update_platforms(self.db, self.user.id, "Zerodha\n\n  groww \nZERODHA")
        self.assertEqual(settings.platforms, ["Zerodha", "groww"])

        settings = update_platforms(self.db, self.user.id, [])
        self.assertEqual(settings.platforms, ["Manual"])

    def test_update_platforms_rejects_long_names(self):
        with self.assertRaises(ValueError):
            update_platforms(self.db, self.user.id, ["x" * 65])


if __name__ == "__main__":
    unittest.main()
