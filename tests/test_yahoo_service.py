import asyncio
import unittest

import httpx

from services.cache.cache_backend import clear_local_cache
from services.yahoo_service import (
    Quote,
    YahooPriceError,
    YahooPriceService,
    parse_chart_payload,
    to_yahoo_symbol,
)


def _chart(price_series, *, currency="USD", prev_close=None, change_pct=None, name=None):
    meta = {"currency": currency}
    if prev_close is not None:
        meta["chartPreviousClose"] = prev_close
    if change_pct is not None:
        meta["regularMarketChangePercent"] = change_pct
    if name is not None:
        meta["shortName"] = name
    return {
        "chart": {
            "result": [
                {
                    "meta": meta,
                    "timestamp": [1700000000 + 60 * i for i in range(len(price_series))],
                    "indicators": {"quote": [{"close": price_series}]},
                }
            ]
        }
    }


class TestYahooSymbols(unittest.TestCase):
    def test_crypto_gets_usd_suffix(self):
        self.assertEqual(to_yahoo_symbol("btc", "crypto"), "BTC-USD")
        self.assertEqual(to_yahoo_symbol("ETH-USD", "crypto"), "ETH-USD")

    def test_stocks_pass_through(self):
        self.assertEqual(to_yahoo_symbol(" aapl ", "stock"), "AAPL")
        self.assertEqual(to_yahoo_symbol("USDINR=X", "fx"), "USDINR=X")


class TestParseChartPayload(unittest.TestCase):
    def test_latest_non_null_close_wins(self):
        q = parse_chart_payload("AAPL", _chart([10.0, 11.0, None, None], prev_close=9.5, name="Apple"))
        self.assertEqual(q.price, 11.0)
        self.assertEqual(q.timestamp, (1700000000 + 60) * 1000)
        self.assertEqual(q.previous_close, 9.5)
        self.assertEqual(q.name, "Apple")
        self.assertEqual(q.currency, "USD")

    def test_previous_close_prefers_regular_field(self):
        data = _chart([5.0], prev_close=1.0)
        data["chart"]["result"][0]["meta"]["previousClose"] = 4.0
        self.assertEqual(parse_chart_payload("X", data).previous_close, 4.0)

    def test_all_null_closes_raise(self):
        with self.assertRaises(YahooPriceError):
            parse_chart_payload("AAPL", _chart([None, None]))

    def test_missing_result_raises(self):
        with self.assertRaises(YahooPriceError):
            parse_chart_payload("AAPL", {"chart": {"result": None, "error": {"code": "Not Found"}}})
        with self.assertRaises(YahooPriceError):
            parse_chart_payload("AAPL", None)


class TestYahooPriceService(unittest.TestCase):
    def setUp(self):
        clear_local_cache()
        self.requested = []

    def tearDown(self):
        clear_local_cache()

    def _service(self, handler, **kw):
        def _record(request: httpx.Request) -> httpx.Response:
            self.requested.append(request)
            return handler(request)

        return YahooPriceService(transport=httpx.MockTransport(_record), **kw)

    def test_get_quotes_skips_failures_and_keeps_order(self):
        def handler(request):
            symbol = request.url.path.rsplit("/", 1)[-1]
            if symbol == "BROKEN":
                return httpx.Response(404, json={"chart": {"result": None}})
            if symbol == "BTC-USD":
                return httpx.Response(200, json=_chart([42000.0]))
            return httpx.Response(200, json=_chart([123.0], currency="USD"))

        svc = self._service(handler, cache_ttl_sec=0)
        quotes = asyncio.run(svc.get_quotes([("AAPL", "stock"), ("BROKEN", "stock"), ("BTC", "crypto")]))

        self.assertEqual([q.symbol for q in quotes], ["AAPL", "BTC-USD"])
        self.assertEqual(quotes[1].price, 42000.0)

    def test_get_quotes_dedupes_symbols(self):
        svc = self._service(lambda r: httpx.Response(200, json=_chart([1.0])), cache_ttl_sec=0)
        quotes = asyncio.run(svc.get_quotes([("AAPL", "stock"), ("aapl", "stock")]))
        self.assertEqual(len(quotes), 1)
        self.assertEqual(len(self.requested), 1)

    def test_get_quotes_serves_second_call_from_cache(self):
        svc = self._service(lambda r: httpx.Response(200, json=_chart([7.0])))
        first = asyncio.run(svc.get_quotes([("MSFT", "stock")]))
        second = asyncio.run(svc.get_quotes([("MSFT", "stock")]))
        self.assertEqual(first, second)
        self.assertEqual(len(self.requested), 1)
        self.assertIsInstance(second[0], Quote)

    def test_fx_quote_uses_daily_bars(self):
        svc = self._service(lambda r: httpx.Response(200, json=_chart([83.2], currency="INR")), cache_ttl_sec=0)
        q = asyncio.run(svc.get_quote("USDINR=X", "fx"))
        self.assertEqual(q.price, 83.2)
        self.assertEqual(self.requested[0].url.params["range"], "5d")
        self.assertEqual(self.requested[0].url.params["interval"], "1d")

    def test_get_quote_network_error_is_wrapped(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        svc = self._service(handler, cache_ttl_sec=0)
        with self.assertRaises(YahooPriceError):
            asyncio.run(svc.get_quote("AAPL", "stock"))

    def test_search_maps_quote_types(self):
        payload = {
            "quotes": [
                {"symbol": "AAPL", "shortname": "Apple Inc.", "quoteType": "EQUITY", "exchange": "NMS"},
                {"symbol": "BTC-USD", "shortname": "Bitcoin USD", "quoteType": "CRYPTOCURRENCY"},
                {"symbol": "VFIAX", "shortname": "Vanguard 500", "quoteType": "MUTUALFUND"},
                {"symbol": "^GSPC", "shortname": "S&P 500", "quoteType": "INDEX"},
                {"symbol": "NONAME"},
            ]
        }
        svc = self._service(lambda r: httpx.Response(200, json=payload), cache_ttl_sec=0)
        out = asyncio.run(svc.search_symbols("a"))

        self.assertEqual(
            [(s.symbol, s.type) for s in out],
            [("AAPL", "stock"), ("BTC-USD", "crypto"), ("VFIAX", "fund"), ("^GSPC", "other")],
        )
        self.assertEqual(out[0].exchange, "NMS")

    def test_search_fails_soft(self):
        svc = self._service(lambda r: httpx.Response(500, text="oops"), cache_ttl_sec=0)
        self.assertEqual(asyncio.run(svc.search_symbols("apple")), [])

        def boom(request):
            raise httpx.ReadTimeout("slow", request=request)

        svc = self._service(boom, cache_ttl_sec=0)
        self.assertEqual(asyncio.run(svc.search_symbols("apple")), [])

    def test_blank_search_makes_no_request(self):
        svc = self._service(lambda r: httpx.Response(200, json={}), cache_ttl_sec=0)
        self.assertEqual(asyncio.run(svc.search_symbols("   ")), [])
        self.assertEqual(self.requested, [])


if __name__ == "__main__":
    unittest.main()
