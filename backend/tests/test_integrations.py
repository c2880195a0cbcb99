"""
Tests for the CoinGecko and Gemini clients, the market feed cache and the
content fallbacks. HTTP is served by httpx.MockTransport.
"""

import json

import httpx
import pytest

from engine.models import Transaction, TransactionType
from integrations.coingecko import CoinGeckoMarketData
from integrations.gemini import GeminiContentClient
from services.content import (
    EMPTY_ADVICE,
    FALLBACK_ADVICE,
    FALLBACK_LESSON,
    FALLBACK_NEWS,
    ContentService,
    Lesson,
    QuizQuestion,
    grade_quiz,
)
from services.errors import ProviderUnavailableError
from services.market_data import MarketFeed, PaperMarketData


COINS = [
    {
        "id": "bitcoin",
        "symbol": "btc",
        "name": "Bitcoin",
        "current_price": 64000.5,
        "price_change_percentage_24h": -1.25,
        "image": "https://example.test/btc.png",
    },
    {"id": "ethereum", "symbol": "eth", "name": "Ethereum", "current_price": 3100, "price_change_percentage_24h": None},
    {"id": "broken", "symbol": "brk", "name": "Broken", "current_price": None},
]


def _coingecko(handler) -> CoinGeckoMarketData:
    client = httpx.Client(base_url="https://cg.test/api/v3", transport=httpx.MockTransport(handler))
    return CoinGeckoMarketData(client=client)


def _gemini(handler) -> GeminiContentClient:
    client = httpx.Client(base_url="https://gemini.test/v1beta", transport=httpx.MockTransport(handler))
    return GeminiContentClient(api_key="test-key", model="gemini-test", client=client)


def _gemini_reply(text: str) -> httpx.Response:
    return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})


# CoinGecko

def test_coingecko_parses_markets():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=COINS)

    assets = _coingecko(handler).fetch_assets("USD", ["bitcoin", "ethereum", "broken"])

    assert seen["path"] == "/api/v3/coins/markets"
    assert seen["params"]["vs_currency"] == "usd"
    assert seen["params"]["ids"] == "bitcoin,ethereum,broken"
    assert [a.symbol for a in assets] == ["BTC", "ETH"]
    assert assets[0].price == 64000.5
    assert assets[0].change_24h == -1.25
    assert assets[1].change_24h == 0.0


def test_coingecko_sends_api_key():
    provider = CoinGeckoMarketData(base_url="https://cg.test/api/v3", api_key="demo")
    try:
        assert provider.client.headers["x-cg-demo-api-key"] == "demo"
    finally:
        provider.close()


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(429, json={"error": "slow down"}),
        httpx.Response(500, text="oops"),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"status": "unexpected"}),
    ],
)
def test_coingecko_failures(response):
    with pytest.raises(ProviderUnavailableError):
        _coingecko(lambda request: response).fetch_assets("USD", ["bitcoin"])


def test_coingecko_network_error():
    def handler(request):
        raise httpx.ConnectError("no route", request=request)

    with pytest.raises(ProviderUnavailableError):
        _coingecko(handler).fetch_assets("USD", ["bitcoin"])


# Market feed

def test_market_feed_keeps_cache_on_failure():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(200, json=COINS[:1])
        return httpx.Response(503, text="down")

    feed = MarketFeed(_coingecko(handler), ["bitcoin"])
    feed.fetch("USD")
    assert feed.prices() == {"BTC": 64000.5}
    assert feed.status()["last_error"] is None

    with pytest.raises(ProviderUnavailableError):
        feed.fetch("USD")
    assert feed.prices() == {"BTC": 64000.5}
    assert "503" in feed.status()["last_error"]
    assert feed.get_asset("btc").name == "Bitcoin"


def test_paper_market_pinned_prices():
    paper = PaperMarketData()
    paper.set_price("BTC", 123.0)
    assets = {a.symbol: a for a in paper.fetch_assets("USD", ["bitcoin", "ethereum"])}
    assert assets["BTC"].price == 123.0
    assert assets["ETH"].price == 3200.0
    with pytest.raises(ValueError):
        paper.set_price("BTC", 0)


def test_paper_market_drift_stays_in_band():
    paper = PaperMarketData(volatility_pct=5.0)
    price = paper.fetch_assets("USD", ["solana"])[0].price
    assert 150.0 * 0.95 <= price <= 150.0 * 1.05


# Gemini

def test_gemini_advice_request_shape():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["key"] = request.headers.get("x-goog-api-key")
        seen["body"] = json.loads(request.content)
        return _gemini_reply("💰 Nice saving!")

    tx = Transaction("t1", 5.0, "Snack", "Food", TransactionType.EXPENSE)
    text = _gemini(handler).financial_advice([tx])

    assert text == "💰 Nice saving!"
    assert seen["path"] == "/v1beta/models/gemini-test:generateContent"
    assert seen["key"] == "test-key"
    assert "Snack" in seen["body"]["contents"][0]["parts"][0]["text"]
    assert "generationConfig" not in seen["body"]


def test_gemini_lesson_parses_quiz():
    lesson_json = {
        "content": "Budgets are like a game plan.",
        "quiz": [
            {"question": f"Q{i}", "options": ["a", "b", "c", "d"], "correctAnswerIndex": i}
            for i in range(3)
        ],
    }

    def handler(request):
        body = json.loads(request.content)
        assert body["generationConfig"]["responseMimeType"] == "application/json"
        return _gemini_reply(json.dumps(lesson_json))

    lesson = _gemini(handler).lesson("Budgeting 101")
    assert lesson.topic == "Budgeting 101"
    assert [q.correct_index for q in lesson.quiz] == [0, 1, 2]


@pytest.mark.parametrize(
    "payload",
    [
        "not json at all",
        json.dumps({"content": "x", "quiz": []}),
        json.dumps({"content": "x", "quiz": [{"question": "q", "options": ["a", "b"], "correctAnswerIndex": 0}] * 3}),
    ],
)
def test_gemini_malformed_lessons(payload):
    with pytest.raises(ProviderUnavailableError):
        _gemini(lambda request: _gemini_reply(payload)).lesson("Crypto Basics")


def test_gemini_news():
    items = [
        {"id": "a", "title": "Bitcoin hits a high", "summary": "Prices went up.", "tag": "Crypto"},
        {"summary": "no title"},
    ]
    news = _gemini(lambda request: _gemini_reply(json.dumps(items))).news()
    assert [n.title for n in news] == ["Bitcoin hits a high"]


def test_gemini_http_errors():
    client = _gemini(lambda request: httpx.Response(429, json={}))
    with pytest.raises(ProviderUnavailableError):
        client.financial_advice([])
    client = _gemini(lambda request: httpx.Response(200, json={"candidates": []}))
    with pytest.raises(ProviderUnavailableError):
        client.financial_advice([])


def test_gemini_requires_key():
    with pytest.raises(ValueError):
        GeminiContentClient(api_key="")


# Content service fallbacks

def test_content_service_offline_fallbacks():
    service = ContentService()
    assert service.advice([]) == FALLBACK_ADVICE
    assert [n.title for n in service.news()] == [n.title for n in FALLBACK_NEWS]
    lesson = service.lesson_for("1", "Budgeting 101")
    assert lesson.content == FALLBACK_LESSON
    assert lesson.quiz == []
    assert service.cached_lesson("1") is None


def test_content_service_empty_advice():
    service = ContentService(_gemini(lambda request: _gemini_reply("   ")))
    assert service.advice([]) == EMPTY_ADVICE


def test_content_service_advice_uses_recent_history():
    seen = {}

    def handler(request):
        seen["text"] = json.loads(request.content)["contents"][0]["parts"][0]["text"]
        return _gemini_reply("ok")

    transactions = [
        Transaction(f"t{i}", 1.0, f"item-{i:02d}", "Food", TransactionType.EXPENSE) for i in range(25)
    ]
    ContentService(_gemini(handler)).advice(transactions)
    assert "item-19" in seen["text"]
    assert "item-20" not in seen["text"]


def test_grade_quiz():
    lesson = Lesson("t", "c", [QuizQuestion("q", ["a", "b", "c", "d"], 2) for _ in range(3)])
    result = grade_quiz(lesson, [2, 2, 1])
    assert (result.correct, result.total, result.passed) == (2, 3, False)
    assert grade_quiz(lesson, [2, 2, 2]).passed
    with pytest.raises(ValueError):
        grade_quiz(lesson, [2])


def test_lesson_hides_answers():
    lesson = Lesson("t", "c", [QuizQuestion("q", ["a", "b", "c", "d"], 1)])
    assert "correctAnswerIndex" not in lesson.to_dict()["quiz"][0]
    assert lesson.to_dict(include_answers=True)["quiz"][0]["correctAnswerIndex"] == 1
