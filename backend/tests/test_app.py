"""
API tests for the MoneyVerse backend.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import app
from api import routes as api_routes
from config.settings import get_settings
from services.content import FALLBACK_ADVICE, FALLBACK_NEWS, ContentService
from services.coordinator import GameCoordinator
from services.market_data import MarketFeed, PaperMarketData
from services.state_store import StateStore
from storage.database import Base

client = TestClient(app)


@pytest.fixture
def paper():
    provider = PaperMarketData()
    provider.set_price("BTC", 100.0)
    return provider


@pytest.fixture(autouse=True)
def coordinator(monkeypatch, paper):
    """Serve requests from a coordinator backed by an in-memory database."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    instance = GameCoordinator(
        store=StateStore(sessionmaker(bind=engine)),
        market=MarketFeed(paper, ["bitcoin", "ethereum"]),
        content=ContentService(),
    )
    instance.load()
    instance.refresh_market()
    monkeypatch.setattr(api_routes, "_coordinator_instance", instance)
    yield instance


def test_root():
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "MoneyVerse API"}


def test_status():
    response = client.get("/status")
    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "MoneyVerse Backend"
    assert data["checks"]["market_data"]["asset_count"] == 2
    assert data["checks"]["state_writes"]["status"] == "ok"


def test_request_id_header():
    response = client.get("/profile", headers={"X-Request-ID": "abc123"})
    assert response.headers["X-Request-ID"] == "abc123"


# Profile

def test_get_profile():
    data = client.get("/profile").json()
    assert data["xp"] == 120
    assert data["level"] == 1
    assert data["currency_symbol"] == "$"
    assert data["unlocked_badges"] == ["1"]
    assert "Food" in data["categories"]


def test_update_profile():
    response = client.patch("/profile", json={"name": "Sam", "currency": "EUR", "theme": "light"})
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Sam"
    assert data["currency_symbol"] == "€"


def test_update_profile_validation():
    assert client.patch("/profile", json={"theme": "neon"}).status_code == 422
    assert client.patch("/profile", json={"currency": "XYZ"}).status_code == 400


def test_login_and_badges():
    first = client.post("/profile/login").json()
    second = client.post("/profile/login").json()
    assert first["recorded"] is True
    assert first["streak"] == 1
    assert second["recorded"] is False

    badges = {b["id"]: b for b in client.get("/badges").json()["badges"]}
    assert badges["1"]["unlocked"] is True
    assert badges["6"]["unlocked"] is False


def test_add_category():
    response = client.post("/profile/categories", json={"name": "Gaming"})
    assert response.json()["added"] is True
    assert "Gaming" in response.json()["categories"]


# Ledger

def test_transaction_lifecycle():
    response = client.post(
        "/transactions",
        json={"amount": 50, "description": "Allowance", "category": "Allowance", "type": "INCOME"},
    )
    assert response.status_code == 201
    tx_id = response.json()["id"]

    listing = client.get("/transactions").json()
    assert listing["wallet_balance"] == 50
    assert listing["transactions"][0]["id"] == tx_id

    edited = client.put(f"/transactions/{tx_id}", json={"amount": 20, "type": "EXPENSE"})
    assert edited.status_code == 200
    assert client.get("/transactions").json()["wallet_balance"] == -20

    assert client.delete(f"/transactions/{tx_id}").status_code == 200
    assert client.get("/transactions").json()["transactions"] == []


def test_transaction_validation():
    bad = client.post("/transactions", json={"amount": 0, "type": "INCOME"})
    assert bad.status_code == 422
    assert client.delete("/transactions/missing").status_code == 404
    assert client.put("/transactions/missing", json={"amount": 5}).status_code == 404


# Quests

def test_quests_listing():
    data = client.get("/quests").json()
    assert [q["id"] for q in data["quests"]] == ["1", "2", "3"]
    invest = next(q for q in data["quests"] if q["id"] == "2")
    assert invest["action_path"] == "invest"


def test_learning_quest_needs_quiz():
    assert client.post("/quests/1/complete").status_code == 409


def test_complete_finance_quest():
    data = client.post("/quests/3/complete").json()
    assert [q["id"] for q in data["unlocked"]] == ["11"]
    assert data["xp"] == 220


def test_locked_quest_is_404():
    assert client.post("/quests/15/complete").status_code == 404


def test_offline_lesson_and_quiz():
    lesson = client.get("/quests/1/lesson").json()
    assert lesson["topic"] == "Budgeting 101"
    assert lesson["quiz"] == []
    response = client.post("/quests/1/quiz", json={"answers": [0, 0, 0]})
    assert response.status_code == 404
    assert client.post("/quests/1/quiz", json={"answers": []}).status_code == 422


# Trading

def test_buy_with_bracket_and_trigger(paper):
    response = client.post(
        "/trades/buy",
        json={"symbol": "btc", "quantity": 10, "stop_loss": 90, "take_profit": 95},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["simulated_cash"] == 9000
    assert [o["type"] for o in data["orders_created"]] == ["STOP_LOSS"]
    assert data["orders_skipped"][0]["target_price"] == 95

    assert len(client.get("/orders").json()["orders"]) == 1

    paper.set_price("BTC", 85.0)
    refresh = client.post("/market/refresh").json()
    assert refresh["ok"] is True
    assert refresh["outcomes"][0]["status"] == "EXECUTED"
    assert client.get("/profile").json()["simulated_cash"] == 9850
    assert client.get("/orders").json()["orders"] == []


def test_trade_errors():
    assert client.post("/trades/buy", json={"symbol": "XYZ", "quantity": 1}).status_code == 404
    assert client.post("/trades/buy", json={"symbol": "BTC", "quantity": 1000}).status_code == 400
    assert client.post("/trades/sell", json={"symbol": "BTC", "quantity": 1}).status_code == 400
    assert client.post("/trades/buy", json={"symbol": "BTC", "quantity": 0}).status_code == 422


def test_portfolio_and_sell():
    client.post("/trades/buy", json={"symbol": "BTC", "quantity": 2})
    portfolio = client.get("/portfolio").json()
    assert portfolio["positions"][0]["symbol"] == "BTC"
    assert portfolio["net_worth"] == 10000

    sold = client.post("/trades/sell", json={"symbol": "BTC", "quantity": 2}).json()
    assert sold["position"] is None
    assert client.get("/portfolio").json()["positions"] == []


def test_cancel_order():
    data = client.post("/trades/buy", json={"symbol": "BTC", "quantity": 1, "stop_loss": 50}).json()
    order_id = data["orders_created"][0]["id"]
    assert client.delete(f"/orders/{order_id}").status_code == 200
    assert client.delete(f"/orders/{order_id}").status_code == 404


def test_market_assets(coordinator):
    data = client.get("/market/assets").json()
    assert {a["symbol"] for a in data["assets"]} == {"BTC", "ETH"}
    assert data["last_error"] is None


# Goals

def test_goal_flow():
    created = client.post("/goals", json={"title": "Bike", "target_amount": 500, "emoji": "🚲"})
    assert created.status_code == 201
    goal_id = created.json()["id"]

    deposit = client.post(f"/goals/{goal_id}/deposit", json={"amount": 500}).json()
    assert deposit["just_completed"] is True
    assert deposit["transaction"]["category"] == "Savings"

    goals = client.get("/goals").json()
    assert goals["total_saved"] == 500
    assert goals["goals"][0]["completed"] is True

    profile = client.get("/profile").json()
    assert "5" in profile["unlocked_badges"]
    assert profile["wallet_balance"] == -500

    assert client.delete(f"/goals/{goal_id}").status_code == 200
    assert client.post(f"/goals/{goal_id}/deposit", json={"amount": 5}).status_code == 404


# Content, activity & reset

def test_offline_content():
    assert client.get("/advice").json()["advice"] == FALLBACK_ADVICE
    assert len(client.get("/news").json()["items"]) == len(FALLBACK_NEWS)


def test_activity_feed():
    client.post("/quests/3/complete")
    body = client.get("/activity", params={"event_type": "quest_completed", "limit": 1}).json()
    events = body["events"]
    assert len(events) == 1
    assert body["total"] == 1
    assert events[0]["details"]["quest_id"] == "3"
    assert client.get("/activity", params={"event_type": "bogus"}).status_code == 400


def test_reset():
    client.post("/transactions", json={"amount": 5, "type": "EXPENSE"})
    data = client.post("/reset").json()
    assert data["reset"] is True
    assert data["profile"]["xp"] == 120
    assert client.get("/transactions").json()["transactions"] == []


# Auth

def test_api_key_auth(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "api_auth_key", "secret")
    assert client.get("/profile").status_code == 401
    assert client.get("/profile", headers={"X-API-Key": "wrong"}).status_code == 401
    assert client.get("/profile", headers={"X-API-Key": "secret"}).status_code == 200
    assert client.get("/profile", headers={"Authorization": "Bearer secret"}).status_code == 200
    assert client.get("/status").status_code == 200
