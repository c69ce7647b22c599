"""
Tests for the FastAPI endpoints
Run with: pytest tests/test_api.py -v
"""

import pytest
from fastapi.testclient import TestClient

from betsmart.main import app
from betsmart.services.prediction_service import PredictionService, get_prediction_service
from betsmart.services.prediction_store import InMemoryPredictionStore

ADMIN = {"X-API-Key": "test-admin-key"}
USER = {"X-API-Key": "test-user-key"}

MATCH = {
    "match_id": "nba-2026-10-18-bos-nyk",
    "league": "NBA",
    "home_team": {"name": "Boston", "record": "48-20", "recent_form": ["W", "W", "L", "W", "W"]},
    "away_team": {"name": "New York", "record": "39-29", "recent_form": ["L", "W", "L", "L", "W"]},
    "odds": {"home_win": 1.62, "away_win": 2.45},
    "historical": {"games_played": 6, "home_wins": 4, "away_wins": 2},
}


@pytest.fixture
def client():
    service = PredictionService(InMemoryPredictionStore())
    app.dependency_overrides[get_prediction_service] = lambda: service
    # Lifespan (scheduler, table creation) is not started without a `with` block
    yield TestClient(app)
    app.dependency_overrides.clear()
    service.close()


class TestPublic:

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "operational"


class TestAuth:

    def test_missing_key(self, client):
        response = client.post("/api/predictions/generate", json=MATCH)
        assert response.status_code == 401

    def test_wrong_key(self, client):
        response = client.post("/api/predictions/generate", json=MATCH, headers={"X-API-Key": "nope"})
        assert response.status_code == 401

    def test_admin_only_routes(self, client):
        assert client.get("/admin/cache/stats", headers=USER).status_code == 403
        assert client.get("/admin/cache/stats", headers=ADMIN).status_code == 200


class TestPredictions:

    def test_generate(self, client):
        response = client.post("/api/predictions/generate", json=MATCH, headers=USER)

        assert response.status_code == 200
        body = response.json()
        assert body["recommended"] in ("home", "away")
        assert set(body["projected_score"]) == {"home", "away"}
        assert body["odds_source"] == "match_record"

    def test_generate_is_locked(self, client):
        first = client.post("/api/predictions/generate", json=MATCH, headers=USER).json()
        changed = {**MATCH, "odds": {"home_win": 2.9, "away_win": 1.4}}
        second = client.post("/api/predictions/generate", json=changed, headers=USER).json()
        regenerated = client.post("/api/predictions/regenerate", json=changed, headers=USER).json()

        assert second == first
        assert regenerated == first

    def test_get_locked_prediction(self, client):
        client.post("/api/predictions/generate", json=MATCH, headers=USER)
        response = client.get(f"/api/predictions/{MATCH['match_id']}", headers=USER)

        assert response.status_code == 200
        assert response.json()["match_id"] == MATCH["match_id"]

    def test_unknown_prediction_is_404(self, client):
        response = client.get("/api/predictions/never-generated", headers=USER)
        assert response.status_code == 404

    def test_batch(self, client):
        second = {**MATCH, "match_id": "nba-2026-10-18-lal-gsw"}
        response = client.post(
            "/api/predictions/batch", json={"matches": [MATCH, second]}, headers=USER
        )

        assert response.status_code == 200
        assert [p["match_id"] for p in response.json()] == [MATCH["match_id"], second["match_id"]]

    def test_invalid_odds_is_422(self, client):
        bad = {**MATCH, "odds": {"home_win": 0.8, "away_win": 2.1}}
        response = client.post("/api/predictions/generate", json=bad, headers=USER)

        assert response.status_code == 422
        assert "invalid odds" in response.json()["detail"]

    def test_invalid_form_is_422(self, client):
        bad = {**MATCH, "home_team": {"name": "Boston", "recent_form": ["W", "X"]}}
        response = client.post("/api/predictions/generate", json=bad, headers=USER)
        assert response.status_code == 422


class TestBettingMath:

    def test_expected_value(self, client):
        response = client.post(
            "/api/betting/expected-value",
            json={"true_probability": 0.55, "bookmaker_odds": 2.0},
            headers=USER,
        )
        body = response.json()

        assert response.status_code == 200
        assert body["ev_percentage"] == pytest.approx(10.0)
        assert body["is_positive_ev"] is True
        assert body["implied_probability"] == pytest.approx(0.5)

    def test_expected_value_rejects_bad_odds(self, client):
        response = client.post(
            "/api/betting/expected-value",
            json={"true_probability": 0.55, "bookmaker_odds": 1.0},
            headers=USER,
        )
        assert response.status_code == 422

    def test_kelly(self, client):
        response = client.post(
            "/api/betting/kelly",
            json={"true_probability": 0.55, "bookmaker_odds": 2.0, "bankroll": 1000},
            headers=USER,
        )
        body = response.json()

        assert body["recommended_stake"] == pytest.approx(25.0)
        assert body["recommended_stake_percentage"] <= 5.0

    def test_kelly_simulation(self, client):
        payload = {
            "config": {"true_probability": 0.55, "bookmaker_odds": 2.0, "bankroll": 1000},
            "num_bets": 100,
            "num_simulations": 20,
            "seed": 42,
        }
        first = client.post("/api/betting/kelly/simulate", json=payload, headers=USER).json()
        second = client.post("/api/betting/kelly/simulate", json=payload, headers=USER).json()

        assert first == second
        assert first["num_bets"] == 100


class TestCLVEndpoints:

    def test_clv(self, client):
        response = client.post(
            "/api/clv", json={"predicted_odds": 2.2, "closing_odds": 1.9}, headers=USER
        )
        body = response.json()

        assert body["beat_closing_line"] is True
        assert body["clv_percentage"] > 0

    def test_line_movement(self, client):
        payload = {
            "observations": [
                {"timestamp": "2026-10-18T12:00:00Z", "odds": 2.0, "source": "book_a"},
                {"timestamp": "2026-10-18T12:12:00Z", "odds": 1.8, "source": "book_a"},
            ]
        }
        body = client.post("/api/clv/line-movement", json=payload, headers=USER).json()

        assert body["movement_direction"] == "down"
        assert body["sharp_money_indicator"] is True

    def test_line_movement_needs_observations(self, client):
        response = client.post("/api/clv/line-movement", json={"observations": []}, headers=USER)
        assert response.status_code == 422

    def test_aggregate_without_bets(self, client):
        body = client.post("/api/clv/aggregate", json={"bets": []}, headers=USER).json()
        assert body["average_clv"] == 0
        assert body["bets"] == 0

    def test_should_bet(self, client):
        body = client.post(
            "/api/clv/should-bet",
            json={"predicted_odds": 2.0, "current_odds": 2.2},
            headers=USER,
        ).json()
        assert body["should_bet"] is True


class TestAdmin:

    def test_cache_stats_and_clear(self, client):
        client.post("/api/predictions/generate", json=MATCH, headers=USER)

        stats = client.get("/admin/cache/stats", headers=ADMIN).json()
        assert stats["size"] == 1
        assert stats["computed"] == 1

        cleared = client.post("/admin/cache/clear", headers=ADMIN).json()
        assert cleared["entries_cleared"] == 1

    def test_scheduler_status(self, client):
        body = client.get("/admin/scheduler/status", headers=ADMIN).json()

        assert body["running"] is False
        assert body["jobs"] == []
