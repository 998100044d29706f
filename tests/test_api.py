"""
tests/test_api.py
End-to-end tests of the HTTP surface.
"""

import pytest

from database import get_settings
from tests.conftest import ADMIN, DESTINATION, ETHER, FIRST, SECOND


def _as(caller):
    return {"X-Caller": caller}


def _advance(client, ticks):
    response = client.post("/api/clock/advance", json={"ticks": ticks})
    assert response.status_code == 200
    return response.json()["tick"]


def _create_round(client, offsets=(1, 2, 3, 4), commission=5):
    betting, outcome, claim, close = offsets
    response = client.post(
        "/api/rounds",
        json={
            "commission_percent": commission,
            "betting_offset": betting,
            "outcome_offset": outcome,
            "claim_offset": claim,
            "close_offset": close,
        },
        headers=_as(ADMIN),
    )
    assert response.status_code == 200, response.text
    return response.json()


class TestHealth:
    def test_root(self, client):
        assert client.get("/health").json() == {"status": "healthy"}


class TestRoundLifecycle:
    def test_full_cycle(self, client):
        round_data = _create_round(client)
        round_id = round_data["id"]
        assert round_data["phase"] == "BETTING"
        assert round_data["outcome"] is None

        response = client.post(
            f"/api/rounds/{round_id}/stake",
            json={"prediction": "0x41", "amount": ETHER},
            headers=_as(FIRST),
        )
        assert response.status_code == 200
        assert response.json()["amount"] == ETHER

        response = client.post(
            f"/api/rounds/{round_id}/stake",
            json={"prediction": "0x42", "amount": ETHER // 2},
            headers=_as(SECOND),
        )
        assert response.status_code == 200

        _advance(client, 2)
        response = client.post(
            f"/api/rounds/{round_id}/outcome", json={"outcome": "0x42"}, headers=_as(ADMIN)
        )
        assert response.status_code == 200
        # floor(1.5 * 95 / 1.0)
        assert response.json()["payout_rate_per_hundred"] == 142

        _advance(client, 1)
        response = client.post(f"/api/rounds/{round_id}/claim", headers=_as(SECOND))
        assert response.status_code == 200
        assert response.json()["amount"] == 142 * (ETHER // 2) // 100

        response = client.post(f"/api/rounds/{round_id}/claim", headers=_as(SECOND))
        assert response.status_code == 400

        _advance(client, 1)
        response = client.post(
            f"/api/rounds/{round_id}/close", json={"destination": DESTINATION}, headers=_as(ADMIN)
        )
        assert response.status_code == 200

        account = client.get(f"/api/accounts/{DESTINATION}").json()
        assert account["balance"] == ETHER + ETHER // 2 - 142 * (ETHER // 2) // 100

        events = client.get(f"/api/rounds/{round_id}/events").json()
        assert [e["event_type"] for e in events] == [
            "STAKE_RECORDED",
            "STAKE_RECORDED",
            "OUTCOME_PUBLISHED",
            "PRIZE_CLAIMED",
            "ROUND_CLOSED",
        ]

        later = client.get(f"/api/rounds/{round_id}/events", params={"after": events[2]["id"]}).json()
        assert [e["event_type"] for e in later] == ["PRIZE_CLAIMED", "ROUND_CLOSED"]

    def test_stake_queries_and_history(self, client):
        round_id = _create_round(client, offsets=(3, 4, 5, 6))["id"]
        client.post(
            f"/api/rounds/{round_id}/stake", json={"prediction": "A", "amount": 10}, headers=_as(FIRST)
        )
        client.post(f"/api/rounds/{round_id}/stake/increase", json={"amount": 5}, headers=_as(FIRST))
        client.post(f"/api/rounds/{round_id}/stake/prediction", json={"prediction": "B"}, headers=_as(FIRST))
        response = client.post(
            f"/api/rounds/{round_id}/stake/decrease", json={"amount": 15}, headers=_as(FIRST)
        )
        assert response.json() == {"participant": FIRST, "amount": 0, "prediction": None}

        stake = client.get(f"/api/rounds/{round_id}/stakes/{FIRST}").json()
        assert stake["amount"] == 0 and stake["prediction"] is None

        support = client.get(f"/api/rounds/{round_id}/support/B").json()
        assert support["support"] == 0

        history = client.get(f"/api/rounds/{round_id}/history/{FIRST}").json()
        assert [e["event_type"] for e in history["entries"]] == [
            "STAKE_RECORDED",
            "STAKE_RECORDED",
            "STAKE_RECORDED",
            "STAKE_CANCELLED",
        ]
        assert client.get(f"/api/accounts/{FIRST}").json()["balance"] == 15

    def test_error_mapping(self, client):
        round_id = _create_round(client)["id"]

        response = client.post(
            f"/api/rounds/{round_id}/stake", json={"prediction": "0x0", "amount": 1}, headers=_as(FIRST)
        )
        assert response.status_code == 400

        _advance(client, 2)
        response = client.post(
            f"/api/rounds/{round_id}/outcome", json={"outcome": "0x42"}, headers=_as(FIRST)
        )
        assert response.status_code == 403

        response = client.get("/api/rounds/00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404

    def test_invalid_commission(self, client):
        response = client.post(
            "/api/rounds",
            json={
                "commission_percent": 101,
                "betting_offset": 1,
                "outcome_offset": 2,
                "claim_offset": 3,
                "close_offset": 4,
            },
            headers=_as(ADMIN),
        )
        assert response.status_code == 400

    def test_missing_caller(self, client):
        response = client.post(
            "/api/rounds",
            json={
                "commission_percent": 5,
                "betting_offset": 1,
                "outcome_offset": 2,
                "claim_offset": 3,
                "close_offset": 4,
            },
        )
        assert response.status_code == 422


class TestRegistryApi:
    def test_create_and_forward(self, client):
        registry = client.post("/api/registries", headers=_as(ADMIN)).json()
        registry_id = registry["id"]

        payload = {
            "identifier": "final",
            "commission_percent": 5,
            "betting_offset": 1,
            "outcome_offset": 2,
            "claim_offset": 3,
            "close_offset": 4,
        }
        response = client.post(f"/api/registries/{registry_id}/rounds", json=payload, headers=_as(ADMIN))
        assert response.status_code == 200
        round_data = response.json()
        assert round_data["administrator"] == registry["address"]

        response = client.post(f"/api/registries/{registry_id}/rounds", json=payload, headers=_as(ADMIN))
        assert response.status_code == 400

        entry = client.get(f"/api/registries/{registry_id}/rounds/final").json()
        assert entry["round_id"] == round_data["id"]
        assert client.get(f"/api/registries/{registry_id}/rounds/missing").status_code == 404

        client.post(
            f"/api/rounds/{round_data['id']}/stake", json={"prediction": "0x41", "amount": 100}, headers=_as(FIRST)
        )
        _advance(client, 2)

        response = client.post(
            f"/api/registries/{registry_id}/rounds/final/outcome", json={"outcome": "0x42"}, headers=_as(FIRST)
        )
        assert response.status_code == 403
        response = client.post(
            f"/api/rounds/{round_data['id']}/outcome", json={"outcome": "0x42"}, headers=_as(ADMIN)
        )
        assert response.status_code == 403

        response = client.post(
            f"/api/registries/{registry_id}/rounds/final/outcome", json={"outcome": "0x42"}, headers=_as(ADMIN)
        )
        assert response.status_code == 200
        assert response.json()["payout_rate_per_hundred"] == 95

        response = client.post(
            f"/api/registries/{registry_id}/rounds/missing/outcome", json={"outcome": "0x42"}, headers=_as(ADMIN)
        )
        assert response.status_code == 404

        _advance(client, 2)
        response = client.post(
            f"/api/registries/{registry_id}/rounds/final/close",
            json={"destination": DESTINATION},
            headers=_as(ADMIN),
        )
        assert response.status_code == 200
        assert client.get(f"/api/accounts/{DESTINATION}").json()["balance"] == 100


class TestTicksPerCall:
    @pytest.fixture
    def one_tick_per_call(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "ticks_per_call", 1)

    def test_each_confirmed_call_advances_clock(self, client, one_tick_per_call):
        round_id = _create_round(client, offsets=(2, 3, 4, 5))["id"]
        assert client.get("/api/clock").json()["tick"] == 1

        client.post(
            f"/api/rounds/{round_id}/stake", json={"prediction": "0x41", "amount": 1}, headers=_as(FIRST)
        )
        assert client.get("/api/clock").json()["tick"] == 2

        # rejected calls do not advance time
        client.post(
            f"/api/rounds/{round_id}/stake", json={"prediction": "0x41", "amount": 1}, headers=_as(FIRST)
        )
        assert client.get("/api/clock").json()["tick"] == 2

        # still betting on the deadline tick itself
        client.post(
            f"/api/rounds/{round_id}/stake", json={"prediction": "0x42", "amount": 1}, headers=_as(SECOND)
        )
        assert client.get("/api/clock").json()["tick"] == 3

        # tick 3 is past the betting deadline
        response = client.post(
            f"/api/rounds/{round_id}/stake", json={"prediction": "0x42", "amount": 1}, headers=_as(DESTINATION)
        )
        assert response.status_code == 400


class TestLargeAmounts:
    def test_ten_ether_pool(self, client):
        round_id = _create_round(client)["id"]

        for caller, prediction in ((FIRST, "0x41"), (SECOND, "0x42")):
            response = client.post(
                f"/api/rounds/{round_id}/stake",
                json={"prediction": prediction, "amount": 5 * ETHER},
                headers=_as(caller),
            )
            assert response.status_code == 200, response.text
            assert response.json()["amount"] == 5 * ETHER

        round_data = client.get(f"/api/rounds/{round_id}").json()
        assert round_data["total_escrowed"] == 10 * ETHER
        assert round_data["balance"] == 10 * ETHER

        _advance(client, 2)
        response = client.post(
            f"/api/rounds/{round_id}/outcome", json={"outcome": "0x42"}, headers=_as(ADMIN)
        )
        assert response.status_code == 200
        assert response.json()["payout_rate_per_hundred"] == 190

    def test_amount_above_maximum_is_rejected(self, client):
        round_id = _create_round(client)["id"]
        response = client.post(
            f"/api/rounds/{round_id}/stake",
            json={"prediction": "0x41", "amount": 2 ** 256},
            headers=_as(FIRST),
        )
        assert response.status_code == 400
