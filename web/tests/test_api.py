"""Smoke tests for the Intent Capsule web API."""

import unittest

try:
    from fastapi.testclient import TestClient
except ImportError:  # pragma: no cover - optional dependency
    TestClient = None

try:
    from web import app as web_app
except ImportError:  # pragma: no cover - optional dependency
    web_app = None
from capsule_ledger.clock import FixedClock
from capsule_ledger.identity import new_identity, vault_address

OWNER = new_identity(lambda n: b"\x71" * n)
B1 = new_identity(lambda n: b"\x72" * n)
B2 = new_identity(lambda n: b"\x73" * n)
PLATFORM = new_identity(lambda n: b"\x74" * n)
KEEPER = new_identity(lambda n: b"\x75" * n)
START = 1_700_000_000
PERIOD = 600
UNIT = 10**9

INTENT = {
    "intent": "split between the kids",
    "totalAmount": "10",
    "beneficiaries": [
        {"address": B1, "amount": "30", "amountType": "percentage"},
        {"address": B2, "amount": "70", "amountType": "percentage"},
    ],
}


@unittest.skipIf(TestClient is None or web_app is None, "FastAPI not available")
class WebApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FixedClock(START)
        self.machine = web_app._reset_state(clock=self.clock)
        self.machine.ledger.deposit(OWNER, 100 * UNIT)
        self.client = TestClient(web_app.app)

    def _create(self):
        response = self.client.post(
            "/api/capsules",
            json={"inactivity_period": PERIOD, "intent": INTENT},
            headers={"X-Signer": OWNER},
        )
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()

    def test_create_and_show(self) -> None:
        created = self._create()
        self.assertEqual(created["state"], "ACTIVE")
        self.assertEqual(created["vault"]["address"], vault_address(OWNER))
        self.assertEqual(created["vault_balance"], 10 * UNIT)

        shown = self.client.get(f"/api/capsules/{OWNER}").json()
        self.assertEqual(shown["capsule"]["last_activity"], START)
        self.assertEqual(shown["capsule"]["inactivity_period"], PERIOD)

    def test_full_lifecycle_with_fees(self) -> None:
        response = self.client.post(
            "/api/fees",
            json={
                "fee_recipient": PLATFORM,
                "creation_fee_fixed": 50_000_000,
                "execution_fee_bps": 300,
            },
            headers={"X-Signer": PLATFORM},
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(self.client.get("/api/fees").json()["execution_fee_bps"], 300)

        self._create()
        self.clock.advance(PERIOD)

        response = self.client.post(
            f"/api/capsules/{OWNER}/execute", json={}, headers={"X-Signer": KEEPER}
        )
        self.assertEqual(response.status_code, 200, response.text)
        result = response.json()
        self.assertEqual(result["settlement"]["fee_amount"], 300_000_000)
        self.assertEqual(
            [payout["amount"] for payout in result["settlement"]["payouts"]],
            [2_910_000_000, 6_790_000_000],
        )
        self.assertTrue(result["gate"]["passed"])

        shown = self.client.get(f"/api/capsules/{OWNER}").json()
        self.assertEqual(shown["state"], "EXECUTED")
        self.assertEqual(shown["vault_balance"], 0)

        balance = self.client.get(f"/api/balances/{PLATFORM}").json()
        self.assertEqual(balance["balance"], 50_000_000 + 300_000_000)
        self.assertEqual(self.client.get(f"/api/balances/{B1}").json()["balance"], 2_910_000_000)

        self.clock.advance(100)
        response = self.client.post(
            f"/api/capsules/{OWNER}/recreate",
            json={"inactivity_period": PERIOD * 2, "intent": INTENT},
            headers={"X-Signer": OWNER},
        )
        self.assertEqual(response.status_code, 200, response.text)
        recreated = response.json()
        self.assertEqual(recreated["state"], "ACTIVE")
        self.assertEqual(recreated["capsule"]["inactivity_period"], PERIOD * 2)
        self.assertEqual(recreated["vault_balance"], 10 * UNIT)

    def test_update_fees(self) -> None:
        self.client.post(
            "/api/fees",
            json={"fee_recipient": PLATFORM, "creation_fee_fixed": 0, "execution_fee_bps": 0},
            headers={"X-Signer": PLATFORM},
        )
        response = self.client.put(
            "/api/fees",
            json={"creation_fee_fixed": UNIT, "execution_fee_bps": 250},
            headers={"X-Signer": PLATFORM},
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["creation_fee_fixed"], UNIT)
        self.assertEqual(response.json()["fee_recipient"], PLATFORM)

    def test_activity_refreshes_timer(self) -> None:
        self._create()
        self.clock.advance(PERIOD - 1)
        response = self.client.post(f"/api/capsules/{OWNER}/activity", headers={"X-Signer": OWNER})
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["capsule"]["last_activity"], START + PERIOD - 1)

        preview = self.client.get(f"/api/capsules/{OWNER}/preview").json()
        self.assertFalse(preview["gate_met"])
        self.assertEqual(preview["seconds_remaining"], PERIOD)

    def test_update_intent(self) -> None:
        self._create()
        self.clock.advance(5)
        new_intent = {"totalAmount": "10", "beneficiaries": [{"address": B2, "amount": "10"}]}
        response = self.client.put(
            f"/api/capsules/{OWNER}/intent",
            json={"intent": new_intent},
            headers={"X-Signer": OWNER},
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["capsule"]["last_activity"], START + 5)

        preview = self.client.get(f"/api/capsules/{OWNER}/preview").json()
        self.assertEqual(
            preview["settlement"]["payouts"], [{"recipient": B2, "amount": 10 * UNIT}]
        )

    def test_deactivate_keeps_funds_in_vault(self) -> None:
        self._create()
        response = self.client.post(
            f"/api/capsules/{OWNER}/deactivate", headers={"X-Signer": OWNER}
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["state"], "DEACTIVATED")
        self.assertEqual(response.json()["vault_balance"], 10 * UNIT)

    def test_preview_is_read_only(self) -> None:
        self._create()
        self.clock.advance(PERIOD)
        preview = self.client.get(f"/api/capsules/{OWNER}/preview").json()
        self.assertTrue(preview["gate_met"])
        self.assertEqual(preview["seconds_remaining"], 0)
        self.assertEqual(preview["settlement"]["gross_amount"], 10 * UNIT)
        self.assertEqual(self.client.get(f"/api/capsules/{OWNER}").json()["state"], "ACTIVE")

    def test_plan_preview(self) -> None:
        response = self.client.post(
            "/api/plans/preview", json={"intent": INTENT, "execution_fee_bps": 1000}
        )
        self.assertEqual(response.status_code, 200, response.text)
        payload = response.json()
        self.assertEqual(payload["memo"], "split between the kids")
        self.assertEqual(payload["beneficiaries"], 2)
        self.assertEqual(payload["settlement"]["fee_amount"], UNIT)
        self.assertEqual(
            sum(item["amount"] for item in payload["settlement"]["payouts"]), 9 * UNIT
        )

    def test_events_are_recorded(self) -> None:
        self._create()
        self.client.post(f"/api/capsules/{OWNER}/activity", headers={"X-Signer": OWNER})
        events = self.client.get("/api/events").json()["events"]
        self.assertEqual(
            [event["event"] for event in events], ["CapsuleCreated", "ActivityRecorded"]
        )
        self.assertEqual(events[0]["total_amount"], 10 * UNIT)


if __name__ == "__main__":
    unittest.main()
