"""Ordering, conservation and dry-run tests for the transfer adapter."""

import unittest

from capsule_ledger.identity import new_identity, vault_address
from distribution_engine.engine import SettlementValidationError
from distribution_engine.models import Payout, Settlement

from transfer_adapter.adapter import (
    AdapterError,
    funding_transfers,
    rebalance_transfers,
    settlement_to_transfers,
)
from transfer_adapter.models import TransferInstruction
from transfer_adapter.simulator import SimulationError, simulate

OWNER = new_identity(lambda n: b"\x31" * n)
B1 = new_identity(lambda n: b"\x32" * n)
B2 = new_identity(lambda n: b"\x33" * n)
PLATFORM = new_identity(lambda n: b"\x34" * n)
VAULT = vault_address(OWNER)


class TransferAdapterTests(unittest.TestCase):
    def _settlement(self) -> Settlement:
        return Settlement(
            gross_amount=10,
            fee_amount=1,
            net_amount=9,
            payouts=(Payout(recipient=B1, amount=2), Payout(recipient=B2, amount=7)),
        )

    def test_settlement_transfers_are_ordered(self) -> None:
        transfers = settlement_to_transfers(VAULT, self._settlement(), PLATFORM)

        self.assertEqual([item.sequence for item in transfers], [1, 2, 3])
        self.assertEqual(
            [(item.destination, item.amount) for item in transfers],
            [(PLATFORM, 1), (B1, 2), (B2, 7)],
        )
        self.assertTrue(all(item.source == VAULT for item in transfers))
        self.assertEqual(transfers, settlement_to_transfers(VAULT, self._settlement(), PLATFORM))

    def test_fee_without_recipient_fails(self) -> None:
        with self.assertRaises(AdapterError):
            settlement_to_transfers(VAULT, self._settlement())

    def test_inconsistent_settlement_fails(self) -> None:
        broken = Settlement(
            gross_amount=10,
            fee_amount=0,
            net_amount=10,
            payouts=(Payout(recipient=B1, amount=9),),
        )
        with self.assertRaises(SettlementValidationError):
            settlement_to_transfers(VAULT, broken)

    def test_funding_transfers(self) -> None:
        transfers = funding_transfers(OWNER, VAULT, 10, PLATFORM, creation_fee=5)
        self.assertEqual(
            [(item.destination, item.amount, item.memo) for item in transfers],
            [(VAULT, 10, "vault funding"), (PLATFORM, 5, "creation fee")],
        )
        self.assertEqual(funding_transfers(OWNER, VAULT, 0), ())
        with self.assertRaises(AdapterError):
            funding_transfers(OWNER, VAULT, 10, None, creation_fee=5)


    def test_owner_paid_creation_fee_is_skipped(self) -> None:
        transfers = funding_transfers(OWNER, VAULT, 10, OWNER, creation_fee=5)
        self.assertEqual([(item.destination, item.amount) for item in transfers], [(VAULT, 10)])
        self.assertTrue(simulate(transfers, {OWNER: 10}).success)

    def test_rebalance_transfers(self) -> None:
        top_up = rebalance_transfers(OWNER, VAULT, vault_balance=4, target_amount=10)
        self.assertEqual(
            [(item.source, item.destination, item.amount) for item in top_up],
            [(OWNER, VAULT, 6)],
        )
        refund = rebalance_transfers(OWNER, VAULT, vault_balance=10, target_amount=4)
        self.assertEqual(
            [(item.source, item.destination, item.amount) for item in refund],
            [(VAULT, OWNER, 6)],
        )
        self.assertEqual(rebalance_transfers(OWNER, VAULT, 10, 10), ())
        with self.assertRaises(AdapterError):
            rebalance_transfers(OWNER, VAULT, -1, 10)


class SimulatorTests(unittest.TestCase):
    def test_simulation_tracks_balances(self) -> None:
        transfers = settlement_to_transfers(
            VAULT,
            Settlement(gross_amount=10, fee_amount=1, net_amount=9, payouts=(Payout(B1, 9),)),
            PLATFORM,
        )
        result = simulate(transfers, {VAULT: 12})

        self.assertTrue(result.success)
        self.assertEqual(result.total_moved, 10)
        self.assertEqual(result.balances, {VAULT: 2, PLATFORM: 1, B1: 9})
        self.assertEqual(result.transfer_results[-1].source_balance_after, 2)

    def test_insufficient_balance_fails(self) -> None:
        transfers = funding_transfers(OWNER, VAULT, 10)
        with self.assertRaises(SimulationError):
            simulate(transfers, {OWNER: 9})

    def test_malformed_instructions_fail(self) -> None:
        cases = {
            "gap in sequence": TransferInstruction(2, OWNER, VAULT, 1),
            "self transfer": TransferInstruction(1, OWNER, OWNER, 1),
            "zero amount": TransferInstruction(1, OWNER, VAULT, 0),
            "missing destination": TransferInstruction(1, OWNER, "", 1),
        }
        for label, instruction in cases.items():
            with self.subTest(case=label):
                with self.assertRaises(SimulationError):
                    simulate((instruction,), {OWNER: 10})

    def test_simulation_does_not_mutate_input(self) -> None:
        balances = {OWNER: 10}
        simulate(funding_transfers(OWNER, VAULT, 4), balances)
        self.assertEqual(balances, {OWNER: 10})


if __name__ == "__main__":
    unittest.main()
