"""Failure paths of the operator CLI: clean exit codes, nothing written."""

import json
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from io import StringIO
from pathlib import Path

from capsule_ledger.identity import new_identity
from operator_cli.cli import main

OWNER = new_identity(lambda n: b"\x61" * n)
B1 = new_identity(lambda n: b"\x62" * n)
STRANGER = new_identity(lambda n: b"\x63" * n)
START = 1_700_000_000


class OperatorCliErrorTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.ledger = str(Path(self._tmp.name) / "ledger.json")
        self.intent_path = Path(self._tmp.name) / "intent.json"
        self.intent_path.write_text(
            json.dumps({"totalAmount": "5", "beneficiaries": [{"address": B1, "amount": "5"}]})
        )

    def _run(self, args):
        out_buf = StringIO()
        err_buf = StringIO()
        with redirect_stdout(out_buf), redirect_stderr(err_buf):
            code = main(args)
        return code, out_buf.getvalue(), err_buf.getvalue()

    def _create(self, period: str = "600"):
        return self._run(
            [
                "capsule",
                "create",
                "--ledger",
                self.ledger,
                "--now",
                str(START),
                "--signer",
                OWNER,
                "--inactivity-period",
                period,
                "--intent",
                str(self.intent_path),
            ]
        )

    def _fund_owner(self) -> None:
        code, _, err = self._run(
            ["ledger", "fund", "--ledger", self.ledger, "--address", OWNER, "--amount", "50"]
        )
        self.assertEqual(code, 0, err)

    def test_create_without_funds_fails(self) -> None:
        code, output, err = self._create()
        self.assertEqual(code, 2)
        self.assertEqual(output, "")
        self.assertTrue(err.startswith("ERROR:"))

    def test_execute_too_early_fails(self) -> None:
        self._fund_owner()
        self.assertEqual(self._create()[0], 0)

        code, _, err = self._run(
            [
                "capsule",
                "execute",
                "--ledger",
                self.ledger,
                "--now",
                str(START + 599),
                "--signer",
                STRANGER,
                "--owner",
                OWNER,
            ]
        )
        self.assertEqual(code, 2)
        self.assertIn("Inactivity period not met", err)

    def test_invalid_period_fails(self) -> None:
        self._fund_owner()
        code, _, err = self._create(period="0")
        self.assertEqual(code, 2)
        self.assertIn("Inactivity period", err)

    def test_recreate_active_capsule_fails(self) -> None:
        self._fund_owner()
        self._create()
        code, _, err = self._run(
            [
                "capsule",
                "recreate",
                "--ledger",
                self.ledger,
                "--signer",
                OWNER,
                "--inactivity-period",
                "600",
                "--intent",
                str(self.intent_path),
            ]
        )
        self.assertEqual(code, 2)
        self.assertIn("still active", err)

    def test_missing_capsule(self) -> None:
        code, _, err = self._run(["capsule", "show", "--ledger", self.ledger, "--owner", OWNER])
        self.assertEqual(code, 2)
        self.assertIn("No capsule", err)

    def test_malformed_amount(self) -> None:
        code, _, err = self._run(
            ["ledger", "fund", "--ledger", self.ledger, "--address", OWNER, "--amount", "lots"]
        )
        self.assertEqual(code, 2)
        self.assertIn("ERROR:", err)

    def test_missing_intent_file(self) -> None:
        code, _, err = self._run(
            ["plan", "preview", "--intent", str(Path(self._tmp.name) / "absent.json")]
        )
        self.assertEqual(code, 2)
        self.assertIn("ERROR:", err)


if __name__ == "__main__":
    unittest.main()
