import io
import re
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from typing import Tuple

from solders.pubkey import Pubkey

from vestlock.cli import main
from vestlock.config import VestingConfig, load_config, save_config


class CliTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        self.config_path = self.root / "vesting-config.toml"
        save_config(VestingConfig(payer="payer.json", ledger="ledger.json"), self.config_path)

    def run_cli(self, *argv: str) -> Tuple[int, str]:
        buf = io.StringIO()
        with redirect_stdout(buf):
            code = main(["--config", str(self.config_path), *argv])
        return code, buf.getvalue()

    def localnet(self) -> None:
        code, out = self.run_cli("localnet", "init")
        self.assertEqual(code, 0, out)


class ConfigCommandTests(CliTestCase):
    def test_config_init_refuses_to_overwrite(self) -> None:
        code, out = self.run_cli("config", "init")
        self.assertEqual(code, 1)
        self.assertIn("--force", out)

    def test_config_init_writes_file(self) -> None:
        out_path = self.root / "other.toml"
        code, out = self.run_cli("config", "init", "--out", str(out_path), "--mint", str(Pubkey.default()))
        self.assertEqual(code, 0, out)
        self.assertEqual(load_config(out_path).mint, str(Pubkey.default()))

    def test_config_show(self) -> None:
        code, out = self.run_cli("config", "show")
        self.assertEqual(code, 0)
        self.assertIn("Tier preseed: 2.0 years at 0.02 USD", out)

    def test_missing_config(self) -> None:
        self.config_path.unlink()
        code, out = self.run_cli("config", "show")
        self.assertEqual(code, 1)
        self.assertIn("Config file not found", out)


class ScheduleCommandTests(CliTestCase):
    def test_team_schedule(self) -> None:
        code, out = self.run_cli("schedule", "team", "1000")
        self.assertEqual(code, 0, out)
        self.assertIn("Tier: team (team)", out)
        self.assertIn("Releases: 24", out)
        self.assertIn("Total: 1000", out)
        self.assertIn("2023-01-01 05:49:12 UTC", out)

    def test_private_schedule_by_index(self) -> None:
        code, out = self.run_cli("schedule", "1", "100", "--start", "2024-01-15")
        self.assertEqual(code, 0, out)
        self.assertIn("Tier: preseed (private)", out)
        self.assertIn("Total: 5000", out)
        self.assertIn("2024-01-15 00:00:00 UTC", out)

    def test_unknown_tier(self) -> None:
        code, out = self.run_cli("schedule", "angel", "100")
        self.assertEqual(code, 1)
        self.assertIn("tier must be one of", out)


class LocalnetFlowTests(CliTestCase):
    def test_localnet_init_writes_payer_ledger_and_mint(self) -> None:
        self.localnet()
        self.assertTrue((self.root / "payer.json").exists())
        self.assertTrue((self.root / "ledger.json").exists())
        self.assertIsNotNone(load_config(self.config_path).mint)
        code, out = self.run_cli("localnet", "init")
        self.assertEqual(code, 1)
        self.assertIn("already exists", out)

    def test_create_unlock_info(self) -> None:
        self.localnet()
        beneficiary = str(Pubkey.new_unique())
        code, out = self.run_cli("create", beneficiary, "preseed", "100")
        self.assertEqual(code, 0, out)
        self.assertIn("Tokens vested: 5000", out)
        seed = re.search(r"Seed: ([0-9a-f]{64})", out).group(1)
        vesting = re.search(r"Vesting account: (\S+)", out).group(1)

        code, out = self.run_cli("unlock", seed)
        self.assertEqual(code, 0, out)
        self.assertIn("Unlocked: 500", out)

        code, out = self.run_cli("unlock", seed)
        self.assertEqual(code, 1)
        self.assertIn("No vesting periods have elapsed", out)

        code, out = self.run_cli("localnet", "warp", "2022-02-01")
        self.assertEqual(code, 0, out)
        code, out = self.run_cli("unlock", seed)
        self.assertEqual(code, 0, out)
        self.assertIn("Unlocked: 195.652173913", out)

        code, out = self.run_cli("info", seed)
        self.assertEqual(code, 0, out)
        self.assertIn(f"Vesting account: {vesting}", out)
        self.assertIn(f"Beneficiary: {beneficiary}", out)
        self.assertIn("Outstanding: 4304.347826087", out)
        self.assertIn("Releases: 24", out)

        code, out = self.run_cli("derive", seed)
        self.assertEqual(code, 0, out)
        self.assertIn(f"Vesting account: {vesting}", out)

    def test_failed_create_leaves_saved_ledger_untouched(self) -> None:
        self.localnet()
        ledger_path = self.root / "ledger.json"
        before = ledger_path.read_bytes()
        code, out = self.run_cli("create", str(Pubkey.new_unique()), "team", "2000000000")
        self.assertEqual(code, 1)
        self.assertIn("insufficient funds", out)
        self.assertEqual(ledger_path.read_bytes(), before)

    def test_verbose_prints_program_logs(self) -> None:
        self.localnet()
        code, out = self.run_cli("--verbose", "create", str(Pubkey.new_unique()), "team", "10")
        self.assertEqual(code, 0, out)
        self.assertIn("Program log: Instruction: Create Vesting Contract", out)

    def test_set_beneficiary(self) -> None:
        self.localnet()
        _, out = self.run_cli("create", str(Pubkey.new_unique()), "seed", "40")
        seed = re.search(r"Seed: ([0-9a-f]{64})", out).group(1)
        new_beneficiary = str(Pubkey.new_unique())
        code, out = self.run_cli("set-beneficiary", seed, new_beneficiary)
        self.assertEqual(code, 0, out)
        _, out = self.run_cli("info", seed)
        self.assertIn(f"Beneficiary: {new_beneficiary}", out)

    def test_unknown_seed(self) -> None:
        self.localnet()
        code, out = self.run_cli("info", "11" * 32)
        self.assertEqual(code, 1)


if __name__ == "__main__":
    unittest.main()
