import tempfile
import unittest
from fractions import Fraction
from pathlib import Path

from vestlock.config import (
    VestingConfig,
    config_from_dict,
    load_config,
    parse_timestamp,
    save_config,
    tier_name,
)
from vestlock.schedule import Group


class ConfigFileTests(unittest.TestCase):
    def test_save_and_load_round_trip(self) -> None:
        config = VestingConfig(mint="So11111111111111111111111111111111111111112", decimals=6)
        config.tiers["seed"].price = 0.05
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "vesting-config.toml"
            save_config(config, path)
            loaded = load_config(path)
        self.assertEqual(loaded.to_dict(), config.to_dict())
        self.assertEqual(loaded.path, path)

    def test_relative_paths_resolve_against_config_dir(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "vesting-config.toml"
            save_config(VestingConfig(payer="keys/payer.json", ledger="ledger.json"), path)
            loaded = load_config(path)
            self.assertEqual(loaded.payer_path(), (Path(tmp) / "keys" / "payer.json").resolve())
            self.assertEqual(loaded.ledger_path(), (Path(tmp) / "ledger.json").resolve())

    def test_absolute_paths_are_kept(self) -> None:
        config = VestingConfig(payer="/tmp/payer.json", path=Path("/srv/vesting-config.toml"))
        self.assertEqual(config.payer_path(), Path("/tmp/payer.json"))

    def test_missing_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(FileNotFoundError):
                load_config(Path(tmp) / "nope.toml")

    def test_empty_document_uses_defaults(self) -> None:
        config = config_from_dict({})
        self.assertEqual(config.to_dict(), VestingConfig().to_dict())


class ValidationTests(unittest.TestCase):
    def test_rejects_bad_values(self) -> None:
        cases = [
            {"token": {"decimals": 256}},
            {"token": {"decimals": True}},
            {"token": "nine"},
            {"tiers": {"seed": {"price": 0}}},
            {"tiers": {"seed": {"vesting_period": "two"}}},
            {"tiers": {"angel": {"price": 1.0}}},
            {"vesting": {"execution_date": "yesterday"}},
            {"cluster": {"rpc_url": 8899}},
        ]
        for data in cases:
            with self.subTest(data=data):
                with self.assertRaises(ValueError):
                    config_from_dict(data)


class TierTests(unittest.TestCase):
    def setUp(self) -> None:
        self.config = VestingConfig()

    def test_team_tier(self) -> None:
        info = self.config.tier_info("team", "100000")
        self.assertIs(info.group, Group.TEAM)
        self.assertEqual(info.period_count, 24)
        self.assertEqual(info.amount, 100_000)

    def test_private_tier_converts_usd_at_price(self) -> None:
        info = self.config.tier_info("preseed", 5000)
        self.assertIs(info.group, Group.PRIVATE)
        self.assertEqual(info.period_count, 24)
        self.assertEqual(info.amount, Fraction(250_000))

    def test_private_tier_amount_is_exact(self) -> None:
        info = self.config.tier_info("private2", "1000")
        self.assertEqual(info.period_count, 18)
        self.assertEqual(info.amount, Fraction(12_500))

    def test_tier_names_and_indexes(self) -> None:
        self.assertEqual(tier_name(0), "team")
        self.assertEqual(tier_name("2"), "seed")
        self.assertEqual(tier_name(" Private1 "), "private1")
        with self.assertRaises(ValueError):
            tier_name(5)
        with self.assertRaises(ValueError):
            tier_name("angel")


class TimestampTests(unittest.TestCase):
    def test_naive_dates_are_utc(self) -> None:
        self.assertEqual(parse_timestamp("2022-01-01T00:00:00"), 1_640_995_200)
        self.assertEqual(parse_timestamp("2022-01-01"), 1_640_995_200)

    def test_offsets_are_honoured(self) -> None:
        self.assertEqual(parse_timestamp("2022-01-01T02:00:00+02:00"), 1_640_995_200)

    def test_rejects_garbage(self) -> None:
        with self.assertRaises(ValueError):
            parse_timestamp("soon")


if __name__ == "__main__":
    unittest.main()
