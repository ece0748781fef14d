"""
Tests for rule pack loading, selection and integrity.

Covers:
- Packaged packs parse and pass validation
- Latest PUBLISHED selection, explicit version pinning, DRAFT exclusion
- Checksum fingerprint pinning
- Lifecycle transitions
"""

import shutil
from decimal import Decimal

import pytest

from corptax_config import DEFAULT_PACK_DIR, get_rule_pack
from corptax_config.integrity import PINFILE_NAME, RulePackIntegrityError
from corptax_config.lifecycle import RulePackStatus, validate_transition
from corptax_config.loader import load_rule_packs
from corptax_config.provider import StaticRulePackProvider, select_rule_pack
from corptax_config.validator import validate_rule_pack
from corptax_kernel.exceptions import RulePackNotFoundError


class TestPackagedPacks:
    """The shipped YAML packs."""

    def test_all_packs_load(self):
        packs = load_rule_packs(DEFAULT_PACK_DIR)
        assert {p.financial_year for p in packs} == {"2023-24", "2024-25", "2025-26"}

    def test_all_packs_valid(self):
        for pack in load_rule_packs(DEFAULT_PACK_DIR):
            result = validate_rule_pack(pack)
            assert result.is_valid, (pack.pack_id, result.errors)

    def test_regimes_present(self):
        pack = get_rule_pack("2024-25")
        assert set(pack.regime_names) == {"normal", "115BAA", "115BAB"}
        assert pack.regime("normal").slabs[0].rate == Decimal("0.25")
        assert pack.regime("unknown") is None

    def test_checksum_is_stable(self):
        assert get_rule_pack("2024-25").checksum == get_rule_pack("2024-25").checksum


class TestSelection:

    def test_latest_published(self):
        pack = get_rule_pack("2024-25")
        assert pack.version == 2
        assert pack.status == RulePackStatus.PUBLISHED

    def test_superseded_by_version(self):
        pack = get_rule_pack("2024-25", version=1)
        assert pack.status == RulePackStatus.SUPERSEDED

    def test_draft_never_returned(self):
        with pytest.raises(RulePackNotFoundError) as exc_info:
            get_rule_pack("2025-26")
        assert exc_info.value.code == "RULE_PACK_NOT_FOUND"

    def test_draft_not_returned_by_version(self):
        with pytest.raises(RulePackNotFoundError):
            get_rule_pack("2025-26", version=1)

    def test_unknown_year(self):
        with pytest.raises(RulePackNotFoundError):
            get_rule_pack("1999-00")

    def test_static_provider(self):
        packs = load_rule_packs(DEFAULT_PACK_DIR)
        provider = StaticRulePackProvider(packs)
        assert provider.get_rule_pack("2023-24").version == 1
        assert provider.get_rule_pack("2024-25").version == 2

    def test_select_prefers_highest_published(self):
        packs = load_rule_packs(DEFAULT_PACK_DIR)
        assert select_rule_pack(packs, "2024-25").pack_id == "IN-CORP-FY2024-25-v2"


class TestFingerprintPinning:

    def _copy_pack(self, tmp_path, name="fy2024-25-v2.yaml"):
        shutil.copy(DEFAULT_PACK_DIR / name, tmp_path / name)
        return tmp_path

    def test_matching_pin(self, tmp_path):
        pack_dir = self._copy_pack(tmp_path)
        checksum = get_rule_pack("2024-25", config_dir=pack_dir).checksum
        (pack_dir / PINFILE_NAME).write_text(f"# approved\nIN-CORP-FY2024-25-v2 {checksum}\n")
        assert get_rule_pack("2024-25", config_dir=pack_dir).checksum == checksum

    def test_mismatched_pin(self, tmp_path):
        pack_dir = self._copy_pack(tmp_path)
        (pack_dir / PINFILE_NAME).write_text("IN-CORP-FY2024-25-v2 " + "0" * 64 + "\n")
        with pytest.raises(RulePackIntegrityError) as exc_info:
            get_rule_pack("2024-25", config_dir=pack_dir)
        assert exc_info.value.pack_id == "IN-CORP-FY2024-25-v2"

    def test_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_rule_pack("2024-25", config_dir=tmp_path / "absent")


class TestLifecycle:

    def test_publish_path(self):
        assert validate_transition(RulePackStatus.DRAFT, RulePackStatus.REVIEWED)
        assert validate_transition(RulePackStatus.APPROVED, RulePackStatus.PUBLISHED)
        assert validate_transition(RulePackStatus.PUBLISHED, RulePackStatus.SUPERSEDED)

    def test_superseded_is_terminal(self):
        for target in RulePackStatus:
            assert not validate_transition(RulePackStatus.SUPERSEDED, target)

    def test_draft_cannot_publish_directly(self):
        assert not validate_transition(RulePackStatus.DRAFT, RulePackStatus.PUBLISHED)
