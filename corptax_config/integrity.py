"""
Rule Pack Integrity -- fingerprint pinning for approved packs.

When a rule pack directory contains an APPROVED_FINGERPRINTS file, every
pack listed in it must have a checksum equal to the pinned value.  This
prevents unauthorized or accidental edits to approved rate tables.

The pin file holds one pack per line: ``<pack_id> <sha256>``.  Blank lines
and lines starting with ``#`` are ignored.  Packs not listed are not
checked (draft/dev workflow), and a missing pin file skips the check.
"""

from __future__ import annotations

from pathlib import Path

from corptax_kernel.exceptions import CorpTaxError

PINFILE_NAME = "APPROVED_FINGERPRINTS"


class RulePackIntegrityError(CorpTaxError):
    """Rule pack checksum does not match the approved pin.

    Attributes:
        pack_id: The rule pack identifier.
        expected: The pinned (approved) checksum.
        actual: The computed checksum.
        pin_path: Path to the APPROVED_FINGERPRINTS file.
    """

    code: str = "RULE_PACK_INTEGRITY_MISMATCH"

    def __init__(self, pack_id: str, expected: str, actual: str, pin_path: Path):
        self.pack_id = pack_id
        self.expected = expected
        self.actual = actual
        self.pin_path = pin_path
        super().__init__(
            f"Rule pack integrity check failed for '{pack_id}': "
            f"pinned checksum {expected[:16]}... != "
            f"computed checksum {actual[:16]}... "
            f"(pin file: {pin_path})"
        )


def read_pinned_fingerprints(config_dir: Path) -> dict[str, str]:
    """Read the APPROVED_FINGERPRINTS file, or return {} if absent."""
    pin_path = config_dir / PINFILE_NAME
    if not pin_path.is_file():
        return {}
    pins: dict[str, str] = {}
    for line in pin_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        pack_id, _, fingerprint = line.partition(" ")
        pins[pack_id] = fingerprint.strip()
    return pins


def verify_fingerprint_pin(pack_id: str, checksum: str, config_dir: Path) -> None:
    """Verify that a pack's checksum matches its pin, if it has one.

    Raises:
        RulePackIntegrityError: If a pin exists and does not match.
    """
    pinned = read_pinned_fingerprints(config_dir).get(pack_id)
    if pinned is None:
        return
    if checksum != pinned:
        raise RulePackIntegrityError(
            pack_id=pack_id,
            expected=pinned,
            actual=checksum,
            pin_path=config_dir / PINFILE_NAME,
        )
