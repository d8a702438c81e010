"""
Tests for identifier generation.

- Organization root validation
- Identifier format and uniqueness
- Degraded randomness fallback
"""
import re
import secrets
import warnings

import pytest

from dicomsynth.errors import InsecureRandomFallback
from dicomsynth.uids import (
    DEFAULT_ORG_ROOT,
    MAX_ORG_ROOT_LENGTH,
    UID_MAX_LENGTH,
    UIDGenerator,
    generate_identifier,
    validate_org_root,
)

UID_PATTERN = re.compile(r"^(0|[1-9][0-9]*)(\.(0|[1-9][0-9]*))*$")


class TestOrgRootValidation:

    def test_default_root_is_valid(self):
        assert validate_org_root(DEFAULT_ORG_ROOT) == DEFAULT_ORG_ROOT

    @pytest.mark.parametrize("root", ["", "1.02.3", "1..2", "1.2.", ".1.2", "1.2.a", "1 .2"])
    def test_malformed_roots_rejected(self, root):
        with pytest.raises(ValueError):
            validate_org_root(root)

    def test_root_too_long_rejected(self):
        root = "1" + ".1" * (MAX_ORG_ROOT_LENGTH // 2)
        assert len(root) > MAX_ORG_ROOT_LENGTH
        with pytest.raises(ValueError, match="62-bit suffix"):
            UIDGenerator(root)

    def test_longest_root_still_fits_uid_limit(self):
        root = "11" + ".1" * ((MAX_ORG_ROOT_LENGTH - 2) // 2)
        assert len(root) == MAX_ORG_ROOT_LENGTH
        generator = UIDGenerator(root)
        for _ in range(200):
            assert len(generator.generate_identifier()) <= UID_MAX_LENGTH


class TestGenerateIdentifier:

    def test_format(self):
        uid = UIDGenerator().generate_identifier()
        assert uid.startswith(DEFAULT_ORG_ROOT + ".")
        assert UID_PATTERN.match(uid)
        suffix = int(uid[len(DEFAULT_ORG_ROOT) + 1:])
        assert 0 <= suffix < 2 ** 62
        assert len(uid) <= UID_MAX_LENGTH

    def test_ten_thousand_identifiers_are_unique(self):
        generator = UIDGenerator()
        uids = [generator.generate_identifier() for _ in range(10_000)]
        assert len(set(uids)) == len(uids)

    def test_sequential_generators_differ_in_suffix(self):
        """Two requests for the same root in the same clock tick still differ."""
        first = UIDGenerator(DEFAULT_ORG_ROOT).generate_identifier()
        second = UIDGenerator(DEFAULT_ORG_ROOT).generate_identifier()
        assert first != second

    def test_module_level_helper(self):
        assert generate_identifier("1.2.3").startswith("1.2.3.")

    def test_secure_source_does_not_degrade(self):
        generator = UIDGenerator()
        with warnings.catch_warnings():
            warnings.simplefilter("error", InsecureRandomFallback)
            generator.generate_identifier()
        assert generator.degraded is False
        assert generator.fallback_count == 0


class TestFallback:

    @pytest.fixture
    def broken_entropy(self, monkeypatch):
        def fail(_):
            raise OSError("entropy source unavailable")
        monkeypatch.setattr(secrets, "randbelow", fail)

    def test_fallback_warns_and_degrades(self, broken_entropy):
        generator = UIDGenerator()
        with pytest.warns(InsecureRandomFallback):
            uid = generator.generate_identifier()
        assert UID_PATTERN.match(uid)
        assert generator.degraded is True
        assert generator.fallback_count == 1

    def test_fallback_is_logged(self, broken_entropy, caplog):
        generator = UIDGenerator()
        with pytest.warns(InsecureRandomFallback):
            generator.generate_identifier()
        assert "uniqueness is degraded" in caplog.text
