# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for the trust store: loading, lookups, and the add-key operation.
"""

import textwrap
from pathlib import Path

import pytest
import yaml

from rbverify.config.exceptions import ConfigLoadError, ConfigValidationError
from rbverify.provenance.truststore import (
    TrustStore,
    add_trusted_key,
    key_ids_match,
    load_trust_store,
    normalize_repo_url,
)

REPO = "https://github.com/example/wallet"


@pytest.fixture()
def store_file(tmp_path: Path) -> Path:
    path = tmp_path / "trust_store.yaml"
    path.write_text(
        textwrap.dedent(f"""\
            version: 2
            repositories:
              {REPO}.git:
                - abcd1234
                - 7518217F75E41FF378F081080C9027F3036DF75D
        """),
        encoding="utf-8",
    )
    return path


class TestNormalization:
    @pytest.mark.parametrize("url", [REPO, f"{REPO}/", f"{REPO}.git", f"  {REPO}.git/ "])
    def test_repo_url_variants_are_equal(self, url: str) -> None:
        assert normalize_repo_url(url) == REPO

    def test_key_ids_match_case_insensitively(self) -> None:
        assert key_ids_match("abcd1234", "ABCD1234")

    def test_long_id_matches_fingerprint_suffix(self) -> None:
        assert key_ids_match("0C9027F3036DF75D", "7518217F75E41FF378F081080C9027F3036DF75D")

    def test_short_ids_do_not_suffix_match(self) -> None:
        assert not key_ids_match("F75D", "7518217F75E41FF378F081080C9027F3036DF75D")


class TestLoadTrustStore:
    def test_loads_and_normalizes(self, store_file: Path) -> None:
        store = load_trust_store(store_file)

        assert store.version == 2
        assert store.path == store_file
        assert store.repositories() == [REPO]
        assert "ABCD1234" in store.keys_for(REPO)

    def test_lookup_ignores_url_spelling(self, store_file: Path) -> None:
        store = load_trust_store(store_file)
        assert store.is_trusted(f"{REPO}/", "ABCD1234")
        assert store.is_trusted(REPO, "0C9027F3036DF75D")

    def test_unknown_key_or_repo_is_untrusted(self, store_file: Path) -> None:
        store = load_trust_store(store_file)
        assert not store.is_trusted(REPO, "DEADBEEF")
        assert not store.is_trusted("https://github.com/other/repo", "ABCD1234")

    def test_missing_file_raises_load_error(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigLoadError):
            load_trust_store(tmp_path / "absent.yaml")

    def test_bad_schema_raises_validation_error(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("version: -1\nrepositories: {}\n", encoding="utf-8")
        with pytest.raises(ConfigValidationError):
            load_trust_store(path)

    def test_empty_store_trusts_nothing(self) -> None:
        assert not TrustStore.empty().is_trusted(REPO, "ABCD1234")


class TestAddTrustedKey:
    def test_adds_key_and_bumps_version(self, store_file: Path) -> None:
        assert add_trusted_key(store_file, REPO, "deadbeef") is True

        store = load_trust_store(store_file)
        assert store.version == 3
        assert store.is_trusted(REPO, "DEADBEEF")
        assert store.is_trusted(REPO, "ABCD1234")

    def test_reuses_existing_entry_for_url_variant(self, store_file: Path) -> None:
        add_trusted_key(store_file, f"{REPO}/", "deadbeef")

        document = yaml.safe_load(store_file.read_text(encoding="utf-8"))
        assert list(document["repositories"]) == [f"{REPO}.git"]

    def test_already_trusted_key_is_a_no_op(self, store_file: Path) -> None:
        before = store_file.read_text(encoding="utf-8")
        assert add_trusted_key(store_file, REPO, "abcd1234") is False
        assert store_file.read_text(encoding="utf-8") == before

    def test_creates_missing_store(self, tmp_path: Path) -> None:
        path = tmp_path / "new" / "trust_store.yaml"
        add_trusted_key(path, REPO, "ABCD1234")

        store = load_trust_store(path)
        assert store.version == 1
        assert store.is_trusted(REPO, "ABCD1234")

    @pytest.mark.parametrize(("repo", "key"), [("", "ABCD1234"), (REPO, "  ")])
    def test_empty_inputs_raise(self, tmp_path: Path, repo: str, key: str) -> None:
        with pytest.raises(ValueError):
            add_trusted_key(tmp_path / "store.yaml", repo, key)

    def test_loaded_store_is_not_affected_by_later_writes(self, store_file: Path) -> None:
        store = load_trust_store(store_file)
        add_trusted_key(store_file, REPO, "DEADBEEF")
        assert not store.is_trusted(REPO, "DEADBEEF")
