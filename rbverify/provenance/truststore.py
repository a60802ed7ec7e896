# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Trust store: the operator's allow-list of signing keys per source repository.

The trust store is a versioned YAML document:

    version: 3
    repositories:
      https://github.com/mycelium-com/wallet-android.git:
        - 7518217F75E41FF378F081080C9027F3036DF75D

A verification run loads it once and only reads it. The single way to change
it is `add_trusted_key`, the administrative operation behind
`rbverify trust add-key`, which rewrites the file atomically and bumps the
version so every change is visible in history.
"""

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from rbverify.config.exceptions import ConfigValidationError
from rbverify.config.loader import read_yaml_mapping
from rbverify.logging.logger import get_logger
from rbverify.utils.filesystem import atomic_write

_logger: logging.Logger = get_logger(__name__)

# Shorter ids collide too easily to be matched by suffix.
_MIN_SUFFIX_MATCH = 8


def normalize_repo_url(url: str) -> str:
    """
    Canonical form used for lookups.

    `https://host/org/repo`, `https://host/org/repo/` and
    `https://host/org/repo.git` all name the same repository.
    """
    canonical = url.strip().rstrip("/")
    if canonical.endswith(".git"):
        canonical = canonical[: -len(".git")]
    return canonical


def normalize_key_id(key_id: str) -> str:
    return key_id.strip().replace(" ", "").upper()


def key_ids_match(candidate: str, trusted: str) -> bool:
    """
    True when two key ids name the same key.

    A long key id is the tail of the fingerprint, so a fingerprint reported by
    gpg matches a trusted long id and vice versa.
    """
    a = normalize_key_id(candidate)
    b = normalize_key_id(trusted)
    if a == b:
        return True
    shorter = min(len(a), len(b))
    if shorter < _MIN_SUFFIX_MATCH:
        return False
    return a.endswith(b) or b.endswith(a)


class TrustStoreDocument(BaseModel):
    """On-disk schema of the trust store."""

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    version: int = Field(default=0, ge=0, description="Bumped on every change")
    repositories: dict[str, list[str]] = Field(default_factory=dict)

    @field_validator("repositories")
    @classmethod
    def _normalize_keys(cls, value: dict[str, list[str]]) -> dict[str, list[str]]:
        return {url: sorted({normalize_key_id(k) for k in keys if k.strip()}) for url, keys in value.items()}


class TrustStore:
    """Read-only view of the trusted keys, keyed by canonical repository URL."""

    def __init__(self, repositories: dict[str, frozenset[str]], version: int = 0, path: Optional[Path] = None) -> None:
        self._keys: dict[str, frozenset[str]] = {}
        for url, keys in repositories.items():
            canonical = normalize_repo_url(url)
            self._keys[canonical] = self._keys.get(canonical, frozenset()) | frozenset(keys)
        self.version = version
        self.path = path

    @classmethod
    def empty(cls) -> "TrustStore":
        return cls({})

    def keys_for(self, repo_url: str) -> frozenset[str]:
        return self._keys.get(normalize_repo_url(repo_url), frozenset())

    def is_trusted(self, repo_url: str, key_id: str) -> bool:
        return any(key_ids_match(key_id, trusted) for trusted in self.keys_for(repo_url))

    def repositories(self) -> list[str]:
        return sorted(self._keys)


def _read_document(path: Path) -> TrustStoreDocument:
    raw = read_yaml_mapping(path)
    try:
        return TrustStoreDocument.model_validate(raw)
    except ValidationError as err:
        raise ConfigValidationError(f"Trust store validation failed for {path}:\n{err}") from err


def load_trust_store(path: Path) -> TrustStore:
    """
    Load the trust store at process start.

    Raises:
        ConfigLoadError: If the file is missing or not YAML.
        ConfigValidationError: If the document does not match the schema.
    """
    document = _read_document(path)
    _logger.info(
        "Trust store loaded",
        extra={"path": str(path), "version": document.version, "repositories": len(document.repositories)},
    )
    return TrustStore(
        {url: frozenset(keys) for url, keys in document.repositories.items()},
        version=document.version,
        path=path,
    )


def add_trusted_key(path: Path, repo_url: str, key_id: str) -> bool:
    """
    Administrative operation: trust `key_id` for `repo_url`.

    Creates the trust store if it does not exist yet. Repository URLs that
    differ only by a trailing slash or `.git` share one entry.

    Returns:
        True if the key was added, False if it was already trusted.

    Raises:
        ValueError: If the URL or key id is empty.
        ConfigLoadError, ConfigValidationError: If an existing file is broken.
    """
    if not repo_url.strip() or not key_id.strip():
        raise ValueError("Both repository URL and key id are required")

    if path.exists():
        document = _read_document(path)
    else:
        document = TrustStoreDocument()

    repositories = {url: list(keys) for url, keys in document.repositories.items()}
    entry_url = next(
        (url for url in repositories if normalize_repo_url(url) == normalize_repo_url(repo_url)),
        repo_url.strip(),
    )
    keys = repositories.setdefault(entry_url, [])
    if any(key_ids_match(key_id, existing) for existing in keys):
        _logger.info("Key already trusted", extra={"repo": entry_url, "key": normalize_key_id(key_id)})
        return False

    keys.append(normalize_key_id(key_id))
    updated = TrustStoreDocument(version=document.version + 1, repositories=repositories)
    content = yaml.safe_dump(updated.model_dump(), sort_keys=True, default_flow_style=False)
    atomic_write(path, content)

    _logger.info(
        "Trusted key added",
        extra={"path": str(path), "repo": entry_url, "key": normalize_key_id(key_id), "version": updated.version},
    )
    return True
