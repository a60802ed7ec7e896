# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Shared pytest fixtures for rbverify tests.

Fixtures here are available to every test file automatically. Artifacts are
tiny zip files written into tmp_path; git is replaced by a scripted fake so
provenance tests run without a repository or gpg.
"""

import textwrap
import zipfile
from pathlib import Path
from typing import Callable, Optional

import pytest

from rbverify.provenance.git import SignatureCheck, SignatureStatus

ZipFactory = Callable[[Path, dict[str, bytes]], Path]


def write_zip(path: Path, entries: dict[str, bytes]) -> Path:
    """Write a zip archive with fixed timestamps so equal entries give equal bytes."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as archive:
        for name in sorted(entries):
            info = zipfile.ZipInfo(name, date_time=(2020, 1, 1, 0, 0, 0))
            archive.writestr(info, entries[name])
    return path


@pytest.fixture()
def make_zip() -> ZipFactory:
    return write_zip


@pytest.fixture()
def app_entries() -> dict[str, bytes]:
    """The content of a small, plausible APK."""
    return {
        "AndroidManifest.xml": b"<manifest package='com.example.wallet'/>",
        "classes.dex": b"dex\n035\x00code",
        "res/layout/main.xml": b"<LinearLayout/>",
        "META-INF/MANIFEST.MF": b"Manifest-Version: 1.0\n",
        "META-INF/CERT.SF": b"Signature-Version: 1.0\n",
        "META-INF/CERT.RSA": b"\x30\x82official-signature",
    }


class FakeSignatureTool:
    """
    A scripted SignatureTool.

    `tag_type` is what `git cat-file -t refs/tags/<ref>` would print ("tag",
    "commit") or None for no tag. Raising checks simulate a broken git.
    """

    def __init__(
        self,
        tag_type: Optional[str] = "tag",
        tag_check: Optional[SignatureCheck] = None,
        commit_check: Optional[SignatureCheck] = None,
        commit: str = "0123456789abcdef0123456789abcdef01234567",
        error: Optional[Exception] = None,
    ) -> None:
        self.tag_type = tag_type
        self.tag_check = tag_check or SignatureCheck(status=SignatureStatus.UNSIGNED)
        self.commit_check = commit_check or SignatureCheck(status=SignatureStatus.UNSIGNED)
        self.commit = commit
        self.error = error
        self.calls: list[str] = []

    def _maybe_fail(self, name: str) -> None:
        self.calls.append(name)
        if self.error is not None:
            raise self.error

    def tag_object_type(self, ref: str) -> Optional[str]:
        self._maybe_fail("tag_object_type")
        return self.tag_type

    def verify_tag(self, ref: str) -> SignatureCheck:
        self._maybe_fail("verify_tag")
        return self.tag_check

    def verify_commit(self, ref: str) -> SignatureCheck:
        self._maybe_fail("verify_commit")
        return self.commit_check

    def resolve_commit(self, ref: str) -> str:
        self._maybe_fail("resolve_commit")
        return self.commit


def good(key_id: str) -> SignatureCheck:
    return SignatureCheck(
        status=SignatureStatus.GOOD,
        raw_output=f"gpg: using RSA key {key_id}\ngpg: Good signature from \"Dev <dev@example.com>\"",
        key_id=key_id,
    )


@pytest.fixture()
def fake_tool_cls() -> type[FakeSignatureTool]:
    return FakeSignatureTool


@pytest.fixture()
def good_check() -> Callable[[str], SignatureCheck]:
    return good


@pytest.fixture()
def tmp_config_file(tmp_path: Path) -> Path:
    """
    Create a minimal valid config YAML file in a temp directory.

    This is the smallest config that passes schema validation.
    """
    config_content = textwrap.dedent("""\
        global:
          config_version: "1.0.0"
          log_level: "DEBUG"
    """)
    config_file = tmp_path / "test_config.yaml"
    config_file.write_text(config_content, encoding="utf-8")
    return config_file


@pytest.fixture()
def invalid_config_file(tmp_path: Path) -> Path:
    """Valid YAML that fails schema validation (missing config_version)."""
    config_content = textwrap.dedent("""\
        global:
          log_level: "INFO"
    """)
    config_file = tmp_path / "invalid_config.yaml"
    config_file.write_text(config_content, encoding="utf-8")
    return config_file


@pytest.fixture()
def broken_yaml_file(tmp_path: Path) -> Path:
    """A file that isn't valid YAML at all."""
    config_file = tmp_path / "broken.yaml"
    config_file.write_text("{{not: yaml: at: all:::", encoding="utf-8")
    return config_file
