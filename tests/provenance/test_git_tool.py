# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for the git signature tool: output parsing, failure classification,
and tag inspection against a real throwaway repository when git is present.
"""

import shutil
import subprocess
from pathlib import Path

import pytest

from rbverify.errors import ExternalToolError
from rbverify.provenance.git import GitSignatureTool, SignatureStatus, parse_signature_output

GPG_GOOD = """\
object 0123456789abcdef0123456789abcdef01234567
type commit
tag v1.2.3
gpg: Signature made Tue Jan  2 10:00:00 2024 UTC
gpg:                using RSA key 7518217F75E41FF378F081080C9027F3036DF75D
gpg: Good signature from "Release Manager <release@example.com>" [unknown]
"""

GPG_BAD = """\
gpg: Signature made Tue Jan  2 10:00:00 2024 UTC
gpg:                using EDDSA key abcd1234abcd1234
gpg: BAD signature from "Release Manager <release@example.com>" [unknown]
"""

GPG_NO_PUBKEY = """\
gpg: Signature made Tue Jan  2 10:00:00 2024 UTC
gpg:                using RSA key DEADBEEFDEADBEEF
gpg: Can't check signature: No public key
"""

SSH_GOOD = 'Good "git" signature for dev@example.com with ED25519 key SHA256:AbCdEf0123456789\n'


class TestParseSignatureOutput:
    def test_good_gpg_signature(self) -> None:
        status, key_id = parse_signature_output(GPG_GOOD)
        assert status is SignatureStatus.GOOD
        assert key_id == "7518217F75E41FF378F081080C9027F3036DF75D"

    def test_bad_signature_is_invalid_and_key_uppercased(self) -> None:
        status, key_id = parse_signature_output(GPG_BAD)
        assert status is SignatureStatus.INVALID
        assert key_id == "ABCD1234ABCD1234"

    def test_missing_public_key_is_invalid(self) -> None:
        status, key_id = parse_signature_output(GPG_NO_PUBKEY)
        assert status is SignatureStatus.INVALID
        assert key_id == "DEADBEEFDEADBEEF"

    def test_good_ssh_signature(self) -> None:
        status, key_id = parse_signature_output(SSH_GOOD)
        assert status is SignatureStatus.GOOD
        assert key_id == "SHA256:AbCdEf0123456789"

    def test_no_signature(self) -> None:
        status, key_id = parse_signature_output("error: no signature found\n")
        assert status is SignatureStatus.UNSIGNED
        assert key_id is None

    def test_last_key_wins(self) -> None:
        output = "gpg: using RSA key AAAAAAAA\ngpg: using RSA key BBBBBBBB\ngpg: Good signature from x\n"
        assert parse_signature_output(output)[1] == "BBBBBBBB"


class TestToolFailures:
    def test_missing_git_binary_raises(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        def _no_git(*args, **kwargs):  # type: ignore[no-untyped-def]
            raise FileNotFoundError("git")

        monkeypatch.setattr(subprocess, "run", _no_git)
        tool = GitSignatureTool(tmp_path)

        with pytest.raises(ExternalToolError, match="not found"):
            tool.verify_commit("HEAD")
        assert tool.origin_url() is None

    def test_timeout_raises(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        def _slow(*args, **kwargs):  # type: ignore[no-untyped-def]
            raise subprocess.TimeoutExpired(cmd="git", timeout=1)

        monkeypatch.setattr(subprocess, "run", _slow)

        with pytest.raises(ExternalToolError, match="timed out"):
            GitSignatureTool(tmp_path, timeout_seconds=1).verify_tag("v1")


def _git(repo: Path, *args: str) -> str:
    result = subprocess.run(
        [
            "git",
            "-c", "user.name=Test",
            "-c", "user.email=test@example.com",
            "-c", "commit.gpgsign=false",
            "-c", "tag.gpgsign=false",
            *args,
        ],
        cwd=str(repo),
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


@pytest.fixture()
def git_repo(tmp_path: Path) -> Path:
    repo = tmp_path / "repo"
    repo.mkdir()
    _git(repo, "init", "-q")
    (repo / "README").write_text("hello\n", encoding="utf-8")
    _git(repo, "add", "README")
    _git(repo, "commit", "-q", "-m", "initial")
    _git(repo, "tag", "v1.0.0-light")
    _git(repo, "tag", "-a", "v1.0.0", "-m", "release 1.0.0")
    _git(repo, "remote", "add", "origin", "https://github.com/example/wallet.git")
    return repo


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
class TestAgainstRealRepository:
    def test_tag_object_types(self, git_repo: Path) -> None:
        tool = GitSignatureTool(git_repo)
        assert tool.tag_object_type("v1.0.0") == "tag"
        assert tool.tag_object_type("v1.0.0-light") == "commit"
        assert tool.tag_object_type("v9.9.9") is None

    def test_unsigned_objects(self, git_repo: Path) -> None:
        tool = GitSignatureTool(git_repo)
        assert tool.verify_tag("v1.0.0").status is SignatureStatus.UNSIGNED
        assert tool.verify_commit("v1.0.0").status is SignatureStatus.UNSIGNED

    def test_resolve_commit_and_origin(self, git_repo: Path) -> None:
        tool = GitSignatureTool(git_repo)
        assert tool.resolve_commit("v1.0.0") == _git(git_repo, "rev-parse", "HEAD")
        assert tool.origin_url() == "https://github.com/example/wallet.git"

    def test_unknown_ref_does_not_resolve(self, git_repo: Path) -> None:
        with pytest.raises(ExternalToolError):
            GitSignatureTool(git_repo).resolve_commit("no-such-ref")
