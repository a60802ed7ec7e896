# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Git as the signature tool.

rbverify never checks a signature itself. It asks git (`git tag -v`,
`git verify-commit`), which asks gpg or ssh-keygen, and reads the answer
out of their output. Everything here is a thin, classified wrapper around
those subprocess calls:

  - a missing git binary, a timeout, or a "fatal:" from git means the tool
    could not answer, which is an ExternalToolError
  - a nonzero exit with signature output is an answer ("no signature",
    "BAD signature") and is returned as a status, never raised

git's messages are parsed in the C locale so "Good signature" means the same
thing on every operator's machine.
"""

import logging
import os
import re
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol

from rbverify.errors import ExternalToolError
from rbverify.logging.logger import get_logger

_logger: logging.Logger = get_logger(__name__)

# gpg: "using RSA key 7518217F75E41FF378F081080C9027F3036DF75D"
_GPG_KEY_PATTERN = re.compile(r"using \S+ key ([0-9A-Fa-f]+)")
# ssh: 'Good "git" signature for dev@example.com with ED25519 key SHA256:abc...'
_SSH_KEY_PATTERN = re.compile(r"with \S+ key (\S+)")


class SignatureStatus(str, Enum):
    GOOD = "good"
    INVALID = "invalid"
    UNSIGNED = "unsigned"
    UNAVAILABLE = "unavailable"
    NOT_APPLICABLE = "not-applicable"


@dataclass(frozen=True)
class SignatureCheck:
    """What the signature tool said about one object."""

    status: SignatureStatus
    raw_output: str = ""
    key_id: Optional[str] = None


class SignatureTool(Protocol):
    def tag_object_type(self, ref: str) -> Optional[str]: ...

    def verify_tag(self, ref: str) -> SignatureCheck: ...

    def verify_commit(self, ref: str) -> SignatureCheck: ...

    def resolve_commit(self, ref: str) -> str: ...


def parse_signature_output(output: str) -> tuple[SignatureStatus, Optional[str]]:
    """
    Turn gpg/ssh verification chatter into a status and a signing key id.

    The last key id mentioned wins; gpg prints the primary key before the
    subkey that actually signed.
    """
    key_id: Optional[str] = None
    gpg_keys = _GPG_KEY_PATTERN.findall(output)
    if gpg_keys:
        key_id = gpg_keys[-1].upper()
    else:
        ssh_keys = _SSH_KEY_PATTERN.findall(output)
        if ssh_keys:
            key_id = ssh_keys[-1]

    if "Good signature" in output or 'Good "git" signature' in output:
        return SignatureStatus.GOOD, key_id
    if "BAD signature" in output or "Can't check signature" in output:
        return SignatureStatus.INVALID, key_id
    return SignatureStatus.UNSIGNED, None


class GitSignatureTool:
    """Signature checks and ref inspection against one git checkout."""

    def __init__(self, repo_dir: Path, timeout_seconds: int = 30) -> None:
        self.repo_dir = repo_dir
        self.timeout_seconds = timeout_seconds

    def _run(self, *args: str) -> subprocess.CompletedProcess[str]:
        env = dict(os.environ, LC_ALL="C", LANGUAGE="C")
        try:
            return subprocess.run(
                ["git", *args],
                cwd=str(self.repo_dir),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self.timeout_seconds,
                env=env,
                check=False,
            )
        except FileNotFoundError as err:
            raise ExternalToolError("git executable not found") from err
        except subprocess.TimeoutExpired as err:
            raise ExternalToolError(
                f"git {args[0]} timed out after {self.timeout_seconds}s"
            ) from err
        except OSError as err:
            raise ExternalToolError(f"git {args[0]} could not be started: {err}") from err

    def tag_object_type(self, ref: str) -> Optional[str]:
        """
        The object type `refs/tags/<ref>` points at, or None when there is no such tag.

        "tag" means an annotated tag object, "commit" a lightweight tag.
        """
        result = self._run("cat-file", "-t", f"refs/tags/{ref}")
        if result.returncode != 0:
            _logger.debug("No tag found", extra={"ref": ref, "output": result.stdout.strip()})
            return None
        return result.stdout.strip()

    def _verify(self, *args: str) -> SignatureCheck:
        result = self._run(*args)
        output = result.stdout.strip()
        if result.returncode != 0 and output.startswith("fatal:"):
            raise ExternalToolError(f"git {args[0]} failed: {output}")
        status, key_id = parse_signature_output(output)
        return SignatureCheck(status=status, raw_output=output, key_id=key_id)

    def verify_tag(self, ref: str) -> SignatureCheck:
        return self._verify("tag", "-v", ref)

    def verify_commit(self, ref: str) -> SignatureCheck:
        return self._verify("verify-commit", f"{ref}^{{commit}}")

    def resolve_commit(self, ref: str) -> str:
        result = self._run("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}")
        if result.returncode != 0:
            raise ExternalToolError(f"Cannot resolve '{ref}' to a commit in {self.repo_dir}")
        return result.stdout.strip()

    def origin_url(self) -> Optional[str]:
        """The checkout's `remote.origin.url`, if it has one."""
        try:
            result = self._run("config", "--get", "remote.origin.url")
        except ExternalToolError:
            return None
        url = result.stdout.strip()
        return url or None
