# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Provenance verification: is the source revision what its maintainers signed?

Two independent dimensions are checked.

Tag dimension, a small state machine starting at UNRESOLVED:

    UNRESOLVED -> NO_TAG_FOUND     ref is not a tag; only the commit is checked
               -> LIGHTWEIGHT_TAG  tag points straight at a commit; it cannot
                                   carry a signature, which is informational
               -> ANNOTATED_TAG    tag object; its signature is verified

Commit dimension: the commit the ref resolves to has its own signature.

Every key id that verified is then looked up in the trust store for the
source repository. An unknown key produces one TrustWarning with the exact
command that would trust it. Nothing here ever changes the trust store.

Provenance is supporting evidence, never a verdict gate: a broken or missing
signature tool degrades to "no signature information available" and the run
goes on.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from rbverify.errors import ExternalToolError
from rbverify.logging.logger import get_logger
from rbverify.provenance.git import SignatureCheck, SignatureStatus, SignatureTool
from rbverify.provenance.truststore import TrustStore

_logger: logging.Logger = get_logger(__name__)


class TagType(str, Enum):
    UNRESOLVED = "unresolved"
    NO_TAG_FOUND = "none"
    LIGHTWEIGHT_TAG = "lightweight"
    ANNOTATED_TAG = "annotated"


class WarningKind(str, Enum):
    UNSIGNED_TAG = "unsigned-tag"
    UNSIGNED_COMMIT = "unsigned-commit"
    KEY_MISMATCH = "key-mismatch"
    UNTRUSTED_KEY = "untrusted-key"


@dataclass(frozen=True)
class ProvenanceWarning:
    """
    An advisory finding about the source revision.

    UNTRUSTED_KEY warnings are the trust warnings: they name the key and
    carry the remediation command. The other kinds only have a message.
    """

    kind: WarningKind
    message: str
    key_id: Optional[str] = None
    remediation: Optional[str] = None


@dataclass(frozen=True)
class ProvenanceRecord:
    """Everything the provenance check found out about one ref."""

    ref: str
    tag_type: TagType
    tag_signature_status: SignatureStatus
    commit_signature_status: SignatureStatus
    tag_key_id: Optional[str] = None
    commit_key_id: Optional[str] = None
    commit: str = ""
    repo_url: str = ""
    warnings: tuple[ProvenanceWarning, ...] = ()
    tool_output: tuple[str, ...] = ()

    @property
    def trust_warnings(self) -> list[ProvenanceWarning]:
        return [w for w in self.warnings if w.kind is WarningKind.UNTRUSTED_KEY]


def trust_remediation(repo_url: str, key_id: str, trust_store_path: Optional[Path]) -> str:
    """The command an operator runs to trust `key_id` once they have vetted it."""
    store = str(trust_store_path) if trust_store_path is not None else "<trust-store.yaml>"
    return (
        f'rbverify trust add-key --trust-store "{store}" '
        f'--repo "{repo_url}" --key "{key_id}"'
    )


def _resolve_tag(tool: SignatureTool, ref: str) -> TagType:
    object_type = tool.tag_object_type(ref)
    if object_type is None:
        return TagType.NO_TAG_FOUND
    if object_type == "tag":
        return TagType.ANNOTATED_TAG
    if object_type == "commit":
        return TagType.LIGHTWEIGHT_TAG
    raise ExternalToolError(f"refs/tags/{ref} points at an unexpected object type '{object_type}'")


def _safe_check(check_name: str, ref: str, call: Callable[[str], SignatureCheck]) -> SignatureCheck:
    try:
        return call(ref)
    except ExternalToolError as err:
        _logger.warning(
            "Signature tool unavailable",
            extra={"check": check_name, "ref": ref, "error": str(err)},
        )
        return SignatureCheck(status=SignatureStatus.UNAVAILABLE, raw_output=str(err))


def _untrusted_key_warnings(
    repo_url: str,
    keys: list[tuple[str, str]],
    trust_store: TrustStore,
) -> list[ProvenanceWarning]:
    """One warning per distinct unrecognized key, naming every object it signed."""
    signed_by: dict[str, list[str]] = {}
    for subject, key_id in keys:
        if not trust_store.is_trusted(repo_url, key_id):
            signed_by.setdefault(key_id, []).append(subject)

    warnings: list[ProvenanceWarning] = []
    for key_id, subjects in signed_by.items():
        warnings.append(
            ProvenanceWarning(
                kind=WarningKind.UNTRUSTED_KEY,
                message=f"{' and '.join(subjects).capitalize()} signed with unknown key: {key_id}",
                key_id=key_id,
                remediation=trust_remediation(repo_url, key_id, trust_store.path),
            )
        )
    return warnings


def verify_provenance(
    tool: SignatureTool,
    ref: str,
    repo_url: str,
    trust_store: TrustStore,
) -> ProvenanceRecord:
    """
    Check tag and commit signatures of `ref` and cross-check the signing keys.

    Args:
        tool: The signature tool bound to the source checkout.
        ref: Tag name (or any revision when no tag exists).
        repo_url: Source repository URL, the trust store lookup key. When empty,
            keys are reported but not cross-checked.
        trust_store: Trusted keys, read-only.

    Returns:
        The provenance record. This function does not raise on tool failures.
    """
    warnings: list[ProvenanceWarning] = []
    tool_output: list[str] = []

    tag_type = TagType.UNRESOLVED
    tag_check = SignatureCheck(status=SignatureStatus.NOT_APPLICABLE)
    try:
        tag_type = _resolve_tag(tool, ref)
    except ExternalToolError as err:
        _logger.warning("Tag could not be resolved", extra={"ref": ref, "error": str(err)})
        tag_check = SignatureCheck(status=SignatureStatus.UNAVAILABLE, raw_output=str(err))

    if tag_type is TagType.ANNOTATED_TAG:
        tag_check = _safe_check("tag", ref, tool.verify_tag)
        if tag_check.status in (SignatureStatus.UNSIGNED, SignatureStatus.INVALID):
            warnings.append(
                ProvenanceWarning(
                    kind=WarningKind.UNSIGNED_TAG,
                    message="Annotated tag exists but is not signed"
                    if tag_check.status is SignatureStatus.UNSIGNED
                    else "Annotated tag signature is invalid",
                )
            )
    if tag_check.raw_output:
        tool_output.append(tag_check.raw_output)

    commit_check = _safe_check("commit", ref, tool.verify_commit)
    if commit_check.raw_output:
        tool_output.append(commit_check.raw_output)
    if commit_check.status in (SignatureStatus.UNSIGNED, SignatureStatus.INVALID):
        warnings.append(
            ProvenanceWarning(
                kind=WarningKind.UNSIGNED_COMMIT,
                message="Commit is not signed"
                if commit_check.status is SignatureStatus.UNSIGNED
                else "Commit signature is invalid",
            )
        )

    tag_key = tag_check.key_id if tag_check.status is SignatureStatus.GOOD else None
    commit_key = commit_check.key_id if commit_check.status is SignatureStatus.GOOD else None
    if tag_key and commit_key and tag_key != commit_key:
        warnings.append(
            ProvenanceWarning(
                kind=WarningKind.KEY_MISMATCH,
                message="Tag and commit signed with different keys",
            )
        )

    signed_keys = [(subject, key) for subject, key in (("tag", tag_key), ("commit", commit_key)) if key]
    if repo_url and signed_keys:
        warnings.extend(_untrusted_key_warnings(repo_url, signed_keys, trust_store))

    commit = ""
    try:
        commit = tool.resolve_commit(ref)
    except ExternalToolError as err:
        _logger.warning("Commit could not be resolved", extra={"ref": ref, "error": str(err)})

    record = ProvenanceRecord(
        ref=ref,
        tag_type=tag_type,
        tag_signature_status=tag_check.status,
        commit_signature_status=commit_check.status,
        tag_key_id=tag_key,
        commit_key_id=commit_key,
        commit=commit,
        repo_url=repo_url,
        warnings=tuple(warnings),
        tool_output=tuple(tool_output),
    )
    _logger.info(
        "Provenance verified",
        extra={
            "ref": ref,
            "tag_type": tag_type.value,
            "tag_signature": tag_check.status.value,
            "commit_signature": commit_check.status.value,
            "trust_warnings": len(record.trust_warnings),
        },
    )
    return record


def unavailable_provenance(ref: str, reason: str) -> ProvenanceRecord:
    """The record used when no source checkout was available at all."""
    return ProvenanceRecord(
        ref=ref,
        tag_type=TagType.UNRESOLVED,
        tag_signature_status=SignatureStatus.UNAVAILABLE,
        commit_signature_status=SignatureStatus.UNAVAILABLE,
        tool_output=(reason,) if reason else (),
    )
