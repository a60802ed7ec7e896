# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Report rendering.

Two renderings of the same VerificationReport:

  render_text — the "===== Begin Results =====" block operators and the
                downstream verification pages read. Field names and the
                verdict vocabulary are fixed; consumers parse them.
  render_json — the machine-readable form. Unlike the text preview it
                carries every differing path of every slice.

Both are deterministic: same report, same bytes.
"""

import json
from typing import Any

from rbverify.diff.engine import DiffResult, DiffStatus, Direction
from rbverify.provenance.git import SignatureStatus
from rbverify.provenance.verifier import ProvenanceRecord, TagType
from rbverify.report.aggregator import VerificationReport

_TAG_TYPE_LABELS: dict[TagType, str] = {
    TagType.ANNOTATED_TAG: "annotated",
    TagType.LIGHTWEIGHT_TAG: "lightweight",
    TagType.NO_TAG_FOUND: "none",
    TagType.UNRESOLVED: "unknown",
}


def tag_status_line(record: ProvenanceRecord) -> str:
    if record.tag_type is TagType.LIGHTWEIGHT_TAG:
        return "ℹ️ Tag is lightweight (cannot contain signature)"
    if record.tag_type is TagType.NO_TAG_FOUND:
        return "ℹ️ No tag found (verifying commit only)"
    status = record.tag_signature_status
    if status is SignatureStatus.GOOD:
        return "✓ Good signature on annotated tag"
    if status is SignatureStatus.INVALID:
        return "⚠️ Invalid signature on annotated tag"
    if status is SignatureStatus.UNSIGNED:
        return "⚠️ No valid signature found on annotated tag"
    return "ℹ️ No signature information available for tag"


def commit_status_line(record: ProvenanceRecord) -> str:
    status = record.commit_signature_status
    if status is SignatureStatus.GOOD:
        return "✓ Good signature on commit"
    if status is SignatureStatus.INVALID:
        return "⚠️ Invalid signature on commit"
    if status is SignatureStatus.UNSIGNED:
        return "⚠️ No valid signature found on commit"
    return "ℹ️ No signature information available for commit"


def _render_slice(report: VerificationReport, result: DiffResult, labelled: bool) -> list[str]:
    if result.status is DiffStatus.ABSENT:
        side = "official" if result.direction is Direction.OFFICIAL_ONLY else "rebuilt"
        return [f"Split {result.identifier} exists only in the {side} artifact set."]
    if result.status is DiffStatus.MATCHED:
        return []

    lines: list[str] = []
    if labelled:
        lines.append(f"=== Split: {result.identifier} ===")
    limit = report.diff_preview_limit
    lines.extend(item.describe() for item in result.differing_paths[:limit])
    total = len(result.differing_paths)
    if total > limit:
        lines.append(f"... ({total} differing files in total)")
        location = report.full_diff_location(result.identifier)
        if location:
            lines.append(f"Full diff saved to: {location}")
    return lines


def _render_diff(report: VerificationReport) -> list[str]:
    labelled = len(report.diff_results) > 1
    lines: list[str] = []
    for result in report.diff_results:
        lines.extend(_render_slice(report, result, labelled))
    return lines


def _render_signatures(record: ProvenanceRecord) -> list[str]:
    lines = [
        "Signature Summary:",
        f"Tag type: {_TAG_TYPE_LABELS[record.tag_type]}",
        tag_status_line(record),
        commit_status_line(record),
    ]

    keys: list[str] = []
    if record.tag_key_id:
        keys.append(f"Tag signed with: {record.tag_key_id}")
    if record.commit_key_id:
        keys.append(f"Commit signed with: {record.commit_key_id}")
    if keys:
        lines.extend(["", "Keys used:", *keys])

    if record.warnings:
        lines.extend(["", "Warnings:"])
        lines.extend(f"- {warning.message}" for warning in record.warnings)

    return lines


def _render_also(report: VerificationReport) -> list[str]:
    trust = report.provenance.trust_warnings
    if not report.notes and not trust:
        return []
    lines = ["===== Also ====="]
    lines.extend(report.notes)
    if trust:
        lines.append("To add an unknown key to trusted keys (if you've verified it's legitimate):")
        lines.extend(f"  {warning.remediation}" for warning in trust)
    return lines


def render_text(report: VerificationReport) -> str:
    """Render the operator-facing results block."""
    lines = [
        "===== Begin Results =====",
        f"appId:          {report.app_id}",
        f"signer:         {report.signer}",
        f"apkVersionName: {report.version_name}",
        f"apkVersionCode: {report.version_code}",
        f"verdict:        {report.verdict}",
        f"appHash:        {report.app_hash}",
        f"commit:         {report.commit}",
        "",
        "Diff:",
        *_render_diff(report),
        "",
        "Revision, tag (and its signature):",
        *report.provenance.tool_output,
        "",
        *_render_signatures(report.provenance),
        "",
        *_render_also(report),
        "===== End Results =====",
    ]
    if report.workspace:
        lines.extend(
            [
                "",
                f"Detailed diff files available at: {report.workspace}/results/",
                "Run a full",
                f"diff --recursive {report.workspace}/official {report.workspace}/built",
                "for more details.",
            ]
        )
    return "\n".join(lines) + "\n"


def _diff_result_dict(result: DiffResult) -> dict[str, Any]:
    return {
        "slice": result.identifier,
        "status": result.status.value,
        "direction": result.direction.value if result.direction else None,
        "substantiveCount": result.substantive_count,
        "differingPaths": [
            {
                "path": item.path,
                "kind": item.kind.value,
                "classification": item.classification.value,
            }
            for item in result.differing_paths
        ],
    }


def report_to_dict(report: VerificationReport) -> dict[str, Any]:
    """The complete report as plain data, every differing path included."""
    record = report.provenance
    return {
        "appId": report.app_id,
        "signer": report.signer,
        "apkVersionName": report.version_name,
        "apkVersionCode": report.version_code,
        "verdict": report.verdict,
        "appHash": report.app_hash,
        "commit": report.commit,
        "diff": [_diff_result_dict(result) for result in report.diff_results],
        "provenance": {
            "ref": record.ref,
            "repoUrl": record.repo_url,
            "tagType": record.tag_type.value,
            "tagSignatureStatus": record.tag_signature_status.value,
            "commitSignatureStatus": record.commit_signature_status.value,
            "tagKeyId": record.tag_key_id,
            "commitKeyId": record.commit_key_id,
            "warnings": [
                {
                    "kind": warning.kind.value,
                    "message": warning.message,
                    "keyId": warning.key_id,
                    "remediation": warning.remediation,
                }
                for warning in record.warnings
            ],
            "trustWarningCount": len(record.trust_warnings),
        },
        "notes": list(report.notes),
    }


def render_json(report: VerificationReport) -> str:
    return json.dumps(report_to_dict(report), indent=2, sort_keys=True, ensure_ascii=False) + "\n"
