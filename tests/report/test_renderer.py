# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for report rendering.

The text block is parsed by downstream tooling, so field names, their order
and the verdict vocabulary are pinned here.
"""

import json

from rbverify.artifacts.decomposer import ArtifactMetadata
from rbverify.diff.engine import (
    ChangeKind,
    Classification,
    DifferingPath,
    DiffResult,
    DiffStatus,
    Direction,
)
from rbverify.provenance.git import SignatureStatus
from rbverify.provenance.verifier import (
    ProvenanceRecord,
    ProvenanceWarning,
    TagType,
    WarningKind,
)
from rbverify.report.aggregator import ReportMetadata, VerificationReport, aggregate
from rbverify.report.renderer import (
    commit_status_line,
    render_json,
    render_text,
    report_to_dict,
    tag_status_line,
)

ARTIFACT = ArtifactMetadata("com.example.wallet", "1.2.3", "10203", "3a1b2c")


def _paths(count: int) -> tuple[DifferingPath, ...]:
    return tuple(
        DifferingPath(f"res/raw/file{i}.bin", ChangeKind.CONTENT, Classification.SUBSTANTIVE)
        for i in range(count)
    )


def _record(**overrides) -> ProvenanceRecord:  # type: ignore[no-untyped-def]
    fields = dict(
        ref="v1.2.3",
        tag_type=TagType.ANNOTATED_TAG,
        tag_signature_status=SignatureStatus.GOOD,
        commit_signature_status=SignatureStatus.GOOD,
        tag_key_id="ABCD1234",
        commit_key_id="ABCD1234",
        commit="0123abc",
    )
    fields.update(overrides)
    return ProvenanceRecord(**fields)


def _report(results: list[DiffResult], record: ProvenanceRecord, **meta) -> VerificationReport:  # type: ignore[no-untyped-def]
    return aggregate(results, record, ReportMetadata(artifact=ARTIFACT, app_hash="ab" * 32, **meta))


class TestRenderText:
    def test_header_fields_in_order(self) -> None:
        text = render_text(_report([DiffResult("base", DiffStatus.MATCHED)], _record()))
        lines = text.splitlines()

        assert lines[0] == "===== Begin Results ====="
        assert [line.split(":")[0] for line in lines[1:8]] == [
            "appId",
            "signer",
            "apkVersionName",
            "apkVersionCode",
            "verdict",
            "appHash",
            "commit",
        ]
        assert "verdict:        reproducible" in lines
        assert "commit:         0123abc" in lines
        assert "===== End Results =====" in lines

    def test_preview_is_truncated_with_full_diff_location(self) -> None:
        report = _report(
            [DiffResult("base", DiffStatus.DIFFERING, _paths(5))],
            _record(),
            full_diff_locations={"base": "/tmp/ws/results/diff_base.txt"},
            diff_preview_limit=3,
        )
        text = render_text(report)

        assert "Files differ: res/raw/file2.bin" in text
        assert "res/raw/file3.bin" not in text
        assert "... (5 differing files in total)" in text
        assert "Full diff saved to: /tmp/ws/results/diff_base.txt" in text

    def test_multi_slice_reports_label_each_slice(self) -> None:
        report = _report(
            [
                DiffResult("base", DiffStatus.DIFFERING, _paths(1)),
                DiffResult("x86_64", DiffStatus.ABSENT, direction=Direction.OFFICIAL_ONLY),
                DiffResult("mdpi", DiffStatus.ABSENT, direction=Direction.BUILT_ONLY),
            ],
            _record(),
        )
        text = render_text(report)

        assert "=== Split: base ===" in text
        assert "Split x86_64 exists only in the official artifact set." in text
        assert "Split mdpi exists only in the rebuilt artifact set." in text
        assert "verdict:        differences found" in text

    def test_signature_summary_and_keys(self) -> None:
        text = render_text(_report([DiffResult("base", DiffStatus.MATCHED)], _record()))

        assert "Tag type: annotated" in text
        assert "✓ Good signature on annotated tag" in text
        assert "✓ Good signature on commit" in text
        assert "Tag signed with: ABCD1234" in text
        assert "Commit signed with: ABCD1234" in text

    def test_trust_warning_goes_to_also_block_with_command(self) -> None:
        command = 'rbverify trust add-key --trust-store "t.yaml" --repo "r" --key "DEADBEEF"'
        record = _record(
            tag_key_id="DEADBEEF",
            commit_key_id="DEADBEEF",
            warnings=(
                ProvenanceWarning(
                    WarningKind.UNTRUSTED_KEY,
                    "Tag and commit signed with unknown key: DEADBEEF",
                    key_id="DEADBEEF",
                    remediation=command,
                ),
            ),
        )
        text = render_text(_report([DiffResult("base", DiffStatus.MATCHED)], record))

        assert "===== Also =====" in text
        assert f"  {command}" in text
        assert text.index("===== Also =====") < text.index("===== End Results =====")

    def test_workspace_guide_only_when_kept(self) -> None:
        kept = render_text(_report([DiffResult("base", DiffStatus.MATCHED)], _record(), workspace="/tmp/ws"))
        removed = render_text(_report([DiffResult("base", DiffStatus.MATCHED)], _record()))

        assert "diff --recursive /tmp/ws/official /tmp/ws/built" in kept
        assert "diff --recursive" not in removed

    def test_rendering_is_deterministic(self) -> None:
        report = _report([DiffResult("base", DiffStatus.DIFFERING, _paths(4))], _record())
        assert render_text(report) == render_text(report)
        assert render_json(report) == render_json(report)


class TestStatusLines:
    def test_lightweight_tag(self) -> None:
        record = _record(tag_type=TagType.LIGHTWEIGHT_TAG, tag_signature_status=SignatureStatus.NOT_APPLICABLE)
        assert tag_status_line(record) == "ℹ️ Tag is lightweight (cannot contain signature)"

    def test_unsigned_commit(self) -> None:
        record = _record(commit_signature_status=SignatureStatus.UNSIGNED)
        assert commit_status_line(record) == "⚠️ No valid signature found on commit"

    def test_unavailable(self) -> None:
        record = _record(
            tag_type=TagType.UNRESOLVED,
            tag_signature_status=SignatureStatus.UNAVAILABLE,
            commit_signature_status=SignatureStatus.UNAVAILABLE,
        )
        assert "No signature information available" in tag_status_line(record)
        assert "No signature information available" in commit_status_line(record)


class TestRenderJson:
    def test_carries_every_differing_path(self) -> None:
        report = _report([DiffResult("base", DiffStatus.DIFFERING, _paths(7))], _record(), diff_preview_limit=3)
        data = json.loads(render_json(report))

        assert data["verdict"] == "differences found"
        assert len(data["diff"][0]["differingPaths"]) == 7
        assert data["diff"][0]["substantiveCount"] == 7

    def test_field_names(self) -> None:
        data = report_to_dict(_report([DiffResult("base", DiffStatus.MATCHED)], _record()))
        assert set(data) == {
            "appId",
            "signer",
            "apkVersionName",
            "apkVersionCode",
            "verdict",
            "appHash",
            "commit",
            "diff",
            "provenance",
            "notes",
        }
        assert data["provenance"]["tagType"] == "annotated"
        assert data["provenance"]["trustWarningCount"] == 0
