# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Verdict aggregation.

`aggregate` is a pure function: diff results, the provenance record and the
release metadata go in, one immutable VerificationReport comes out. No I/O,
no clock, no randomness, so the same inputs always produce the same report.
A verifier of reproducible builds had better be reproducible itself.

The verdict comes from the diff results alone. Provenance findings only ever
add warnings.
"""

from dataclasses import dataclass, field
from typing import Optional

from rbverify.artifacts.decomposer import ArtifactMetadata
from rbverify.diff.engine import DiffResult, Direction, decide_verdict
from rbverify.provenance.verifier import ProvenanceRecord


@dataclass(frozen=True)
class ReportMetadata:
    """Run facts the report needs besides diffs and provenance."""

    artifact: ArtifactMetadata
    app_hash: str = ""
    commit: str = ""
    slice_order: tuple[str, ...] = ()
    full_diff_locations: dict[str, str] = field(default_factory=dict)
    diff_preview_limit: int = 3
    notes: tuple[str, ...] = ()
    workspace: Optional[str] = None


@dataclass(frozen=True)
class VerificationReport:
    """The single outcome of one verification run."""

    app_id: str
    signer: str
    version_name: str
    version_code: str
    verdict: str
    app_hash: str
    commit: str
    diff_results: tuple[DiffResult, ...]
    provenance: ProvenanceRecord
    notes: tuple[str, ...] = ()
    full_diff_locations: tuple[tuple[str, str], ...] = ()
    diff_preview_limit: int = 3
    workspace: Optional[str] = None

    @property
    def substantive_count(self) -> int:
        return sum(result.substantive_count for result in self.diff_results)

    @property
    def absent_results(self) -> list[DiffResult]:
        return [result for result in self.diff_results if result.direction is not None]

    def full_diff_location(self, identifier: str) -> Optional[str]:
        return dict(self.full_diff_locations).get(identifier)


def order_results(results: list[DiffResult], slice_order: tuple[str, ...] = ()) -> list[DiffResult]:
    """
    Official slices first, built-only extras after, each group in a fixed order.

    With `slice_order` the position in that sequence decides; identifiers it
    does not mention go last, alphabetically. Without it, input order is kept
    within each group.
    """
    position = {identifier: index for index, identifier in enumerate(slice_order)}
    fallback = len(position)

    def sort_key(item: tuple[int, DiffResult]) -> tuple[int, int, str, int]:
        index, result = item
        group = 1 if result.direction is Direction.BUILT_ONLY else 0
        if position:
            return group, position.get(result.identifier, fallback), result.identifier, 0
        return group, 0, "", index

    return [result for _, result in sorted(enumerate(results), key=sort_key)]


def aggregate(
    diff_results: list[DiffResult],
    provenance: ProvenanceRecord,
    metadata: ReportMetadata,
) -> VerificationReport:
    """
    Combine diff results and provenance into the final report.

    Args:
        diff_results: One result per slice identifier, from the diff engine.
        provenance: The provenance record for the source revision.
        metadata: Declared identity and run facts.

    Returns:
        An immutable VerificationReport.
    """
    ordered = order_results(diff_results, metadata.slice_order)
    return VerificationReport(
        app_id=metadata.artifact.app_id,
        signer=metadata.artifact.signer,
        version_name=metadata.artifact.version_name,
        version_code=metadata.artifact.version_code,
        verdict=decide_verdict(ordered),
        app_hash=metadata.app_hash,
        commit=provenance.commit or metadata.commit,
        diff_results=tuple(ordered),
        provenance=provenance,
        notes=tuple(metadata.notes),
        full_diff_locations=tuple(sorted(metadata.full_diff_locations.items())),
        diff_preview_limit=metadata.diff_preview_limit,
        workspace=metadata.workspace,
    )
