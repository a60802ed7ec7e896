# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
The verification pipeline.

One run is a straight line:

  1. check the declared identity against the application profile (fatal)
  2. claim a fresh workspace (fatal if it already exists)
  3. list and normalize both sides' artifacts, refuse universal-vs-split (fatal)
  4. unpack every slice into the workspace
  5. diff the slice sets
  6. check provenance of the source revision
  7. aggregate everything into the report

Each step classifies its own failures. Configuration problems and external
tool failures become notes in the report; identity and workspace problems
stop the run before a verdict exists.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from rbverify.apps.adapters import AppAdapter, adapter_for
from rbverify.artifacts.decomposer import (
    BUILT,
    OFFICIAL,
    ArchiveReader,
    ArtifactMetadata,
    SliceSet,
    Workspace,
    ZipArchiveReader,
    decompose_plan,
)
from rbverify.artifacts.normalizer import SliceCollisionError, SlicePlan, build_slice_plan
from rbverify.artifacts.source import DEFAULT_PATTERNS, ArtifactSource, DirectoryArtifactSource
from rbverify.config.schema import AppProfile, VerificationConfig
from rbverify.diff.engine import (
    DiffResult,
    DiffStatus,
    align_standalone,
    check_slice_set_types,
    compare,
)
from rbverify.errors import ConfigurationError, IdentityMismatchError
from rbverify.logging.logger import get_logger
from rbverify.provenance.git import GitSignatureTool, SignatureTool
from rbverify.provenance.truststore import TrustStore
from rbverify.provenance.verifier import ProvenanceRecord, unavailable_provenance, verify_provenance
from rbverify.report.aggregator import ReportMetadata, VerificationReport, aggregate
from rbverify.utils.filesystem import atomic_write
from rbverify.utils.hashing import compute_sha256

_logger: logging.Logger = get_logger(__name__)


@dataclass(frozen=True)
class VerificationRequest:
    """Everything one run needs to know that is not configuration."""

    official: Path
    built: Path
    metadata: ArtifactMetadata
    workspace: Path
    revision: Optional[str] = None
    repo_dir: Optional[Path] = None
    profile: Optional[AppProfile] = None


def check_declared_identity(metadata: ArtifactMetadata, profile: Optional[AppProfile]) -> None:
    """
    Raises:
        IdentityMismatchError: If the artifact declares a different appId than
            the profile it is being verified with.
    """
    if profile is None or metadata.app_id == profile.app_id:
        return
    raise IdentityMismatchError(
        f"Artifact declares appId '{metadata.app_id}' but the profile is for '{profile.app_id}'",
        remediation=f"Verify this artifact with the profile for '{metadata.app_id}', "
        "or check that the right artifact was supplied.",
    )


def _list_side(lister: Callable[[], list[Path]], role: str, notes: list[str]) -> list[Path]:
    try:
        return lister()
    except ConfigurationError as err:
        _logger.warning("Artifact listing failed", extra={"role": role, "error": str(err)})
        notes.append(f"Configuration: {err}")
        return []


def _plan_side(paths: list[Path], role: str, notes: list[str]) -> SlicePlan:
    try:
        plan = build_slice_plan(paths, role)
    except SliceCollisionError as err:
        _logger.warning("Slice identifier collision", extra={"role": role, "error": str(err)})
        notes.append(f"Configuration: {err}")
        plan = err.plan

    for rejected in plan.rejected:
        notes.append(f"Ignored {role} artifact '{rejected.raw_name}': {rejected.reason}")

    if not plan.slices:
        missing = ConfigurationError(f"No usable {role} artifacts were found")
        _logger.warning("Missing required artifact", extra={"role": role})
        notes.append(f"Configuration: {missing}")
    return plan


def _primary_artifact_hash(plan: SlicePlan) -> str:
    if not plan.slices:
        return ""
    primary = next((s for s in plan.slices if s.identifier == "base"), plan.slices[0])
    return compute_sha256(primary.source_path)


def _slice_order(official_set: SliceSet, built_set: SliceSet) -> tuple[str, ...]:
    official_ids = official_set.identifiers
    extras = [identifier for identifier in built_set.identifiers if identifier not in official_ids]
    return tuple(official_ids + extras)


def _write_full_diffs(results: list[DiffResult], workspace: Workspace) -> dict[str, str]:
    """Write one listing per differing slice. Returns identifier -> file path."""
    locations: dict[str, str] = {}
    for result in results:
        if result.status is not DiffStatus.DIFFERING:
            continue
        target = workspace.results_dir / f"diff_{result.identifier}.txt"
        atomic_write(target, "\n".join(item.describe() for item in result.differing_paths) + "\n")
        locations[result.identifier] = str(target)
    return locations


def _check_provenance(
    request: VerificationRequest,
    adapter: Optional[AppAdapter],
    trust_store: TrustStore,
    signature_tool: Optional[SignatureTool],
    timeout_seconds: int,
) -> ProvenanceRecord:
    ref = request.revision
    if ref is None and adapter is not None:
        ref = adapter.resolve_tag(request.metadata.version_name)
    if ref is None:
        return unavailable_provenance("", "No revision given; no signature information available")

    repo_url = request.profile.repo_url if request.profile is not None else ""
    if signature_tool is None:
        if request.repo_dir is None:
            return unavailable_provenance(
                ref, "No source checkout given; no signature information available"
            )
        git_tool = GitSignatureTool(request.repo_dir, timeout_seconds=timeout_seconds)
        repo_url = repo_url or (git_tool.origin_url() or "")
        signature_tool = git_tool

    return verify_provenance(signature_tool, ref, repo_url, trust_store)


def run_verification(
    request: VerificationRequest,
    settings: VerificationConfig,
    trust_store: TrustStore,
    source: Optional[ArtifactSource] = None,
    reader: Optional[ArchiveReader] = None,
    signature_tool: Optional[SignatureTool] = None,
) -> VerificationReport:
    """
    Run one verification end to end.

    Args:
        request: Artifacts, declared identity, workspace and revision.
        settings: The `verification:` config section.
        trust_store: Trusted signing keys, loaded at process start.
        source: Where to list artifacts from. Defaults to the request's paths.
        reader: Archive reader override. Defaults to the profile family's reader.
        signature_tool: Signature tool override. Defaults to git in `repo_dir`.

    Returns:
        The verification report.

    Raises:
        IdentityMismatchError: Wrong appId, or a universal artifact against a split set.
        WorkspaceConflictError: The workspace already exists.
    """
    check_declared_identity(request.metadata, request.profile)

    adapter = adapter_for(request.profile) if request.profile is not None else None
    if reader is None:
        reader = adapter.archive_reader() if adapter is not None else ZipArchiveReader()
    if source is None:
        patterns = adapter.artifact_patterns if adapter is not None else DEFAULT_PATTERNS
        source = DirectoryArtifactSource(request.official, request.built, patterns)

    workspace = Workspace.create(request.workspace)
    _logger.info(
        "Verification started",
        extra={
            "app_id": request.metadata.app_id,
            "version": request.metadata.version_name,
            "workspace": str(workspace.root),
        },
    )

    notes: list[str] = []
    official_plan = _plan_side(_list_side(source.list_official, OFFICIAL, notes), OFFICIAL, notes)
    built_plan = _plan_side(_list_side(source.list_built, BUILT, notes), BUILT, notes)
    try:
        check_slice_set_types(official_plan, built_plan)
    except IdentityMismatchError:
        workspace.cleanup()
        raise

    official_set = decompose_plan(official_plan, workspace.side_root(OFFICIAL), reader)
    built_set = decompose_plan(built_plan, workspace.side_root(BUILT), reader)
    for item in (*official_set.slices, *built_set.slices):
        if item.unpack_error:
            notes.append(f"Could not unpack {item.source_path.name}: {item.unpack_error}")

    built_set = align_standalone(
        official_set, built_set, single_artifact=adapter is not None and adapter.single_artifact
    )
    results = compare(
        official_set,
        built_set,
        signing_metadata_dir=settings.signing_metadata_dir,
        max_workers=settings.diff_workers,
    )

    provenance = _check_provenance(
        request, adapter, trust_store, signature_tool, settings.signature_timeout_seconds
    )

    locations: dict[str, str] = {}
    if not settings.cleanup:
        locations = _write_full_diffs(results, workspace)

    if request.profile is None:
        notes.append("No application profile was used; the declared appId was not checked.")

    report = aggregate(
        results,
        provenance,
        ReportMetadata(
            artifact=request.metadata,
            app_hash=_primary_artifact_hash(official_plan),
            slice_order=_slice_order(official_set, built_set),
            full_diff_locations=locations,
            diff_preview_limit=settings.diff_preview_limit,
            notes=tuple(notes),
            workspace=None if settings.cleanup else str(workspace.root),
        ),
    )

    if settings.cleanup:
        workspace.cleanup()

    _logger.info(
        "Verification finished",
        extra={
            "app_id": report.app_id,
            "verdict": report.verdict,
            "substantive": report.substantive_count,
            "absent": len(report.absent_results),
        },
    )
    return report
