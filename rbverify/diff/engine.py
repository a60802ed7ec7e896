# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Diff engine: official vs. rebuilt slice comparison.

For every slice identifier the engine produces exactly one DiffResult:

  MATCHED    — the two content trees are identical
  DIFFERING  — at least one path is missing, extra or has different content
  ABSENT     — the identifier exists on one side only

Each differing path is classified. Paths rooted under the signing metadata
directory (META-INF for APKs) are SIGNATURE_NOISE: two independently signed
builds of identical code always differ there. Everything else is SUBSTANTIVE.
Classification looks at the first path component, never at substrings, so
`assets/META-INF-notes.txt` or `lib/META-INF/x` are substantive.

The verdict is reproducible if and only if no result is ABSENT and no
differing path is SUBSTANTIVE.

Slices are independent, so matched pairs are diffed on a bounded thread pool.
The output order never depends on scheduling: official identifiers first in
their set order, then built-only identifiers in theirs.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Optional, Union

from rbverify.artifacts.decomposer import Slice, SliceSet
from rbverify.artifacts.normalizer import BASE_IDENTIFIER, SlicePlan
from rbverify.errors import IdentityMismatchError
from rbverify.logging.logger import get_logger
from rbverify.utils.filesystem import list_files
from rbverify.utils.hashing import compute_sha256

_logger: logging.Logger = get_logger(__name__)

DEFAULT_SIGNING_METADATA_DIR = "META-INF"

REPRODUCIBLE = "reproducible"
DIFFERENCES_FOUND = "differences found"


class DiffStatus(str, Enum):
    MATCHED = "matched"
    DIFFERING = "differing"
    ABSENT = "absent"


class Direction(str, Enum):
    OFFICIAL_ONLY = "official-only"
    BUILT_ONLY = "built-only"


class Classification(str, Enum):
    SIGNATURE_NOISE = "signature-noise"
    SUBSTANTIVE = "substantive"


class ChangeKind(str, Enum):
    MISSING = "missing"  # only in official
    EXTRA = "extra"  # only in built
    CONTENT = "content"


@dataclass(frozen=True)
class DifferingPath:
    """One path that differs between the two trees of a slice."""

    path: str
    kind: ChangeKind
    classification: Classification

    def describe(self) -> str:
        """A diff --brief style line, e.g. 'Files differ: classes.dex'."""
        if self.kind is ChangeKind.MISSING:
            text = f"Only in official: {self.path}"
        elif self.kind is ChangeKind.EXTRA:
            text = f"Only in built: {self.path}"
        else:
            text = f"Files differ: {self.path}"
        if self.classification is Classification.SIGNATURE_NOISE:
            text += " (signing metadata)"
        return text


@dataclass(frozen=True)
class DiffResult:
    """The comparison outcome for one slice identifier."""

    identifier: str
    status: DiffStatus
    differing_paths: tuple[DifferingPath, ...] = ()
    direction: Optional[Direction] = None

    @property
    def substantive_paths(self) -> list[DifferingPath]:
        return [
            item
            for item in self.differing_paths
            if item.classification is Classification.SUBSTANTIVE
        ]

    @property
    def substantive_count(self) -> int:
        return len(self.substantive_paths)

    @property
    def noise_count(self) -> int:
        return len(self.differing_paths) - self.substantive_count


def classify(path: str, signing_metadata_dir: str = DEFAULT_SIGNING_METADATA_DIR) -> Classification:
    """
    Classify one relative POSIX path.

    A path is signature noise only if its first component is exactly the
    signing metadata directory and something lives beneath it.
    """
    parts = PurePosixPath(path).parts
    if len(parts) > 1 and parts[0] == signing_metadata_dir:
        return Classification.SIGNATURE_NOISE
    return Classification.SUBSTANTIVE


def diff_trees(
    official_root: Path,
    built_root: Path,
    signing_metadata_dir: str = DEFAULT_SIGNING_METADATA_DIR,
) -> list[DifferingPath]:
    """
    Compare two content trees file by file.

    One entry per differing path, sorted by path. Content is compared by
    SHA-256, so the granularity is a file, never a byte offset.
    """
    official_files = set(list_files(official_root))
    built_files = set(list_files(built_root))

    differing: list[DifferingPath] = []
    for rel_path in sorted(official_files | built_files):
        if rel_path not in built_files:
            kind = ChangeKind.MISSING
        elif rel_path not in official_files:
            kind = ChangeKind.EXTRA
        elif compute_sha256(official_root / rel_path) != compute_sha256(built_root / rel_path):
            kind = ChangeKind.CONTENT
        else:
            continue
        differing.append(
            DifferingPath(
                path=rel_path,
                kind=kind,
                classification=classify(rel_path, signing_metadata_dir),
            )
        )
    return differing


def compare_slice(
    official: Slice,
    built: Slice,
    signing_metadata_dir: str = DEFAULT_SIGNING_METADATA_DIR,
) -> DiffResult:
    """Diff one matched pair of slices."""
    differing = diff_trees(official.content_root, built.content_root, signing_metadata_dir)
    if not differing and (official.unpack_error or built.unpack_error):
        # Nothing was unpacked to compare; fall back to the artifact bytes.
        if compute_sha256(official.source_path) != compute_sha256(built.source_path):
            differing = [
                DifferingPath(
                    path=official.source_path.name,
                    kind=ChangeKind.CONTENT,
                    classification=Classification.SUBSTANTIVE,
                )
            ]
    status = DiffStatus.DIFFERING if differing else DiffStatus.MATCHED
    result = DiffResult(
        identifier=official.identifier,
        status=status,
        differing_paths=tuple(differing),
    )
    _logger.debug(
        "Slice compared",
        extra={
            "slice": official.identifier,
            "status": status.value,
            "substantive": result.substantive_count,
            "signature_noise": result.noise_count,
        },
    )
    return result


def check_slice_set_types(
    official: Union[SliceSet, SlicePlan], built: Union[SliceSet, SlicePlan]
) -> None:
    """
    Refuse to compare a standalone artifact against a split set.
    Works on plans too, so the check can run before anything is unpacked.

    A universal APK and a set of split APKs contain the same code laid out
    differently. Diffing them would report every file as a difference and
    say nothing about reproducibility.

    Raises:
        IdentityMismatchError: If one side is a single non-split slice and the
            other side has more than one slice.
    """
    for single, other in ((official, built), (built, official)):
        if single.is_standalone and len(other.slices) > 1:
            raise IdentityMismatchError(
                f"The {single.role} side is a single non-split artifact "
                f"({single.slices[0].source_path.name}) but the {other.role} side has "
                f"{len(other.slices)} split slices ({', '.join(other.identifiers)})",
                remediation=(
                    "Compare like with like: a universal artifact against a universal build, "
                    "or device splits against bundletool splits of the same build."
                ),
            )


def _pairs_as_single(item: Slice) -> bool:
    return not item.from_split or item.identifier == BASE_IDENTIFIER


def align_standalone(official: SliceSet, built: SliceSet, single_artifact: bool = False) -> SliceSet:
    """
    Pair two standalone artifacts regardless of their file names.

    `wallet-1.2.apk` and `app-release.apk` normalize to different stems, but
    when each side holds exactly one universal artifact they are the same
    slice. The built slice is re-keyed to the official identifier.

    A lone `base.apk` counts as universal here: pulling a non-split app from
    a device yields exactly that file, while the rebuild is named after the
    project (`Electrum-4.5.5.0-release.apk`).

    Args:
        official: The official slice set.
        built: The built slice set.
        single_artifact: The app family ships one artifact per release, so a
            single slice on each side is always the same slice.
    """
    if len(official.slices) != 1 or len(built.slices) != 1:
        return built
    official_slice = official.slices[0]
    built_slice = built.slices[0]
    if not single_artifact and not (_pairs_as_single(official_slice) and _pairs_as_single(built_slice)):
        return built
    official_id = official_slice.identifier
    if built_slice.identifier == official_id:
        return built
    _logger.debug(
        "Pairing standalone artifacts",
        extra={"official": official_id, "built": built_slice.identifier},
    )
    return SliceSet(
        role=built.role,
        slices=(
            Slice(
                identifier=official_id,
                source_path=built_slice.source_path,
                content_root=built_slice.content_root,
                from_split=built_slice.from_split,
                unpack_error=built_slice.unpack_error,
            ),
        ),
    )


def compare(
    official_set: SliceSet,
    built_set: SliceSet,
    signing_metadata_dir: str = DEFAULT_SIGNING_METADATA_DIR,
    max_workers: int = 4,
) -> list[DiffResult]:
    """
    Compare two slice sets.

    Args:
        official_set: Slices unpacked from the official release.
        built_set: Slices unpacked from the rebuild.
        signing_metadata_dir: Directory name whose contents are signature noise.
        max_workers: Upper bound on concurrent slice diffs.

    Returns:
        One DiffResult per identifier: official order first, then built-only.
    """
    pairs: list[tuple[Slice, Slice]] = []
    for official in official_set.slices:
        built = built_set.get(official.identifier)
        if built is not None:
            pairs.append((official, built))

    matched: dict[str, DiffResult] = {}
    if pairs:
        workers = max(1, min(max_workers, len(pairs)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            outcomes = executor.map(
                lambda pair: compare_slice(pair[0], pair[1], signing_metadata_dir),
                pairs,
            )
            for outcome in outcomes:
                matched[outcome.identifier] = outcome

    results: list[DiffResult] = []
    for official in official_set.slices:
        if official.identifier in matched:
            results.append(matched[official.identifier])
        else:
            results.append(
                DiffResult(
                    identifier=official.identifier,
                    status=DiffStatus.ABSENT,
                    direction=Direction.OFFICIAL_ONLY,
                )
            )

    official_ids = set(official_set.identifiers)
    for built in built_set.slices:
        if built.identifier not in official_ids:
            results.append(
                DiffResult(
                    identifier=built.identifier,
                    status=DiffStatus.ABSENT,
                    direction=Direction.BUILT_ONLY,
                )
            )

    _logger.info(
        "Slice sets compared",
        extra={
            "slices": len(results),
            "absent": sum(1 for r in results if r.status is DiffStatus.ABSENT),
            "substantive": sum(r.substantive_count for r in results),
        },
    )
    return results


def decide_verdict(results: list[DiffResult]) -> str:
    """
    reproducible iff nothing is ABSENT and no differing path is SUBSTANTIVE.

    An empty result list means nothing was compared, which proves nothing.
    """
    if not results:
        return DIFFERENCES_FOUND
    for result in results:
        if result.status is DiffStatus.ABSENT or result.substantive_count > 0:
            return DIFFERENCES_FOUND
    return REPRODUCIBLE
