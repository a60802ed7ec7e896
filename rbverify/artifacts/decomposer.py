# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Slice decomposition: turning artifacts into comparable content trees.

Unpacking itself is delegated to an ArchiveReader. This module owns only the
layout of the run's workspace:

    <workspace>/
        official/<identifier>/...   unpacked official slices
        built/<identifier>/...      unpacked rebuilt slices
        results/                    full diff listings

The two sides live under disjoint roots with identical substructure, so a
relative path inside one slice names the same entry on the other side.
Source artifacts are only ever read.
"""

import logging
import shutil
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from rbverify.artifacts.normalizer import SlicePlan
from rbverify.errors import ArchiveError, ConfigurationError, WorkspaceConflictError
from rbverify.logging.logger import get_logger
from rbverify.utils.filesystem import is_within

_logger: logging.Logger = get_logger(__name__)

OFFICIAL = "official"
BUILT = "built"
RAW_IMAGE_ENTRY = "image.bin"


@dataclass(frozen=True)
class Artifact:
    """A release artifact on disk and which side it belongs to."""

    path: Path
    role: str


@dataclass(frozen=True)
class ArtifactMetadata:
    """What the release declares about itself. Filled in by collaborators."""

    app_id: str
    version_name: str
    version_code: str
    signer: str = ""


@dataclass(frozen=True)
class Slice:
    """One unpacked, comparable unit of a release."""

    identifier: str
    source_path: Path
    content_root: Path
    from_split: bool = True
    unpack_error: Optional[str] = None


@dataclass(frozen=True)
class SliceSet:
    """All slices on one side of a run, in plan order."""

    role: str
    slices: tuple[Slice, ...] = ()

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for item in self.slices:
            if item.identifier in seen:
                raise ConfigurationError(
                    f"Duplicate slice identifier '{item.identifier}' in {self.role} set"
                )
            seen.add(item.identifier)

    @property
    def identifiers(self) -> list[str]:
        return [item.identifier for item in self.slices]

    def get(self, identifier: str) -> Optional[Slice]:
        for item in self.slices:
            if item.identifier == identifier:
                return item
        return None

    @property
    def is_standalone(self) -> bool:
        return len(self.slices) == 1 and not self.slices[0].from_split


class ArchiveReader(Protocol):
    """Unpacks one artifact into a directory. Raises ArchiveError on unreadable input."""

    def unpack(self, path: Path, dest_dir: Path) -> None: ...


class ZipArchiveReader:
    """
    Reads APK and AAB split archives, which are plain zip files.

    Entries that would land outside the destination (absolute names or `..`
    components) are refused rather than silently skipped: an archive carrying
    them is not something we can meaningfully compare.
    """

    def unpack(self, path: Path, dest_dir: Path) -> None:
        try:
            with zipfile.ZipFile(path) as archive:
                for member in archive.infolist():
                    target = dest_dir / member.filename
                    if not is_within(target, dest_dir):
                        raise ArchiveError(
                            f"Archive entry escapes destination: {member.filename} in {path}"
                        )
                archive.extractall(dest_dir)
        except zipfile.BadZipFile as err:
            raise ArchiveError(f"Not a readable zip archive: {path}: {err}") from err
        except OSError as err:
            raise ArchiveError(f"Cannot unpack {path}: {err}") from err


class RawImageReader:
    """
    Firmware images are compared as a single opaque file.

    The image is copied under a fixed entry name so the official and rebuilt
    trees line up regardless of how either file was named.
    """

    def unpack(self, path: Path, dest_dir: Path) -> None:
        try:
            shutil.copyfile(path, dest_dir / RAW_IMAGE_ENTRY)
        except OSError as err:
            raise ArchiveError(f"Cannot read firmware image {path}: {err}") from err


class Workspace:
    """
    The disk area owned by exactly one verification run.

    Creating a workspace that already exists is refused. Leftovers from a
    previous run would otherwise be diffed as if they were fresh output.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    @classmethod
    def create(cls, root: Path) -> "Workspace":
        """
        Claim `root` for this run.

        Raises:
            WorkspaceConflictError: If the directory already exists.
        """
        if root.exists():
            raise WorkspaceConflictError(
                f"Workspace already exists: {root}. It may contain artifacts from a previous run.",
                remediation=f"To proceed, remove the existing workspace:\n  rm -rf {root}",
            )
        root.mkdir(parents=True)
        for sub in (OFFICIAL, BUILT, "results"):
            (root / sub).mkdir()
        _logger.info("Workspace created", extra={"workspace": str(root)})
        return cls(root)

    def side_root(self, role: str) -> Path:
        return self.root / role

    @property
    def results_dir(self) -> Path:
        return self.root / "results"

    def cleanup(self) -> None:
        shutil.rmtree(self.root)
        _logger.info("Workspace removed", extra={"workspace": str(self.root)})


def decompose(artifact: Artifact, identifier: str, dest_root: Path, reader: ArchiveReader) -> Path:
    """
    Unpack one artifact into `<dest_root>/<identifier>`.

    Args:
        artifact: The artifact to unpack.
        identifier: Its normalized slice identifier.
        dest_root: The side's root inside the workspace.
        reader: The archive-reading capability for this artifact family.

    Returns:
        The slice's content root.

    Raises:
        ArchiveError: If the reader cannot unpack the artifact.
    """
    content_root = dest_root / identifier
    if not is_within(content_root, dest_root) or content_root.resolve() == dest_root.resolve():
        raise ArchiveError(f"Slice identifier '{identifier}' does not name a directory under {dest_root}")
    content_root.mkdir(parents=True, exist_ok=False)
    reader.unpack(artifact.path, content_root)
    return content_root


def decompose_plan(plan: SlicePlan, dest_root: Path, reader: ArchiveReader) -> SliceSet:
    """
    Unpack every planned slice of one side.

    An unreadable artifact does not stop the run. Its slice is kept with an
    empty content tree and the error recorded, so the diff shows every one of
    its counterpart's files as missing and the report says why.
    """
    slices: list[Slice] = []
    for planned in plan.slices:
        artifact = Artifact(path=planned.source_path, role=plan.role)
        content_root = dest_root / planned.identifier
        unpack_error: Optional[str] = None
        try:
            content_root = decompose(artifact, planned.identifier, dest_root, reader)
        except ArchiveError as err:
            unpack_error = str(err)
            # Drop whatever a partial extraction left behind.
            if content_root.exists():
                shutil.rmtree(content_root)
            content_root.mkdir(parents=True)
            _logger.warning(
                "Artifact could not be unpacked",
                extra={"role": plan.role, "slice": planned.identifier, "error": unpack_error},
            )

        slices.append(
            Slice(
                identifier=planned.identifier,
                source_path=planned.source_path,
                content_root=content_root,
                from_split=planned.from_split,
                unpack_error=unpack_error,
            )
        )
        _logger.debug(
            "Slice decomposed",
            extra={"role": plan.role, "slice": planned.identifier, "root": str(content_root)},
        )

    return SliceSet(role=plan.role, slices=tuple(slices))
