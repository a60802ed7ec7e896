# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Artifact name normalization.

Official and rebuilt artifacts of the same release arrive under different
naming conventions. A phone hands back `base.apk` and `split_config.arm64_v8a.apk`;
bundletool produces `base-master.apk` and `base-arm64_v8a.apk`. Both describe
the same two slices, `base` and `arm64_v8a`, and this module is where that
equivalence is established.

Rules, applied to the file's base name:
  base.apk, base-master.apk   -> base
  split_config.<X>.apk        -> <X>
  base-<X>.apk (X != master)  -> <X>
  anything else               -> strip a leading "base-" and a trailing ".apk"

Only the first three rules describe split artifacts. A name that falls
through to the last rule is a standalone artifact (a universal APK or a
firmware image) and the plan remembers that, because comparing a standalone
artifact against a split set is an identity mismatch, not a diff.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from rbverify.errors import ConfigurationError
from rbverify.logging.logger import get_logger

_logger: logging.Logger = get_logger(__name__)

_APK_SUFFIX = ".apk"
_BASE_PREFIX = "base-"
_SPLIT_CONFIG_PREFIX = "split_config."
_BASE_NAMES: frozenset[str] = frozenset({"base.apk", "base-master.apk"})

# Identifier of the base split; a lone base.apk is what a device yields for a non-split app.
BASE_IDENTIFIER = "base"


@dataclass(frozen=True)
class Rejected:
    """A raw name that could not be turned into an identifier."""

    raw_name: str
    reason: str


@dataclass(frozen=True)
class PlannedSlice:
    """One artifact and the identifier it will be compared under."""

    identifier: str
    source_path: Path
    from_split: bool


@dataclass(frozen=True)
class SlicePlan:
    """
    The normalized view of one side's artifact list.

    `slices` keeps the input order (sorted by path), so iterating a plan is
    deterministic. `rejected` and `collisions` are what got left out and why.
    """

    role: str
    slices: tuple[PlannedSlice, ...] = ()
    rejected: tuple[Rejected, ...] = ()
    collisions: tuple[str, ...] = ()

    @property
    def identifiers(self) -> list[str]:
        return [planned.identifier for planned in self.slices]

    @property
    def is_standalone(self) -> bool:
        """Exactly one slice, and it did not come from a split-named artifact."""
        return len(self.slices) == 1 and not self.slices[0].from_split


class SliceCollisionError(ConfigurationError):
    """Two artifacts on one side claim the same slice identifier."""

    def __init__(self, message: str, remediation: str, plan: SlicePlan) -> None:
        super().__init__(message, remediation=remediation)
        self.plan = plan


def _is_split_name(name: str) -> bool:
    if name in _BASE_NAMES:
        return True
    if name.startswith(_SPLIT_CONFIG_PREFIX) and name.endswith(_APK_SUFFIX):
        return True
    return name.startswith(_BASE_PREFIX) and name.endswith(_APK_SUFFIX)


def normalize(raw_name: str) -> Union[str, Rejected]:
    """
    Map a raw artifact filename to its canonical slice identifier.

    Directory components are ignored; only the base name matters.

    Args:
        raw_name: A filename or path, e.g. "splits/base-arm64_v8a.apk".

    Returns:
        The identifier string, or a Rejected record when nothing usable is left.
    """
    name = raw_name.replace("\\", "/").rsplit("/", maxsplit=1)[-1].strip()
    if not name:
        return Rejected(raw_name=raw_name, reason="empty file name")

    if name in _BASE_NAMES:
        return BASE_IDENTIFIER

    if name.startswith(_SPLIT_CONFIG_PREFIX) and name.endswith(_APK_SUFFIX):
        stem = name[len(_SPLIT_CONFIG_PREFIX):-len(_APK_SUFFIX)]
    else:
        stem = name
        if stem.startswith(_BASE_PREFIX):
            stem = stem[len(_BASE_PREFIX):]
        if stem.endswith(_APK_SUFFIX):
            stem = stem[:-len(_APK_SUFFIX)]

    # "." and ".." would address the side's root or its parent once used as a
    # directory name under the workspace.
    if not stem or stem in {".", ".."}:
        return Rejected(raw_name=raw_name, reason=f"no usable stem in '{name}'")

    return stem


def build_slice_plan(paths: list[Path], role: str) -> SlicePlan:
    """
    Normalize one side's artifact paths into a slice plan.

    Paths are processed in sorted order. Rejected names are logged and left
    out: they are neither present nor absent as far as matching goes.

    Args:
        paths: Artifact files on this side.
        role: "official" or "built", used in messages.

    Returns:
        The plan for this side.

    Raises:
        SliceCollisionError: If two distinct names normalize to the same identifier.
            The error carries the plan with the first artifact kept, so callers
            that treat collisions as recoverable can go on.
    """
    slices: list[PlannedSlice] = []
    rejected: list[Rejected] = []
    collisions: list[str] = []
    owners: dict[str, Path] = {}

    for path in sorted(paths):
        result = normalize(path.name)
        if isinstance(result, Rejected):
            _logger.warning(
                "Artifact name rejected",
                extra={"role": role, "artifact": str(path), "reason": result.reason},
            )
            rejected.append(result)
            continue

        if result in owners:
            collisions.append(
                f"{role} artifacts '{owners[result].name}' and '{path.name}' "
                f"both normalize to slice '{result}'"
            )
            continue

        owners[result] = path
        slices.append(
            PlannedSlice(identifier=result, source_path=path, from_split=_is_split_name(path.name))
        )

    plan = SlicePlan(
        role=role,
        slices=tuple(slices),
        rejected=tuple(rejected),
        collisions=tuple(collisions),
    )

    if collisions:
        raise SliceCollisionError(
            "; ".join(collisions),
            remediation=f"Remove the duplicate {role} artifacts so each slice appears once.",
            plan=plan,
        )

    _logger.debug(
        "Slice plan built",
        extra={"role": role, "slices": plan.identifiers, "rejected": len(rejected)},
    )
    return plan
