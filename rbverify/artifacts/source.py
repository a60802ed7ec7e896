# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Where official and rebuilt artifacts come from.

Fetching artifacts (from a phone, a release page or a build container) is not
this package's job. By the time verification starts they sit on disk, either
as one file or as a directory of split files, and an ArtifactSource just
lists them.
"""

from pathlib import Path
from typing import Any, Optional, Protocol

import yaml

from rbverify.artifacts.decomposer import ArtifactMetadata
from rbverify.errors import ConfigurationError

DEFAULT_PATTERNS: tuple[str, ...] = ("*.apk",)


class ArtifactSource(Protocol):
    def list_official(self) -> list[Path]: ...

    def list_built(self) -> list[Path]: ...


def _list_side(location: Path, patterns: tuple[str, ...], role: str) -> list[Path]:
    if location.is_file():
        return [location]
    if not location.is_dir():
        raise ConfigurationError(
            f"{role} artifact location not found: {location}",
            remediation=f"Point --{role} at an artifact file or a directory of split artifacts.",
        )
    found: set[Path] = set()
    for pattern in patterns:
        found.update(path for path in location.glob(pattern) if path.is_file())
    return sorted(found)


class DirectoryArtifactSource:
    """
    Lists artifacts from a file or a directory per side.

    A file is taken as-is (a universal APK or a firmware image). A directory
    contributes every file matching one of `patterns`, non-recursively.
    """

    def __init__(
        self,
        official: Path,
        built: Path,
        patterns: tuple[str, ...] = DEFAULT_PATTERNS,
    ) -> None:
        self.official = official
        self.built = built
        self.patterns = patterns

    def list_official(self) -> list[Path]:
        return _list_side(self.official, self.patterns, "official")

    def list_built(self) -> list[Path]:
        return _list_side(self.built, self.patterns, "built")


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def read_declared_metadata(path: Path, app_id: Optional[str] = None) -> ArtifactMetadata:
    """
    Read the declared release identity from a YAML file.

    Two shapes are accepted. A flat mapping:

        appId: com.example.wallet
        versionName: 1.2.3
        versionCode: 123
        signer: 3a1b...

    or the `apktool.yml` that apktool writes next to a decoded APK, where the
    version lives under `versionInfo`. apktool.yml does not carry the
    application id, so it must then come from `app_id`.

    Raises:
        ConfigurationError: If the file is unreadable or the identity is incomplete.
    """
    try:
        # apktool.yml starts with a "!!brut.androlib..." tag that safe_load rejects.
        text = path.read_text(encoding="utf-8")
        lines = [line for line in text.splitlines() if not line.startswith("!!")]
        data = yaml.safe_load("\n".join(lines))
    except (OSError, yaml.YAMLError) as err:
        raise ConfigurationError(f"Cannot read release metadata {path}: {err}") from err

    if not isinstance(data, dict):
        raise ConfigurationError(f"Release metadata {path} is not a YAML mapping")

    version_info = data.get("versionInfo") or {}
    metadata = ArtifactMetadata(
        app_id=_as_text(data.get("appId")) or _as_text(app_id),
        version_name=_as_text(data.get("versionName")) or _as_text(version_info.get("versionName")),
        version_code=_as_text(data.get("versionCode")) or _as_text(version_info.get("versionCode")),
        signer=_as_text(data.get("signer")),
    )

    for label, value in (
        ("appId", metadata.app_id),
        ("versionName", metadata.version_name),
        ("versionCode", metadata.version_code),
    ):
        if not value:
            raise ConfigurationError(f"{label} could not be determined from {path}")

    return metadata
