# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Application family adapters.

The verification engine is the same for every application. What differs is
captured by an AppProfile (see rbverify.config.schema) and interpreted by the
adapter for the profile's family:

  single-apk            one universal APK per side
  device-split-apk      split APKs pulled from a phone vs. bundletool splits
  aab-bundletool-split  an AAB built from source, split by bundletool
  firmware-image        one opaque firmware image per side

Each adapter provides the same capabilities: resolve the tag for a version,
run the build, locate the built artifacts, and pick the ArchiveReader that
turns its artifacts into content trees.

Adapters are looked up by family name in a registry populated once at import
time by `_register_builtins()`.
"""

import logging
import subprocess
from pathlib import Path

from rbverify.artifacts.decomposer import ArchiveReader, RawImageReader, ZipArchiveReader
from rbverify.config.schema import AppProfile
from rbverify.errors import ConfigurationError, ExternalToolError
from rbverify.logging.logger import get_logger

_logger: logging.Logger = get_logger(__name__)


class AppAdapter:
    """Base adapter: behaviour shared by every family."""

    family: str = ""
    default_artifact_globs: tuple[str, ...] = ()
    artifact_patterns: tuple[str, ...] = ("*.apk",)
    single_artifact: bool = False

    def __init__(self, profile: AppProfile) -> None:
        self.profile = profile

    def resolve_tag(self, version: str) -> str:
        """The tag name the project uses for `version`."""
        return self.profile.tag_format.format(version=version)

    def archive_reader(self) -> ArchiveReader:
        return ZipArchiveReader()

    def build(self, source_dir: Path) -> None:
        """
        Run the profile's build command inside `source_dir`.

        The command is an argv list, never a shell string. Output is captured
        and logged at DEBUG so a failing build can be diagnosed from the log.

        Raises:
            ConfigurationError: If the profile has no build command.
            ExternalToolError: If the build cannot start, times out or fails.
        """
        command = self.profile.build_command
        if not command:
            raise ConfigurationError(
                f"No build command configured for {self.profile.app_id}",
                remediation="Add build_command to the application profile.",
            )

        _logger.info(
            "Build started",
            extra={"app_id": self.profile.app_id, "command": command, "source_dir": str(source_dir)},
        )
        try:
            result = subprocess.run(
                command,
                cwd=str(source_dir),
                capture_output=True,
                text=True,
                timeout=self.profile.build_timeout_seconds,
                check=False,
            )
        except FileNotFoundError as err:
            raise ExternalToolError(f"Build executable not found: {command[0]}") from err
        except subprocess.TimeoutExpired as err:
            raise ExternalToolError(
                f"Build timed out after {self.profile.build_timeout_seconds}s"
            ) from err

        _logger.debug(
            "Build output",
            extra={"stdout": result.stdout[-4000:], "stderr": result.stderr[-4000:]},
        )
        if result.returncode != 0:
            raise ExternalToolError(
                f"Build failed with exit code {result.returncode}: {result.stderr.strip()[-500:]}"
            )
        _logger.info("Build finished", extra={"app_id": self.profile.app_id})

    def locate_output_artifacts(self, source_dir: Path) -> list[Path]:
        """
        Find the built artifacts under `source_dir`.

        Raises:
            ConfigurationError: If nothing is found, or a single-artifact family
                finds more than one.
        """
        patterns = self.profile.artifact_globs or list(self.default_artifact_globs)
        found: set[Path] = set()
        for pattern in patterns:
            found.update(path for path in source_dir.glob(pattern) if path.is_file())
        artifacts = sorted(found)

        if not artifacts:
            raise ConfigurationError(
                f"No built artifacts found under {source_dir} for patterns {patterns}",
                remediation="Check the build output location in artifact_globs.",
            )
        if self.single_artifact and len(artifacts) > 1:
            raise ConfigurationError(
                f"Expected one built artifact for {self.profile.app_id}, found {len(artifacts)}: "
                f"{', '.join(path.name for path in artifacts)}",
                remediation="Narrow artifact_globs so it matches exactly one file.",
            )
        return artifacts


class SingleApkAdapter(AppAdapter):
    family = "single-apk"
    default_artifact_globs = ("**/build/outputs/apk/release/*.apk",)
    single_artifact = True


class DeviceSplitApkAdapter(AppAdapter):
    family = "device-split-apk"
    default_artifact_globs = ("**/splits/*.apk",)


class AabBundletoolSplitAdapter(AppAdapter):
    family = "aab-bundletool-split"
    default_artifact_globs = ("**/bundletool-output/splits/*.apk",)


class FirmwareImageAdapter(AppAdapter):
    family = "firmware-image"
    default_artifact_globs = ("**/build/**/*.bin",)
    artifact_patterns = ("*.bin", "*.img")
    single_artifact = True

    def archive_reader(self) -> ArchiveReader:
        return RawImageReader()


_ADAPTER_REGISTRY: dict[str, type[AppAdapter]] = {}


def register_adapter(cls: type[AppAdapter]) -> None:
    """
    Register an adapter class under its family name.

    Raises:
        ValueError: If the family is already registered.
    """
    if cls.family in _ADAPTER_REGISTRY:
        raise ValueError(
            f"Family '{cls.family}' is already registered to {_ADAPTER_REGISTRY[cls.family].__name__}"
        )
    _ADAPTER_REGISTRY[cls.family] = cls


def adapter_for(profile: AppProfile) -> AppAdapter:
    """
    Instantiate the adapter for a profile's family.

    Raises:
        KeyError: If the family has no registered adapter.
    """
    if profile.family not in _ADAPTER_REGISTRY:
        available = sorted(_ADAPTER_REGISTRY.keys())
        raise KeyError(f"Unknown application family '{profile.family}'. Available: {available}")
    return _ADAPTER_REGISTRY[profile.family](profile)


def list_families() -> list[str]:
    return sorted(_ADAPTER_REGISTRY.keys())


def _register_builtins() -> None:
    for cls in (SingleApkAdapter, DeviceSplitApkAdapter, AabBundletoolSplitAdapter, FirmwareImageAdapter):
        register_adapter(cls)


_register_builtins()
