# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Type-safe configuration schemas for rbverify.

Every config section gets its own frozen pydantic model. Frozen means once
you create it, you cannot mutate it: configuration is loaded once at process
start and is read-only for the rest of the run.

The models use pydantic v2's ConfigDict with:
  - frozen=True: immutability after construction
  - extra="forbid": unknown fields cause immediate failure
  - validate_default=True: even defaults get type-checked
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

AppFamily = Literal["single-apk", "device-split-apk", "aab-bundletool-split", "firmware-image"]


class GlobalConfig(BaseModel):
    """Cross-cutting settings: schema version and observability."""

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    config_version: str = Field(
        description="Schema version for compatibility tracking, e.g. '1.0.0'"
    )
    log_level: str = Field(
        default="INFO",
        description="One of DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Optional path for file-based log output",
    )

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        upper = value.upper()
        if upper not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level '{value}'")
        return upper


class VerificationConfig(BaseModel):
    """
    Knobs for one verification run.

    The defaults match what the verification scripts this tool replaces did:
    META-INF is the signing metadata directory, and only the first three
    differing paths of a slice are previewed in the text report.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    workspace_root: str = Field(
        default=".",
        description="Directory under which per-run workspaces are created",
    )
    signing_metadata_dir: str = Field(
        default="META-INF",
        min_length=1,
        description="Top-level directory whose contents are signature noise",
    )
    diff_workers: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Size of the worker pool used for per-slice diffing",
    )
    diff_preview_limit: int = Field(
        default=3,
        ge=0,
        description="Differing file paths shown per slice in the text report",
    )
    cleanup: bool = Field(
        default=False,
        description="Delete the workspace after the report is produced",
    )
    trust_store: Optional[str] = Field(
        default=None,
        description="Path to the trust store YAML document",
    )
    signature_timeout_seconds: int = Field(
        default=30,
        ge=1,
        le=600,
        description="Max seconds a single git signature check may take",
    )

    @field_validator("signing_metadata_dir")
    @classmethod
    def _single_component(cls, value: str) -> str:
        if "/" in value or "\\" in value:
            raise ValueError("signing_metadata_dir must be a single directory name")
        return value


class AppProfile(BaseModel):
    """
    The per-application capability record.

    This is everything that varies between supported applications. The
    verification engine itself is shared; a profile only says where the
    source lives, how tags are named, how to build, and where the build
    leaves its artifacts.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    app_id: str = Field(min_length=1, description="Expected application identifier")
    family: AppFamily = Field(description="Artifact family, selects the build adapter")
    repo_url: str = Field(description="Source repository URL, also the trust store key")
    tag_format: str = Field(
        default="v{version}",
        description="Tag naming convention; '{version}' is replaced by the version name",
    )
    build_command: list[str] = Field(
        default_factory=list,
        description="argv of the build, run inside the source checkout",
    )
    artifact_globs: list[str] = Field(
        default_factory=list,
        description="Glob patterns, relative to the source checkout, locating built artifacts",
    )
    build_timeout_seconds: int = Field(
        default=3600,
        ge=1,
        description="Max seconds the build command may run",
    )

    @field_validator("tag_format")
    @classmethod
    def _has_version_placeholder(cls, value: str) -> str:
        if "{version}" not in value:
            raise ValueError("tag_format must contain the '{version}' placeholder")
        try:
            value.format(version="0")
        except (KeyError, IndexError, ValueError) as err:
            raise ValueError(
                f"tag_format may only use the '{{version}}' placeholder, got '{value}' ({err!r})"
            ) from err
        return value


class RbverifyConfig(BaseModel):
    """
    Top-level config container.

    A minimal file only needs `global:`. `verification:` falls back to its
    defaults and `apps:` may be empty when artifacts are verified without a
    registered profile.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    global_config: GlobalConfig = Field(alias="global")
    verification: VerificationConfig = Field(default_factory=VerificationConfig)
    apps: list[AppProfile] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_app_ids(self) -> "RbverifyConfig":
        seen: set[str] = set()
        for profile in self.apps:
            if profile.app_id in seen:
                raise ValueError(f"Duplicate application profile: {profile.app_id}")
            seen.add(profile.app_id)
        return self

    def find_app(self, app_id: str) -> Optional[AppProfile]:
        """Return the profile registered for `app_id`, if any."""
        for profile in self.apps:
            if profile.app_id == app_id:
                return profile
        return None
