# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for application family adapters and their registry.
"""

import sys
from pathlib import Path

import pytest

from rbverify.apps.adapters import (
    AppAdapter,
    FirmwareImageAdapter,
    SingleApkAdapter,
    adapter_for,
    list_families,
    register_adapter,
)
from rbverify.artifacts.decomposer import RawImageReader, ZipArchiveReader
from rbverify.config.schema import AppProfile
from rbverify.errors import ConfigurationError, ExternalToolError


def _profile(**overrides) -> AppProfile:  # type: ignore[no-untyped-def]
    fields = dict(
        app_id="com.example.wallet",
        family="single-apk",
        repo_url="https://github.com/example/wallet",
    )
    fields.update(overrides)
    return AppProfile(**fields)


class TestRegistry:
    def test_every_family_has_an_adapter(self) -> None:
        assert list_families() == [
            "aab-bundletool-split",
            "device-split-apk",
            "firmware-image",
            "single-apk",
        ]

    def test_adapter_for_selects_by_family(self) -> None:
        assert isinstance(adapter_for(_profile()), SingleApkAdapter)
        assert isinstance(adapter_for(_profile(family="firmware-image")), FirmwareImageAdapter)

    def test_duplicate_registration_is_refused(self) -> None:
        with pytest.raises(ValueError, match="already registered"):
            register_adapter(SingleApkAdapter)


class TestCapabilities:
    def test_resolve_tag_uses_tag_format(self) -> None:
        adapter = adapter_for(_profile(tag_format="release-{version}"))
        assert adapter.resolve_tag("1.2.3") == "release-1.2.3"

    def test_archive_readers(self) -> None:
        assert isinstance(adapter_for(_profile()).archive_reader(), ZipArchiveReader)
        assert isinstance(adapter_for(_profile(family="firmware-image")).archive_reader(), RawImageReader)

    def test_locate_single_artifact(self, tmp_path: Path) -> None:
        output = tmp_path / "app" / "build" / "outputs" / "apk" / "release"
        output.mkdir(parents=True)
        (output / "app-release.apk").write_bytes(b"apk")

        found = adapter_for(_profile()).locate_output_artifacts(tmp_path)

        assert found == [output / "app-release.apk"]

    def test_single_artifact_family_refuses_several(self, tmp_path: Path) -> None:
        for name in ("a.apk", "b.apk"):
            (tmp_path / name).write_bytes(b"apk")
        adapter = adapter_for(_profile(artifact_globs=["*.apk"]))

        with pytest.raises(ConfigurationError, match="Expected one"):
            adapter.locate_output_artifacts(tmp_path)

    def test_split_family_collects_all(self, tmp_path: Path) -> None:
        splits = tmp_path / "bundletool-output" / "splits"
        splits.mkdir(parents=True)
        for name in ("base-master.apk", "base-arm64_v8a.apk"):
            (splits / name).write_bytes(b"apk")

        found = adapter_for(_profile(family="aab-bundletool-split")).locate_output_artifacts(tmp_path)

        assert [path.name for path in found] == ["base-arm64_v8a.apk", "base-master.apk"]

    def test_nothing_found_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="No built artifacts"):
            adapter_for(_profile()).locate_output_artifacts(tmp_path)


class TestBuild:
    def test_successful_build(self, tmp_path: Path) -> None:
        command = [sys.executable, "-c", "open('built.txt', 'w').write('ok')"]
        adapter = adapter_for(_profile(build_command=command))

        adapter.build(tmp_path)

        assert (tmp_path / "built.txt").read_text() == "ok"

    def test_failing_build_raises(self, tmp_path: Path) -> None:
        command = [sys.executable, "-c", "import sys; sys.exit(3)"]
        with pytest.raises(ExternalToolError, match="exit code 3"):
            adapter_for(_profile(build_command=command)).build(tmp_path)

    def test_missing_executable_raises(self, tmp_path: Path) -> None:
        command = ["definitely-not-a-real-build-tool-xyz"]
        with pytest.raises(ExternalToolError, match="not found"):
            adapter_for(_profile(build_command=command)).build(tmp_path)

    def test_no_build_command_is_a_configuration_error(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError):
            AppAdapter(_profile()).build(tmp_path)
