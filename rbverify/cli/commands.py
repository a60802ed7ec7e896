# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Subcommand handlers for the rbverify CLI.

Each function here corresponds to one CLI subcommand and returns its exit
code. Diagnostics go through the structured logger (stderr); only the
report itself, and the plain listings of `build`, `trust list` and
`normalize`, are written to stdout.
"""

import argparse
import logging
import platform
import sys
from pathlib import Path
from typing import Optional

from rbverify.apps.adapters import adapter_for, list_families
from rbverify.artifacts.decomposer import ArtifactMetadata
from rbverify.artifacts.normalizer import Rejected, normalize
from rbverify.artifacts.source import read_declared_metadata
from rbverify.cli.exit_codes import (
    CONFIG_ERROR,
    DIFFERENCES_FOUND,
    REPRODUCIBLE,
    RUNTIME_ERROR,
    SUCCESS,
    UNSUPPORTED_IDENTITY,
    WORKSPACE_CONFLICT,
)
from rbverify.config.exceptions import ConfigError
from rbverify.config.loader import default_config, load_config
from rbverify.config.schema import AppProfile, RbverifyConfig
from rbverify.diff.engine import REPRODUCIBLE as REPRODUCIBLE_VERDICT
from rbverify.errors import (
    ConfigurationError,
    ExternalToolError,
    IdentityMismatchError,
    VerifierError,
    WorkspaceConflictError,
)
from rbverify.logging.logger import add_package_log_file, get_logger, set_package_log_level
from rbverify.pipeline import VerificationRequest, run_verification
from rbverify.provenance.truststore import TrustStore, add_trusted_key, load_trust_store
from rbverify.report.renderer import render_json, render_text


def _load_and_bootstrap(
    args: argparse.Namespace,
    command_name: str,
) -> tuple[int, Optional[RbverifyConfig], logging.Logger]:
    """
    The shared setup every command needs: load config, apply the log level.

    Returns a tuple of (exit_code, config, logger). If exit_code is not SUCCESS,
    the caller should return it immediately.
    """
    logger = get_logger(f"rbverify.cli.{command_name}", log_level=args.log_level or "INFO")

    config = default_config()
    if args.config is not None:
        try:
            config = load_config(Path(args.config))
        except ConfigError as err:
            logger.error(
                "Configuration error",
                extra={"command": command_name, "error": str(err)},
            )
            return CONFIG_ERROR, None, logger
    else:
        logger.debug(
            "No config provided, running with defaults",
            extra={"command": command_name},
        )

    log_level = args.log_level or config.global_config.log_level
    set_package_log_level(log_level)
    if config.global_config.log_file:
        add_package_log_file(Path(config.global_config.log_file), log_level=log_level)

    return SUCCESS, config, logger


def _log_fatal(logger: logging.Logger, message: str, err: VerifierError) -> None:
    logger.error(
        message,
        extra={"error": err.args[0] if err.args else str(err), "remediation": err.remediation},
    )


def _resolve_trust_store(
    args: argparse.Namespace, config: RbverifyConfig, logger: logging.Logger
) -> Optional[TrustStore]:
    """Load the trust store once; None means the file exists but is broken."""
    path = getattr(args, "trust_store", None) or config.verification.trust_store
    if path is None:
        logger.debug("No trust store configured; every signing key is unknown")
        return TrustStore.empty()
    try:
        return load_trust_store(Path(path))
    except ConfigError as err:
        logger.error("Trust store error", extra={"path": str(path), "error": str(err)})
        return None


def _declared_metadata(args: argparse.Namespace) -> ArtifactMetadata:
    """
    Build the declared identity from --metadata and the identity flags.

    Flags fill in what the metadata file leaves out.

    Raises:
        ConfigurationError: If the file is unreadable or no appId is known.
    """
    if args.metadata is not None:
        declared = read_declared_metadata(Path(args.metadata), app_id=args.app_id)
        return ArtifactMetadata(
            app_id=declared.app_id,
            version_name=declared.version_name or (args.version_name or ""),
            version_code=declared.version_code or (args.version_code or ""),
            signer=declared.signer or (args.signer or ""),
        )

    if not args.app_id:
        raise ConfigurationError(
            "No appId given",
            remediation="Pass --app-id, or --metadata pointing at the release metadata.",
        )
    return ArtifactMetadata(
        app_id=args.app_id,
        version_name=args.version_name or "",
        version_code=args.version_code or "",
        signer=args.signer or "",
    )


def _select_profile(
    config: RbverifyConfig, app_id: str, logger: logging.Logger
) -> tuple[int, Optional[AppProfile]]:
    """
    Look up the profile for `app_id`.

    Without configured profiles the run is generic. With profiles, an
    unknown appId is refused: the tool does not know how that app is built.
    """
    profile = config.find_app(app_id)
    if profile is None and config.apps:
        logger.error(
            "Unknown appId",
            extra={"app_id": app_id, "known": sorted(p.app_id for p in config.apps)},
        )
        return UNSUPPORTED_IDENTITY, None
    return SUCCESS, profile


def handle_verify(args: argparse.Namespace) -> int:
    """Compare official and rebuilt artifacts and print the results block."""
    exit_code, config, logger = _load_and_bootstrap(args, "verify")
    if exit_code != SUCCESS:
        return exit_code
    assert config is not None

    trust_store = _resolve_trust_store(args, config, logger)
    if trust_store is None:
        return CONFIG_ERROR

    try:
        metadata = _declared_metadata(args)
    except ConfigurationError as err:
        _log_fatal(logger, "Release metadata error", err)
        return CONFIG_ERROR

    exit_code, profile = _select_profile(config, args.app_id or metadata.app_id, logger)
    if exit_code != SUCCESS:
        return exit_code

    settings = config.verification
    if args.cleanup:
        settings = settings.model_copy(update={"cleanup": True})

    if args.workspace is not None:
        workspace = Path(args.workspace)
    else:
        run_name = f"verify_{metadata.app_id}_{metadata.version_name or 'unversioned'}"
        workspace = Path(settings.workspace_root) / run_name

    request = VerificationRequest(
        official=Path(args.official),
        built=Path(args.built),
        metadata=metadata,
        workspace=workspace,
        revision=args.revision,
        repo_dir=Path(args.repo_dir) if args.repo_dir is not None else None,
        profile=profile,
    )

    try:
        report = run_verification(request, settings, trust_store)
    except IdentityMismatchError as err:
        _log_fatal(logger, "Artifact identity mismatch", err)
        return UNSUPPORTED_IDENTITY
    except WorkspaceConflictError as err:
        _log_fatal(logger, "Workspace conflict", err)
        return WORKSPACE_CONFLICT
    except VerifierError as err:
        _log_fatal(logger, "Verification failed", err)
        return RUNTIME_ERROR
    except Exception as err:
        logger.error("Verification failed", extra={"error": str(err)}, exc_info=True)
        return RUNTIME_ERROR

    sys.stdout.write(render_json(report) if args.json else render_text(report))
    sys.stdout.flush()

    if report.verdict == REPRODUCIBLE_VERDICT:
        return REPRODUCIBLE
    return DIFFERENCES_FOUND


def handle_build(args: argparse.Namespace) -> int:
    """Run an application's build command and list the artifacts it produced."""
    exit_code, config, logger = _load_and_bootstrap(args, "build")
    if exit_code != SUCCESS:
        return exit_code
    assert config is not None

    profile = config.find_app(args.app_id)
    if profile is None:
        logger.error(
            "Unknown appId",
            extra={"app_id": args.app_id, "known": sorted(p.app_id for p in config.apps)},
        )
        return UNSUPPORTED_IDENTITY

    adapter = adapter_for(profile)
    source_dir = Path(args.source_dir)
    logger.info(
        "Building release",
        extra={"app_id": profile.app_id, "tag": adapter.resolve_tag(args.version), "family": profile.family},
    )

    try:
        adapter.build(source_dir)
        artifacts = adapter.locate_output_artifacts(source_dir)
    except ConfigurationError as err:
        _log_fatal(logger, "Build configuration error", err)
        return CONFIG_ERROR
    except ExternalToolError as err:
        _log_fatal(logger, "Build failed", err)
        return RUNTIME_ERROR

    for artifact in artifacts:
        sys.stdout.write(f"{artifact}\n")
    return SUCCESS


def handle_trust_add_key(args: argparse.Namespace) -> int:
    """Trust a signing key for a repository. The only writer of the trust store."""
    exit_code, _config, logger = _load_and_bootstrap(args, "trust")
    if exit_code != SUCCESS:
        return exit_code

    try:
        added = add_trusted_key(Path(args.trust_store), args.repo, args.key)
    except (ConfigError, ValueError) as err:
        logger.error("Cannot update trust store", extra={"path": args.trust_store, "error": str(err)})
        return CONFIG_ERROR
    except OSError as err:
        logger.error("Cannot write trust store", extra={"path": args.trust_store, "error": str(err)})
        return RUNTIME_ERROR

    if not added:
        logger.info("Nothing to do", extra={"repo": args.repo, "key": args.key})
    return SUCCESS


def handle_trust_list(args: argparse.Namespace) -> int:
    """Print every trusted key, one `<repo> <key>` pair per line."""
    exit_code, _config, logger = _load_and_bootstrap(args, "trust")
    if exit_code != SUCCESS:
        return exit_code

    try:
        store = load_trust_store(Path(args.trust_store))
    except ConfigError as err:
        logger.error("Trust store error", extra={"path": args.trust_store, "error": str(err)})
        return CONFIG_ERROR

    for repo_url in store.repositories():
        for key_id in sorted(store.keys_for(repo_url)):
            sys.stdout.write(f"{repo_url} {key_id}\n")
    return SUCCESS


def handle_normalize(args: argparse.Namespace) -> int:
    """Show the slice identifier each artifact file name maps to."""
    exit_code, _config, _logger = _load_and_bootstrap(args, "normalize")
    if exit_code != SUCCESS:
        return exit_code

    for name in args.names:
        result = normalize(name)
        if isinstance(result, Rejected):
            sys.stdout.write(f"{name}\t(rejected: {result.reason})\n")
        else:
            sys.stdout.write(f"{name}\t{result}\n")
    return SUCCESS


def handle_info(args: argparse.Namespace) -> int:
    """Display version, environment and configured applications."""
    exit_code, config, logger = _load_and_bootstrap(args, "info")
    if exit_code != SUCCESS:
        return exit_code
    assert config is not None

    from rbverify import __version__

    logger.info(
        "System information",
        extra={
            "rbverify_version": __version__,
            "python_version": platform.python_version(),
            "platform": platform.platform(),
            "families": list_families(),
            "apps": [profile.app_id for profile in config.apps],
            "config": args.config,
        },
    )
    return SUCCESS
