# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
CLI entrypoint for rbverify.

Every operation is a subcommand of `rbverify`. The global options (--config,
--log-level) are inherited by every subcommand through argparse's parent
parser mechanism.

Usage:
    rbverify verify --official official/ --built built/ --app-id com.example.wallet
    rbverify trust add-key --trust-store trust.yaml --repo https://... --key ABCD1234
    rbverify normalize base-master.apk split_config.arm64_v8a.apk
    rbverify info
"""

import argparse
import sys

from rbverify.cli.commands import (
    handle_build,
    handle_info,
    handle_normalize,
    handle_trust_add_key,
    handle_trust_list,
    handle_verify,
)
from rbverify.cli.exit_codes import USER_ERROR


def _build_global_parser() -> argparse.ArgumentParser:
    """
    Build the parent parser with global options.

    add_help=False so its help does not collide with the subcommand parsers.
    """
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file.",
    )
    parent.add_argument(
        "--log-level",
        type=str,
        default=None,
        dest="log_level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity. Overrides global.log_level from the config.",
    )
    return parent


def _add_verify_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--official", required=True, help="Official artifact file or directory.")
    parser.add_argument("--built", required=True, help="Rebuilt artifact file or directory.")
    parser.add_argument("--metadata", default=None, help="YAML with appId/versionName/versionCode/signer.")
    parser.add_argument("--app-id", dest="app_id", default=None, help="Declared application id.")
    parser.add_argument("--version-name", dest="version_name", default=None)
    parser.add_argument("--version-code", dest="version_code", default=None)
    parser.add_argument("--signer", default=None, help="Signing certificate digest of the official artifact.")
    parser.add_argument("--repo-dir", dest="repo_dir", default=None, help="Source checkout for signature checks.")
    parser.add_argument(
        "--revision",
        default=None,
        help="Tag or commit to check. Defaults to the profile's tag for --version-name.",
    )
    parser.add_argument("--trust-store", dest="trust_store", default=None, help="Overrides verification.trust_store.")
    parser.add_argument("--workspace", default=None, help="Workspace directory; must not exist yet.")
    parser.add_argument("--cleanup", action="store_true", default=False, help="Delete the workspace afterwards.")
    parser.add_argument("--json", action="store_true", default=False, help="Print the report as JSON.")


def _register_subcommands(
    subparsers: argparse._SubParsersAction,  # type: ignore[type-arg]
    parent: argparse.ArgumentParser,
) -> None:
    """
    Register all subcommands with their handler functions.

    Each subcommand sets its handler via set_defaults(func=...).
    """
    verify_parser = subparsers.add_parser(
        "verify", parents=[parent], help="Compare official and rebuilt artifacts."
    )
    _add_verify_arguments(verify_parser)
    verify_parser.set_defaults(func=handle_verify)

    build_parser = subparsers.add_parser(
        "build", parents=[parent], help="Build an application from source."
    )
    build_parser.add_argument("--app-id", dest="app_id", required=True)
    build_parser.add_argument("--version", required=True, help="Version whose tag is built.")
    build_parser.add_argument("--source-dir", dest="source_dir", required=True)
    build_parser.set_defaults(func=handle_build)

    trust_parser = subparsers.add_parser("trust", parents=[parent], help="Manage trusted signing keys.")
    trust_sub = trust_parser.add_subparsers(dest="trust_command")

    add_key = trust_sub.add_parser("add-key", parents=[parent], help="Trust a key for a repository.")
    add_key.add_argument("--trust-store", dest="trust_store", required=True)
    add_key.add_argument("--repo", required=True, help="Source repository URL.")
    add_key.add_argument("--key", required=True, help="Signing key id.")
    add_key.set_defaults(func=handle_trust_add_key)

    list_keys = trust_sub.add_parser("list", parents=[parent], help="List trusted keys.")
    list_keys.add_argument("--trust-store", dest="trust_store", required=True)
    list_keys.set_defaults(func=handle_trust_list)

    normalize_parser = subparsers.add_parser(
        "normalize", parents=[parent], help="Show the slice identifier for artifact names."
    )
    normalize_parser.add_argument("names", nargs="+")
    normalize_parser.set_defaults(func=handle_normalize)

    info_parser = subparsers.add_parser(
        "info", parents=[parent], help="Display environment and config info."
    )
    info_parser.set_defaults(func=handle_info)


def main() -> None:
    """
    Main CLI entrypoint. This is what pyproject.toml's [project.scripts] points to.

    If no subcommand is given, help is shown and the exit code is USER_ERROR.
    """
    parent = _build_global_parser()

    root_parser = argparse.ArgumentParser(
        prog="rbverify",
        description="rbverify — reproducible build verification for released artifacts.",
        parents=[parent],
    )
    subparsers = root_parser.add_subparsers(dest="command")
    _register_subcommands(subparsers, parent)

    args = root_parser.parse_args()

    if not hasattr(args, "func") or args.func is None:
        root_parser.print_help()
        sys.exit(USER_ERROR)

    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
