# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Error taxonomy for the verification engine.

Each call site classifies its failure into one of these instead of letting a
generic exception bubble out. The classes differ in what the pipeline does
with them:

  ConfigurationError     — recovered locally, becomes a note in the report
  ExternalToolError      — recovered locally, becomes an informational status
  IdentityMismatchError  — fatal, raised before any verdict is produced
  WorkspaceConflictError — fatal, raised before any work starts

Fatal errors always carry a `remediation` string: the concrete thing the
operator can do about it.
"""


class VerifierError(Exception):
    """Base for all verification engine errors."""

    def __init__(self, message: str, remediation: str = "") -> None:
        super().__init__(message)
        self.remediation = remediation

    def __str__(self) -> str:
        message = super().__str__()
        if self.remediation:
            return f"{message}\n{self.remediation}"
        return message


class ConfigurationError(VerifierError):
    """Identifier collision or a missing required artifact."""


class ExternalToolError(VerifierError):
    """A collaborator (archive reader, signature tool) could not do its job."""


class ArchiveError(ExternalToolError):
    """An artifact could not be unpacked."""


class IdentityMismatchError(VerifierError):
    """
    The artifacts do not describe the thing we were asked to verify.

    Either the declared appId is not the one the application profile expects,
    or one side is a single universal artifact while the other is a split set.
    A verdict on such inputs would be meaningless.
    """


class WorkspaceConflictError(VerifierError):
    """The run's workspace already exists and may hold stale artifacts."""
