# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
CLI exit codes.

`verify` maps its outcome onto the first three; scripts that wrap the
verifier branch on them, so they never change meaning.
"""

REPRODUCIBLE: int = 0
DIFFERENCES_FOUND: int = 1
UNSUPPORTED_IDENTITY: int = 2
CONFIG_ERROR: int = 3
RUNTIME_ERROR: int = 4
WORKSPACE_CONFLICT: int = 5

SUCCESS: int = REPRODUCIBLE
USER_ERROR: int = CONFIG_ERROR
