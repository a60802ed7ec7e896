# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
rbverify — reproducible build verification for published release artifacts.

Given the official artifacts of a release and the artifacts rebuilt from the
declared source revision, rbverify decides whether the release is
reproducible and explains why (or why not) in one deterministic report.
"""

__version__ = "0.4.0"
