# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Source provenance: tag and commit signatures, and the trust store of
signing keys operators have vetted per repository.
"""
