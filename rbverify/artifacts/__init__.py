# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Artifact handling: name normalization, listing, and unpacking into slices.

No comparison logic lives here; the diff engine works on the SliceSets
this package produces.
"""
