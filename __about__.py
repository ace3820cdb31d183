# -*- coding: utf-8 -*-
# NTSC-J Guess: Recovering NTSC-J inputs for sRGB display colours.
#
# Copyright (c) 2026 opticsWolf
#
# SPDX-License-Identifier: LGPL-3.0-or-later

"""
Project metadata for ntscjguess.
"""

from typing import Final

# Metadata Definitions
__title__: Final[str] = "ntscjguess"
__description__: Final[str] = (
    "Finds the NTSC-J pixel that an NTSC-J to sRGB gamut conversion turns "
    "into a given sRGB pixel, by discrete local search in CIE XYZ."
)
__version__: Final[str] = "0.1.0"
__author__: Final[str] = "opticsWolf"
__license__: Final[str] = "LGPL-3.0-or-later"
__copyright__: Final[str] = "Copyright (c) 2026 opticsWolf"

def metadata_summary() -> dict[str, str]:
    """Returns a dictionary of project metadata for introspection."""
    return {
        "title": __title__,
        "version": __version__,
        "license": __license__,
        "description": __description__,
        "copyright": __copyright__,
    }
