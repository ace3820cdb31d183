# -*- coding: utf-8 -*-
"""
NTSC-J Guess: Recovering NTSC-J inputs for sRGB display colours
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Command line entry point.

    ntscjguess 0xRRGGBB [--axial] [--white-point receiver|broadcast]
               [--max-iterations N] [-v]

Exit codes:
    0  success
    1  wrong number of arguments (or unusable options)
    2  malformed 0xRRGGBB parameter
    3  search did not converge
"""

import argparse
import logging
import re
import sys
from typing import Final, List, NoReturn, Optional, Sequence

from __about__ import __title__, __version__
from ntscj_colorengine import ColorPipeline, Pixel8, WHITE_POINTS, gamut_for_white_point
from ntscj_optimizer import (
    DEFAULT_MAX_ITERATIONS,
    ConvergenceError,
    DiscreteOptimizer,
    Neighborhood,
    SearchResult,
)

__all__ = [
    "EXIT_OK",
    "EXIT_USAGE",
    "EXIT_BAD_PARAMETER",
    "EXIT_NOT_CONVERGED",
    "USAGE",
    "UsageError",
    "ColorParseError",
    "parse_color",
    "format_result",
    "configure_logging",
    "main",
]

logger = logging.getLogger(__name__)

EXIT_OK: Final[int] = 0
EXIT_USAGE: Final[int] = 1
EXIT_BAD_PARAMETER: Final[int] = 2
EXIT_NOT_CONVERGED: Final[int] = 3

USAGE: Final[str] = (
    "Usage: ntscjguess 0xRRGGBB\n"
    "Where \"0xRRGGBB\" is 0x-prefixed hexadecimal representation of a RGB8 pixel value.\n"
    "The input should be the sRGB pixel you wish to get as output when an unknown "
    "pixel in the NTSC-J gamut is converted to the sRGB gamut (using the sRGB gamma "
    "function in both directions).\n"
    "ntscjguess will tell you the unknown pixel value."
)

# "0x" plus six hex digits, eight characters and nothing else.
_HEX_COLOR: Final[re.Pattern] = re.compile(r"0[xX][0-9a-fA-F]{6}")

_MANAGED_HANDLER_FLAG: Final[str] = "_ntscjguess_managed_handler"


class UsageError(Exception):
    """Wrong argument count or an option argparse could not use."""


class ColorParseError(ValueError):
    """The colour argument is not of the form 0xRRGGBB."""


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises instead of printing to stderr and exiting."""

    def error(self, message: str) -> NoReturn:
        raise UsageError(message)


def _build_parser() -> _ArgumentParser:
    parser = _ArgumentParser(
        prog="ntscjguess",
        description="Find the NTSC-J pixel that converts to a given sRGB pixel.",
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument("color", nargs="*", help="target sRGB pixel as 0xRRGGBB")
    parser.add_argument("--axial", action="store_true",
                        help="search the 6 single-axis neighbours instead of all 26")
    parser.add_argument("--white-point", choices=sorted(WHITE_POINTS), default="receiver",
                        help="NTSC-J white point (default: receiver, 9300K+27mpcd)")
    parser.add_argument("--max-iterations", type=int, default=DEFAULT_MAX_ITERATIONS,
                        help="sweep cap before giving up")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="log every accepted move to stderr")
    return parser


def parse_color(text: str) -> Pixel8:
    """
    Parse ``0xRRGGBB`` into a Pixel8.

    Raises:
        ColorParseError: on a wrong length, a missing prefix, or any
            character that is not a hex digit.
    """
    if _HEX_COLOR.fullmatch(text) is None:
        raise ColorParseError(f"Expected 0xRRGGBB, got {text!r}")
    return Pixel8.from_int(int(text[2:], 16))


def format_result(result: SearchResult) -> str:
    guess = result.guess
    return (
        f"To achieve sRGB output of {result.target.hex()} use NTSC-J input of "
        f"{guess.hex()} (red: {guess.red}, green: {guess.green}, "
        f"blue: {guess.blue}, error {result.error:f})."
    )


def configure_logging(verbose: bool = False) -> None:
    """
    Install one stderr handler on the root logger.

    Handlers installed by an earlier call are replaced, not stacked.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in list(root_logger.handlers):
        if getattr(handler, _MANAGED_HANDLER_FLAG, False):
            root_logger.removeHandler(handler)
            handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    setattr(console_handler, _MANAGED_HANDLER_FLAG, True)
    root_logger.addHandler(console_handler)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args: List[str] = list(sys.argv[1:] if argv is None else argv)

    try:
        opts, extras = _build_parser().parse_known_args(args)
        # A lone dash-led token such as -0x12345 is a malformed colour, not an option.
        if extras and not opts.color and len(extras) == 1 and not extras[0].startswith("--"):
            opts.color, extras = extras, []
        if extras:
            raise UsageError(f"unrecognized arguments: {' '.join(extras)}")
        if len(opts.color) != 1:
            raise UsageError(f"expected exactly one colour argument, got {len(opts.color)}")
    except UsageError as exc:
        logger.debug("Usage error: %s", exc)
        print(USAGE)
        return EXIT_USAGE

    configure_logging(opts.verbose)
    logger.debug("%s %s", __title__, __version__)

    try:
        target = parse_color(opts.color[0])
    except ColorParseError as exc:
        logger.debug("%s", exc)
        print(USAGE)
        return EXIT_BAD_PARAMETER

    try:
        optimizer = DiscreteOptimizer(
            ColorPipeline(gamut_for_white_point(opts.white_point)),
            Neighborhood.AXIAL if opts.axial else Neighborhood.MOORE,
            opts.max_iterations,
        )
    except ValueError as exc:
        logger.debug("Bad option: %s", exc)
        print(USAGE)
        return EXIT_USAGE

    try:
        result = optimizer.search(target)
    except ConvergenceError as exc:
        logger.error("%s", exc)
        return EXIT_NOT_CONVERGED

    print(format_result(result))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
