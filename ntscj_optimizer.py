# -*- coding: utf-8 -*-
"""
NTSC-J Guess: Recovering NTSC-J inputs for sRGB display colours
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Discrete Optimizer
==================
Local search over the 8-bit RGB lattice for the NTSC-J pixel whose XYZ image
is closest to a goal.  The objective (gamma decode, clipped gamut matrix,
Euclidean XYZ distance) is piecewise smooth and locally unimodal around the
pre-image, and the identity seed is already close, so a hill climb converges
in a handful of sweeps.

Neighborhoods:
  MOORE  26 offsets of {-1, 0, 1}^3 minus zero.  Accepts ties (<=), the later
         candidate in scan order wins, and the reverse of the last move is
         skipped.  Reference behaviour.
  AXIAL  6 unit steps.  Accepts strict improvements (<) only, so the earlier
         candidate wins a tie.  No backtrack rule is needed.

Scan Semantics:
    Every sweep scores all candidates around a fixed center into an ordered
    array, then replays a sequential scan against the running best error.
    The last accepted candidate becomes the next center.  Scoring may run in
    parallel; the replay makes the result independent of it.

Plateaus:
    Clipping maps whole regions of the lattice onto one XYZ value.  Under the
    MOORE tie rule a search can walk such a plateau in a loop; a tie move back
    onto a visited center ends the search with the current best, whose error
    equals every point on the loop.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Final, Optional, Set, Tuple

import numpy as np
from numba import njit

from ntscj_colorengine import ArrayFloat, ArrayInt, ColorPipeline, Pixel8

__all__ = [
    "MOORE_OFFSETS",
    "AXIAL_OFFSETS",
    "DEFAULT_MAX_ITERATIONS",
    "Neighborhood",
    "SearchResult",
    "ConvergenceError",
    "DiscreteOptimizer",
]

logger = logging.getLogger(__name__)


def _read_only(arr: np.ndarray) -> np.ndarray:
    arr.flags.writeable = False
    return arr


# ═══════════════════════════════════════════════════════════════════════════════
# Constants
# ═══════════════════════════════════════════════════════════════════════════════
# Red outermost, blue innermost, each axis from -1 to +1.
MOORE_OFFSETS: Final[ArrayInt] = _read_only(np.array(
    [(i, j, k)
     for i in (-1, 0, 1)
     for j in (-1, 0, 1)
     for k in (-1, 0, 1)
     if (i, j, k) != (0, 0, 0)],
    dtype=np.int64,
))

AXIAL_OFFSETS: Final[ArrayInt] = _read_only(np.array([
    (-1, 0, 0), (1, 0, 0),
    (0, -1, 0), (0, 1, 0),
    (0, 0, -1), (0, 0, 1),
], dtype=np.int64))

# A walk that never revisits a center cannot outlast the lattice.  Ordinary
# searches take a few dozen sweeps.
DEFAULT_MAX_ITERATIONS: Final[int] = 256 ** 3


class Neighborhood(enum.Enum):
    MOORE = "moore"
    AXIAL = "axial"

    @property
    def offsets(self) -> ArrayInt:
        return MOORE_OFFSETS if self is Neighborhood.MOORE else AXIAL_OFFSETS

    @property
    def accepts_ties(self) -> bool:
        return self is Neighborhood.MOORE


class ConvergenceError(RuntimeError):
    """The search did not settle within the iteration cap."""


@dataclass(slots=True, frozen=True)
class SearchResult:
    """
    Outcome of one search.

    Attributes
    ----------
    target : Pixel8
        The sRGB pixel the caller wants to see.
    guess : Pixel8
        Best NTSC-J input found.
    error : float
        XYZ distance of ``guess`` to the goal.
    seed, seed_error :
        Starting point and its error.
    iterations : int
        Sweeps run, including the final one that found nothing better.
    history : tuple of float
        Best error after the seed and after every accepted move.
    neighborhood : Neighborhood
        Neighborhood the search used.
    """
    target: Pixel8
    guess: Pixel8
    error: float
    seed: Pixel8
    seed_error: float
    iterations: int
    history: Tuple[float, ...]
    neighborhood: Neighborhood

    @property
    def moves(self) -> int:
        return len(self.history) - 1


# ═══════════════════════════════════════════════════════════════════════════════
# Kernels
# ═══════════════════════════════════════════════════════════════════════════════
@njit(cache=True, fastmath=False)
def _replay_scan(errors: ArrayFloat, best_error: float,
                 accept_ties: bool) -> Tuple[int, float]:
    """
    Sequential acceptance over an ordered error array.

    Returns the index of the last accepted candidate (-1 if none) and the
    resulting best error.
    """
    chosen = -1
    for i in range(errors.shape[0]):
        e = errors[i]
        if e < best_error or (accept_ties and e == best_error):
            best_error = e
            chosen = i
    return chosen, best_error


# ═══════════════════════════════════════════════════════════════════════════════
# DiscreteOptimizer
# ═══════════════════════════════════════════════════════════════════════════════
class DiscreteOptimizer:
    """
    Hill climber over 8-bit NTSC-J pixels.

    Parameters
    ----------
    pipeline : ColorPipeline, optional
        Objective oracle.  Defaults to the receiver-white pipeline.
    neighborhood : Neighborhood
        Candidate set and tie rule (see module docstring).
    max_iterations : int
        Sweep cap; exceeding it raises ConvergenceError.
    """
    __slots__ = ("_pipeline", "_neighborhood", "_max_iterations")

    def __init__(
        self,
        pipeline: Optional[ColorPipeline] = None,
        neighborhood: Neighborhood = Neighborhood.MOORE,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be positive, got {max_iterations}")
        self._pipeline = pipeline if pipeline is not None else ColorPipeline()
        self._neighborhood = Neighborhood(neighborhood)
        self._max_iterations = int(max_iterations)

    @property
    def pipeline(self) -> ColorPipeline:
        return self._pipeline

    @property
    def neighborhood(self) -> Neighborhood:
        return self._neighborhood

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    def neighbors(
        self,
        center: Pixel8,
        forbidden: Optional[Tuple[int, int, int]] = None,
    ) -> Tuple[ArrayInt, ArrayInt]:
        """
        In-range candidates around *center*, in scan order.

        Offsets that push any channel outside [0, 255] are dropped, as is
        *forbidden* (the reverse of the previous move).

        Returns:
            (offsets, pixels), both of shape (M, 3).
        """
        offsets = self._neighborhood.offsets
        pixels = np.asarray(center, dtype=np.int64)[np.newaxis, :] + offsets
        keep = np.all((pixels >= 0) & (pixels <= 255), axis=1)
        if forbidden is not None:
            keep &= ~np.all(offsets == np.asarray(forbidden, dtype=np.int64), axis=1)
        return offsets[keep], pixels[keep]

    def search(self, target: Pixel8, seed: Optional[Pixel8] = None) -> SearchResult:
        """
        Find the NTSC-J pixel that displays closest to the sRGB *target*.

        Args:
            target: Desired sRGB output.
            seed: Starting NTSC-J pixel.  Defaults to *target* itself, since
                  the gamut shift is a small perturbation.

        Returns:
            SearchResult for the local optimum reached.

        Raises:
            ValueError: if *target* or *seed* has a channel outside [0, 255].
            ConvergenceError: if ``max_iterations`` sweeps did not settle.
        """
        target = Pixel8.validated(target)
        seed = target if seed is None else Pixel8.validated(seed)
        pipeline = self._pipeline
        accept_ties = self._neighborhood.accepts_ties

        goal = pipeline.goal_from_srgb(target)
        best = seed
        best_error = pipeline.distance(seed, goal)
        seed_error = best_error
        history = [best_error]
        visited: Set[Pixel8] = {seed}
        forbidden: Optional[Tuple[int, int, int]] = None

        logger.debug("Search %s from seed %s (%s), error %.9f",
                     target.hex(), seed.hex(), self._neighborhood.value, seed_error)

        for iteration in range(1, self._max_iterations + 1):
            offsets, pixels = self.neighbors(best, forbidden if accept_ties else None)
            if len(pixels) == 0:
                return self._finish(target, best, best_error, seed, seed_error,
                                    iteration, history)

            errors = pipeline.distance_batch(pixels, goal)
            chosen, sweep_error = _replay_scan(errors, best_error, accept_ties)
            if chosen < 0:
                return self._finish(target, best, best_error, seed, seed_error,
                                    iteration, history)

            candidate = Pixel8(*(int(c) for c in pixels[chosen]))
            if candidate in visited:
                logger.debug("Plateau loop at %s, error %.9f", candidate.hex(), sweep_error)
                return self._finish(target, best, best_error, seed, seed_error,
                                    iteration, history)

            move = offsets[chosen]
            forbidden = (-int(move[0]), -int(move[1]), -int(move[2]))
            best, best_error = candidate, float(sweep_error)
            visited.add(best)
            history.append(best_error)
            logger.debug("Sweep %d: move %s -> %s, error %.9f",
                         iteration, tuple(int(m) for m in move), best.hex(), best_error)

        raise ConvergenceError(
            f"Search for {target.hex()} did not converge within "
            f"{self._max_iterations} sweeps (last guess {best.hex()}, "
            f"error {best_error:.9f})"
        )

    def _finish(self, target: Pixel8, best: Pixel8, best_error: float,
                seed: Pixel8, seed_error: float, iterations: int,
                history: list) -> SearchResult:
        logger.info("Target %s -> NTSC-J %s after %d sweeps, error %.9f",
                    target.hex(), best.hex(), iterations, best_error)
        return SearchResult(
            target=target,
            guess=best,
            error=float(best_error),
            seed=seed,
            seed_error=float(seed_error),
            iterations=iterations,
            history=tuple(history),
            neighborhood=self._neighborhood,
        )
