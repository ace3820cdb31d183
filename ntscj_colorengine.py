# -*- coding: utf-8 -*-
"""
NTSC-J Guess: Recovering NTSC-J inputs for sRGB display colours
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Colour Pipeline
===============
Stateless conversions from an 8-bit NTSC-J pixel to CIE XYZ (D65), used as
the objective oracle of the discrete optimizer.

Pipeline (every stage clamps to [0, 1]):
    Pixel8 --decode--> gamma RGB --inverse gamma--> linear NTSC-J
           --M_NTSCJ_TO_SRGB--> linear sRGB --M_SRGB_TO_XYZ--> XYZ

Matrix Convention:
    Matrices are stored row-major and applied to column vectors,
    ``out[i] = sum_j M[i, j] * in[j]``.  This differs from the pre-transposed
    row-vector layout used for bulk image work; the optimizer scores a few
    dozen pixels at a time, so the explicit form is kept.

Determinism:
    All kernels are compiled with ``fastmath=False``.  Ties between candidate
    errors are resolved by exact float comparison, which must not depend on
    FP reassociation.

References:
    - IEC 61966-2-1:1999 (sRGB Standard)
    - Lindbloom, B. "Chromatic Adaptation" (Bradford method)
    - SMPTE RP 177-1993 (deriving RGB -> XYZ matrices from primaries)
"""

import functools
import types
from dataclasses import dataclass
from typing import Final, Mapping, NamedTuple, Sequence, Tuple, TypeAlias, Union

import numpy as np
import numpy.typing as npt
from numba import njit, prange

__all__ = [
    # --- Type Aliases ---
    "ArrayFloat",
    "ArrayInt",

    # --- Constants ---
    "M_NTSCJ_TO_SRGB",
    "M_SRGB_TO_XYZ",
    "M_BRADFORD",
    "NTSC_1953_PRIMARIES_XY",
    "SRGB_PRIMARIES_XY",
    "NTSCJ_RECEIVER_WHITE_XY",
    "NTSCJ_BROADCAST_WHITE_XY",
    "D65_WHITE_XY",
    "WHITE_POINTS",

    # --- Scalar kernels ---
    "clamp_unit",
    "decode_channel",
    "encode_channel",
    "inverse_gamma",
    "forward_gamma",
    "apply_gamut_matrix",
    "perceptual_distance",

    # --- Matrix derivation ---
    "xy_to_xyz",
    "primaries_to_xyz_matrix",
    "bradford_matrix",
    "derive_ntscj_to_srgb_matrix",
    "gamut_for_white_point",

    # --- Classes ---
    "Pixel8",
    "GamutMatrices",
    "DEFAULT_GAMUT",
    "ColorPipeline",
]

# --- Type Aliases ---
ArrayFloat: TypeAlias = npt.NDArray[np.floating]
ArrayInt: TypeAlias = npt.NDArray[np.integer]


def _frozen(matrix: ArrayFloat) -> ArrayFloat:
    """Return a C-contiguous float64 copy that cannot be written to."""
    out = np.ascontiguousarray(matrix, dtype=np.float64).copy()
    out.flags.writeable = False
    return out


# =============================================================================
# 1. CONSTANTS
# =============================================================================

# NTSC-J -> linear sRGB, Bradford adapted.
# Source white: 9300K+27mpcd (x=0.281, y=0.311), the white point of NTSC-J
# television sets.  Broadcasts used 9300K+8mpcd (x=0.2838, y=0.2981), and
# neither equals CIE 9300K.  Destination white: D65 (x=0.312713, y=0.329016).
# Primaries: NTSC 1953.  Each row sums to 1, so NTSC-J white is sRGB white.
M_NTSCJ_TO_SRGB: Final[ArrayFloat] = _frozen(np.array([
    [ 1.34756301456925,  -0.276463760747096, -0.071099263267176],
    [-0.031150036968175,  0.956512223260545,  0.074637860817515],
    [-0.024443490594835, -0.048150182045316,  1.07259361295816 ],
]))

# Linear sRGB -> XYZ for the D65 white point above.
M_SRGB_TO_XYZ: Final[ArrayFloat] = _frozen(np.array([
    [0.412410846488539, 0.357584567852952, 0.180453803933608],
    [0.212649342720653, 0.715169135705904, 0.072181521573443],
    [0.01933175842915,  0.119194855950984, 0.950390034050337],
]))

# Bradford cone response matrix (XYZ -> sharpened LMS).
M_BRADFORD: Final[ArrayFloat] = _frozen(np.array([
    [ 0.8951000,  0.2664000, -0.1614000],
    [-0.7502000,  1.7135000,  0.0367000],
    [ 0.0389000, -0.0685000,  1.0296000],
]))
_M_BRADFORD_INV: Final[ArrayFloat] = _frozen(np.linalg.inv(M_BRADFORD))

# Chromaticities (CIE 1931 xy), rows R, G, B.
NTSC_1953_PRIMARIES_XY: Final[Tuple[Tuple[float, float], ...]] = (
    (0.67, 0.33), (0.21, 0.71), (0.14, 0.08),
)
SRGB_PRIMARIES_XY: Final[Tuple[Tuple[float, float], ...]] = (
    (0.64, 0.33), (0.30, 0.60), (0.15, 0.06),
)

NTSCJ_RECEIVER_WHITE_XY: Final[Tuple[float, float]] = (0.281, 0.311)
NTSCJ_BROADCAST_WHITE_XY: Final[Tuple[float, float]] = (0.2838, 0.2981)
D65_WHITE_XY: Final[Tuple[float, float]] = (0.312713, 0.329016)

WHITE_POINTS: Final[Mapping[str, Tuple[float, float]]] = types.MappingProxyType({
    "receiver": NTSCJ_RECEIVER_WHITE_XY,
    "broadcast": NTSCJ_BROADCAST_WHITE_XY,
})


# =============================================================================
# 2. SCALAR KERNELS (Numba)
# =============================================================================

@njit(cache=True, fastmath=False)
def clamp_unit(v: float) -> float:
    """Clamp a channel value to [0, 1]."""
    if v < 0.0:
        return 0.0
    if v > 1.0:
        return 1.0
    return v

@njit(cache=True, fastmath=False)
def decode_channel(byte: int) -> float:
    """8-bit channel -> unit range."""
    return byte / 255.0

@njit(cache=True, fastmath=False)
def encode_channel(v: float) -> int:
    """
    Unit range -> 8-bit channel.

    Truncates toward zero.  Rounding would change which 8-bit values are
    reachable as exact matches.
    """
    return int(clamp_unit(v) * 255.0)

@njit(cache=True, fastmath=False)
def inverse_gamma(v: float) -> float:
    """sRGB EOTF (gamma RGB -> linear), IEC 61966-2-1."""
    if v <= 0.04045:
        return clamp_unit(v / 12.92)
    return clamp_unit(((v + 0.055) / 1.055) ** 2.4)

@njit(cache=True, fastmath=False)
def forward_gamma(v: float) -> float:
    """sRGB OETF (linear -> gamma RGB), IEC 61966-2-1."""
    if v <= 0.0031308:
        return clamp_unit(12.92 * v)
    return clamp_unit(1.055 * (v ** (1.0 / 2.4)) - 0.055)

@njit(cache=True, fastmath=False)
def apply_gamut_matrix(pixel: ArrayFloat, matrix: ArrayFloat) -> ArrayFloat:
    """
    Apply a 3x3 matrix to a pixel and clip the result to [0, 1].

    Out-of-gamut values are clipped, not wrapped.
    """
    out = np.empty(3, dtype=np.float64)
    for i in range(3):
        out[i] = clamp_unit(
            matrix[i, 0] * pixel[0]
            + matrix[i, 1] * pixel[1]
            + matrix[i, 2] * pixel[2]
        )
    return out

@njit(cache=True, fastmath=False)
def perceptual_distance(a: ArrayFloat, b: ArrayFloat) -> float:
    """Euclidean distance between two XYZ pixels."""
    d0 = a[0] - b[0]
    d1 = a[1] - b[1]
    d2 = a[2] - b[2]
    return np.sqrt(d0 * d0 + d1 * d1 + d2 * d2)


# =============================================================================
# 3. PIPELINE KERNELS
# =============================================================================

@njit(cache=True, fastmath=False)
def _pixel8_to_xyz(red: int, green: int, blue: int,
                   m_gamut: ArrayFloat, m_xyz: ArrayFloat) -> ArrayFloat:
    """decode -> inverse gamma -> gamut matrix -> XYZ matrix."""
    linear = np.empty(3, dtype=np.float64)
    linear[0] = inverse_gamma(decode_channel(red))
    linear[1] = inverse_gamma(decode_channel(green))
    linear[2] = inverse_gamma(decode_channel(blue))
    return apply_gamut_matrix(apply_gamut_matrix(linear, m_gamut), m_xyz)

@njit(cache=True, fastmath=False, parallel=True)
def _batch_pixel8_to_xyz(pixels: ArrayInt, m_gamut: ArrayFloat,
                         m_xyz: ArrayFloat) -> ArrayFloat:
    """Parallel loop over (N, 3) integer pixels.  Row order is preserved."""
    n = pixels.shape[0]
    out = np.empty((n, 3), dtype=np.float64)
    for i in prange(n):
        xyz = _pixel8_to_xyz(pixels[i, 0], pixels[i, 1], pixels[i, 2],
                             m_gamut, m_xyz)
        out[i, 0] = xyz[0]
        out[i, 1] = xyz[1]
        out[i, 2] = xyz[2]
    return out

@njit(cache=True, fastmath=False, parallel=True)
def _batch_distance(xyz: ArrayFloat, goal: ArrayFloat) -> ArrayFloat:
    """Distance of every row of *xyz* to *goal*."""
    n = xyz.shape[0]
    res = np.empty(n, dtype=np.float64)
    for i in prange(n):
        res[i] = perceptual_distance(xyz[i], goal)
    return res


# =============================================================================
# 4. MATRIX DERIVATION
# =============================================================================

def xy_to_xyz(xy: Sequence[float]) -> ArrayFloat:
    """Chromaticity (x, y) -> XYZ with Y = 1."""
    x, y = float(xy[0]), float(xy[1])
    if abs(y) < 1e-12:
        raise ValueError(f"Chromaticity y must be non-zero, got {y}")
    return np.array([x / y, 1.0, (1.0 - x - y) / y], dtype=np.float64)

def primaries_to_xyz_matrix(primaries_xy: Sequence[Sequence[float]],
                            white_xy: Sequence[float]) -> ArrayFloat:
    """
    Derive the RGB -> XYZ matrix from primary and white chromaticities.

    Each column is the XYZ of one primary, scaled so that RGB (1, 1, 1)
    lands on the white point with Y = 1.

    Args:
        primaries_xy: Red, green and blue (x, y), shape (3, 2).
        white_xy: White point (x, y).

    Returns:
        3x3 matrix for column vectors.
    """
    primaries = np.asarray(primaries_xy, dtype=np.float64)
    if primaries.shape != (3, 2):
        raise ValueError(f"Expected primaries of shape (3, 2), got {primaries.shape}")

    xyz_primaries = np.stack([xy_to_xyz(p) for p in primaries], axis=1)
    scaling = np.linalg.solve(xyz_primaries, xy_to_xyz(white_xy))
    return xyz_primaries * scaling[np.newaxis, :]

def _to_hashable(obj: Union[ArrayFloat, Sequence[float]]) -> Tuple[float, ...]:
    """Helper to ensure inputs are hashable tuples for caching."""
    if isinstance(obj, np.ndarray):
        return tuple(float(v) for v in obj.ravel())
    return tuple(float(v) for v in obj)

@functools.lru_cache(maxsize=16)
def _get_cached_bradford_matrix(src_white: Tuple[float, ...],
                                dst_white: Tuple[float, ...]) -> ArrayFloat:
    """
    Cached worker for the Bradford matrix.

    Derivation (column vectors):
        M_adapt = M_inv @ diag(dst_lms / src_lms) @ M
    """
    src_lms = M_BRADFORD @ np.array(src_white, dtype=np.float64)
    dst_lms = M_BRADFORD @ np.array(dst_white, dtype=np.float64)

    # Prevent divide-by-zero for extremely dark white points
    src_lms = np.where(np.abs(src_lms) < 1e-12, 1e-12, src_lms)
    gain = np.diag(dst_lms / src_lms)
    return _frozen(_M_BRADFORD_INV @ gain @ M_BRADFORD)

def bradford_matrix(src_white_xyz: Union[ArrayFloat, Sequence[float]],
                    dst_white_xyz: Union[ArrayFloat, Sequence[float]]) -> ArrayFloat:
    """
    Bradford chromatic adaptation matrix between two XYZ white points.

    Results are cached per white point pair and returned read-only.
    """
    return _get_cached_bradford_matrix(_to_hashable(src_white_xyz),
                                       _to_hashable(dst_white_xyz))

def derive_ntscj_to_srgb_matrix(
        white_xy: Sequence[float] = NTSCJ_RECEIVER_WHITE_XY,
        primaries_xy: Sequence[Sequence[float]] = NTSC_1953_PRIMARIES_XY,
) -> ArrayFloat:
    """
    Rebuild the NTSC-J -> linear sRGB matrix for a given NTSC-J white point.

    NTSC-J RGB -> XYZ (source white) -> Bradford to D65 -> linear sRGB.
    With the default receiver white this reproduces ``M_NTSCJ_TO_SRGB``.
    """
    src_to_xyz = primaries_to_xyz_matrix(primaries_xy, white_xy)
    srgb_to_xyz = primaries_to_xyz_matrix(SRGB_PRIMARIES_XY, D65_WHITE_XY)
    adapt = bradford_matrix(xy_to_xyz(white_xy), xy_to_xyz(D65_WHITE_XY))
    return _frozen(np.linalg.inv(srgb_to_xyz) @ adapt @ src_to_xyz)


# =============================================================================
# 5. DATA TYPES
# =============================================================================

class Pixel8(NamedTuple):
    """Quantised 8-bit RGB triple, the only form an answer is reported in."""
    red: int
    green: int
    blue: int

    @classmethod
    def from_int(cls, value: int) -> "Pixel8":
        """Split a 24-bit ``0xRRGGBB`` integer."""
        if not 0 <= value <= 0xFFFFFF:
            raise ValueError(f"Expected a 24-bit RGB value, got {value:#x}")
        return cls((value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF)

    @classmethod
    def validated(cls, pixel: Sequence[int]) -> "Pixel8":
        """
        Build a Pixel8 from any 3-sequence of integers in [0, 255].

        Raises:
            ValueError: on a wrong length or a channel outside [0, 255].
        """
        channels = tuple(int(c) for c in pixel)
        if len(channels) != 3:
            raise ValueError(f"Expected 3 channels, got {len(channels)}")
        if not all(0 <= c <= 255 for c in channels):
            raise ValueError(f"Pixel8 channels must lie in [0, 255], got {channels}")
        return cls(*channels)

    def to_int(self) -> int:
        return (self.red << 16) | (self.green << 8) | self.blue

    def hex(self) -> str:
        return f"0x{self.to_int():06X}"


@dataclass(slots=True, frozen=True)
class GamutMatrices:
    """The two matrices a ColorPipeline is built from."""
    ntscj_to_srgb: ArrayFloat
    srgb_to_xyz: ArrayFloat

    def __post_init__(self) -> None:
        for label in ("ntscj_to_srgb", "srgb_to_xyz"):
            m = np.asarray(getattr(self, label), dtype=np.float64)
            if m.shape != (3, 3):
                raise ValueError(f"{label} must have shape (3, 3), got {m.shape}")
            if not np.isfinite(m).all():
                raise ValueError(f"{label} contains non-finite entries")
            object.__setattr__(self, label, _frozen(m))


DEFAULT_GAMUT: Final[GamutMatrices] = GamutMatrices(M_NTSCJ_TO_SRGB, M_SRGB_TO_XYZ)


def gamut_for_white_point(name: str) -> GamutMatrices:
    """
    Resolve a named NTSC-J white point to pipeline matrices.

    ``"receiver"`` uses the precomputed constant; ``"broadcast"`` derives the
    matrix for the 9300K+8mpcd broadcast white.
    """
    if name not in WHITE_POINTS:
        raise ValueError(
            f"Unknown white point '{name}'. Expected one of {sorted(WHITE_POINTS)}"
        )
    if name == "receiver":
        return DEFAULT_GAMUT
    return GamutMatrices(derive_ntscj_to_srgb_matrix(WHITE_POINTS[name]),
                         M_SRGB_TO_XYZ)


# =============================================================================
# 6. COLOR PIPELINE
# =============================================================================

def _as_pixel_array(pixels: Union[ArrayInt, Sequence[Sequence[int]]]) -> ArrayInt:
    arr = np.ascontiguousarray(np.atleast_2d(pixels), dtype=np.int64)
    if arr.ndim != 2 or arr.shape[-1] != 3:
        raise ValueError(f"Expected pixels of shape (N, 3), got {arr.shape}")
    if arr.size and (arr.min() < 0 or arr.max() > 255):
        raise ValueError("Pixel8 channels must lie in [0, 255]")
    return arr

def _as_goal(goal: Union[ArrayFloat, Sequence[float]]) -> ArrayFloat:
    arr = np.ascontiguousarray(goal, dtype=np.float64)
    if arr.shape != (3,):
        raise ValueError(f"Expected goal of shape (3,), got {arr.shape}")
    return arr


class ColorPipeline:
    """
    NTSC-J 8-bit pixel -> XYZ oracle with injected gamut matrices.

    The pipeline holds no mutable state; one instance may be shared by any
    number of searches.
    """
    __slots__ = ("_gamut",)

    def __init__(self, gamut: GamutMatrices = DEFAULT_GAMUT) -> None:
        self._gamut = gamut

    @property
    def gamut(self) -> GamutMatrices:
        return self._gamut

    def to_xyz(self, pixel: Pixel8) -> ArrayFloat:
        """
        Run one NTSC-J pixel through the full pipeline.

        Shares the batch kernel so single and batch scores are bit-identical.
        """
        return self.to_xyz_batch([Pixel8.validated(pixel)])[0]

    def to_xyz_batch(self, pixels: Union[ArrayInt, Sequence[Sequence[int]]]) -> ArrayFloat:
        """
        Vectorised ``to_xyz``.

        Args:
            pixels: Integer pixels, shape (N, 3).

        Returns:
            XYZ array, shape (N, 3), in input order.
        """
        arr = _as_pixel_array(pixels)
        return _batch_pixel8_to_xyz(arr, self._gamut.ntscj_to_srgb,
                                    self._gamut.srgb_to_xyz)

    def goal_from_srgb(self, pixel: Pixel8) -> ArrayFloat:
        """XYZ of an sRGB pixel as a display shows it (no gamut conversion)."""
        linear = np.array([inverse_gamma(decode_channel(c)) for c in Pixel8.validated(pixel)],
                          dtype=np.float64)
        return apply_gamut_matrix(linear, self._gamut.srgb_to_xyz)

    def distance(self, pixel: Pixel8, goal: Union[ArrayFloat, Sequence[float]]) -> float:
        """Perceptual error of one NTSC-J pixel against *goal*."""
        return float(self.distance_batch([Pixel8.validated(pixel)], goal)[0])

    def distance_batch(self, pixels: Union[ArrayInt, Sequence[Sequence[int]]],
                       goal: Union[ArrayFloat, Sequence[float]]) -> ArrayFloat:
        """Perceptual error of every pixel in *pixels*, in input order."""
        return _batch_distance(self.to_xyz_batch(pixels), _as_goal(goal))
