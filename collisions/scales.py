"""Linear value and colour scales that tolerate an all-zero domain."""

from typing import List, Sequence, Tuple, Union

import numpy as np

RGBA = Tuple[int, int, int, float]

# Matrix cells fade from transparent to the accent blue.
MATRIX_FLOOR: RGBA = (54, 162, 235, 0.0)
MATRIX_CEIL: RGBA = (54, 162, 235, 1.0)


def to_rgba(color: Union[str, Sequence[float]]) -> RGBA:
    if isinstance(color, str):
        hex_value = color.lstrip('#')
        if len(hex_value) != 6:
            raise ValueError(f'Expected #RRGGBB colour, got {color}')
        r, g, b = (int(hex_value[i:i + 2], 16) for i in (0, 2, 4))
        return r, g, b, 1.0
    if len(color) == 3:
        return int(color[0]), int(color[1]), int(color[2]), 1.0
    return int(color[0]), int(color[1]), int(color[2]), float(color[3])


def rgba_string(color: RGBA) -> str:
    r, g, b, a = color
    return f'rgba({r}, {g}, {b}, {a:g})'


class LinearScale:
    """
    Maps [domain_min, domain_max] onto [range_min, range_max].

    A collapsed domain (domain_min == domain_max, e.g. [0, 0] when nothing matched)
    maps every value to range_min instead of dividing by zero.
    """

    def __init__(self, domain: Tuple[float, float], range: Tuple[float, float] = (0.0, 1.0), clamp: bool = False):
        self.domain = (float(domain[0]), float(domain[1]))
        self.range = (float(range[0]), float(range[1]))
        self.clamp = clamp

    @property
    def is_degenerate(self) -> bool:
        return self.domain[0] == self.domain[1]

    def __call__(self, value: float) -> float:
        d0, d1 = self.domain
        r0, r1 = self.range
        if self.is_degenerate:
            return r0
        t = (float(value) - d0) / (d1 - d0)
        if self.clamp:
            t = float(np.clip(t, 0.0, 1.0))
        return r0 + t * (r1 - r0)


class ColorScale:
    """Colour for a count on a [0, max_value] scale; the floor colour when max_value is 0."""

    def __init__(self, max_value: float, floor=MATRIX_FLOOR, ceil=MATRIX_CEIL):
        self.max_value = max(float(max_value), 0.0)
        self.floor = to_rgba(floor)
        self.ceil = to_rgba(ceil)
        self._position = LinearScale((0.0, self.max_value), (0.0, 1.0), clamp=True)

    @property
    def domain(self) -> Tuple[float, float]:
        return self._position.domain

    def intensity(self, value: float) -> float:
        """Position of value between floor (0.0) and ceil (1.0)."""
        return self._position(value)

    def color(self, value: float) -> RGBA:
        t = self.intensity(value)
        lo = np.array(self.floor, dtype=float)
        hi = np.array(self.ceil, dtype=float)
        mixed = lo + t * (hi - lo)
        return int(round(mixed[0])), int(round(mixed[1])), int(round(mixed[2])), round(float(mixed[3]), 3)

    def __call__(self, value: float) -> str:
        return rgba_string(self.color(value))

    def plotly_colorscale(self) -> List[List]:
        return [[0.0, rgba_string(self.floor)], [1.0, rgba_string(self.ceil)]]
