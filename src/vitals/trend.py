"""Trend-line geometry for percentage sample sequences."""

from bisect import bisect_right
from collections.abc import Sequence
from dataclasses import dataclass

Point = tuple[float, float]

# Layout of the compact sparkline, in view-box units.
VIEW_WIDTH = 140.0
VIEW_HEIGHT = 54.0
PADDING = 6.0
AXIS_LABEL_WIDTH = 22.0

BLOCKS = " ▁▂▃▄▅▆▇█"
_LEVELS = len(BLOCKS) - 1


@dataclass(slots=True, frozen=True)
class TrendShape:
    """Line and closed area polygon for one sample sequence."""

    line: tuple[Point, ...]
    area: tuple[Point, ...]
    origin_x: float
    origin_y: float
    chart_width: float
    chart_height: float

    @property
    def top_y(self) -> float:
        """Vertical position of the 100% grid line."""
        return self.origin_y - self.chart_height

    @property
    def mid_y(self) -> float:
        """Vertical position of the 50% grid line."""
        return self.origin_y - self.chart_height / 2


def _clamp(value: float) -> float:
    return min(100.0, max(0.0, value))


def trend_shape(
    samples: Sequence[float],
    width: float = VIEW_WIDTH,
    height: float = VIEW_HEIGHT,
    padding: float = PADDING,
    axis_label_width: float = AXIS_LABEL_WIDTH,
) -> TrendShape:
    """
    Map samples to coordinates, y growing downwards.

    Zero samples draw a flat line at 0 and one sample is repeated, so
    there are always at least two points and the x step never divides by
    zero. Identical input always yields identical coordinates.
    """
    if len(samples) > 1:
        values = list(samples)
    elif len(samples) == 1:
        values = [samples[0], samples[0]]
    else:
        values = [0.0, 0.0]

    chart_height = height - padding * 2
    chart_width = width - axis_label_width - padding
    origin_x = axis_label_width
    origin_y = height - padding
    step = chart_width / (len(values) - 1)

    line = tuple(
        (origin_x + index * step, origin_y - (_clamp(value) / 100) * chart_height)
        for index, value in enumerate(values)
    )
    area = ((origin_x, origin_y), *line, (origin_x + chart_width, origin_y))
    return TrendShape(
        line=line,
        area=area,
        origin_x=origin_x,
        origin_y=origin_y,
        chart_width=chart_width,
        chart_height=chart_height,
    )


def format_points(points: Sequence[Point]) -> str:
    """Render points as an SVG ``points`` attribute."""
    return " ".join(f"{x:.2f},{y:.2f}" for x, y in points)


def line_y_at(shape: TrendShape, x: float) -> float:
    """Linearly interpolate the line's y at horizontal position ``x``."""
    xs = [px for px, _ in shape.line]
    if x <= xs[0]:
        return shape.line[0][1]
    if x >= xs[-1]:
        return shape.line[-1][1]
    index = bisect_right(xs, x)
    (x0, y0), (x1, y1) = shape.line[index - 1], shape.line[index]
    return y0 + (y1 - y0) * (x - x0) / (x1 - x0)


def rasterize(samples: Sequence[float], columns: int, rows: int) -> list[str]:
    """
    Draw the area under the trend line as rows of block characters.

    Each cell is split into eighths vertically, so ``rows`` rows give a
    resolution of ``rows * 8`` levels. Returns ``rows`` strings of
    ``columns`` characters, top row first.
    """
    columns = max(1, columns)
    rows = max(1, rows)
    shape = trend_shape(samples, width=columns, height=rows * _LEVELS, padding=0, axis_label_width=0)

    heights = [shape.origin_y - line_y_at(shape, column + 0.5) for column in range(columns)]
    lines = []
    for row in range(rows):
        floor = (rows - 1 - row) * _LEVELS
        cells = []
        for level in heights:
            fill = min(_LEVELS, max(0, round(level - floor)))
            cells.append(BLOCKS[fill])
        lines.append("".join(cells))
    return lines
