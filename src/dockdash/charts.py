"""
ASCII chart rendering for the live metrics panel.

All encoders are pure functions of a sample sequence and a target size, so
they can be called from the render path without holding any lock.

Architecture:
- ChartRenderer.sparkline: one row, eight intensity levels
- ChartRenderer.bar: horizontal percentage bar
- ChartRenderer.line_graph: multi-row trend chart
"""

from typing import List, Sequence

SPARK_CHARS = "▁▂▃▄▅▆▇█"
BASELINE = SPARK_CHARS[0]


def _scale(values: Sequence[float]) -> float:
    """Maximum used for normalization; 1 when the data has no positive peak."""
    peak = max(values) if values else 0.0
    return peak if peak > 0 else 1.0


class ChartRenderer:
    """Generates ASCII charts for metrics visualization."""

    @staticmethod
    def sparkline(values: Sequence[float], width: int = 30) -> str:
        """Render values as a fixed-width sparkline, newest sample rightmost.

        Values are normalized against their own maximum, not a fixed scale.
        Fewer samples than ``width`` are left-padded with the baseline
        character; more samples keep only the newest ``width``.
        """
        if width <= 0:
            return ""
        if not values:
            return BASELINE * width

        values = list(values)[-width:]
        max_val = _scale(values)
        levels = len(SPARK_CHARS) - 1

        result = []
        for value in values:
            index = int((value / max_val) * levels)
            index = max(0, min(index, levels))
            result.append(SPARK_CHARS[index])

        return BASELINE * (width - len(result)) + "".join(result)

    @staticmethod
    def bar(value: float, width: int = 30) -> str:
        """Generate a percentage bar; value is clamped to [0, 100] for drawing."""
        if width <= 0:
            return ""
        value = max(0.0, min(100.0, value))
        filled = int((value / 100.0) * width)
        return "█" * filled + "░" * (width - filled)

    @staticmethod
    def line_graph(values: Sequence[float], height: int = 8, width: int = 30) -> List[str]:
        """Generate a multi-row trend chart, one string per row (top first)."""
        if not values or height <= 0 or width <= 0:
            return []

        values = list(values)
        max_val = _scale(values)
        grid = [[" "] * width for _ in range(height)]
        per_col = len(values) / width

        for col in range(width):
            data_index = min(int(col * per_col), len(values) - 1)
            normalized = values[data_index] / max_val
            row = height - 1 - int(normalized * (height - 1))
            row = max(0, min(row, height - 1))

            grid[row][col] = "█"
            for below in range(row + 1, height):
                grid[below][col] = "│"

        return ["".join(r) for r in grid]
