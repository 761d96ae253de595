# ============================================================
# asqli - AI-assisted SQL terminal client
# core/grid.py - Navigable result grid
# ============================================================

from typing import Any, Dict, List, Optional

from rich.text import Text

from core.database import QueryResult
from utils.helpers import format_value, truncate_string

# Each rendered column costs its width plus one space either side and a divider.
COLUMN_OVERHEAD = 3
# Top border, header, separator, bottom border and the indicator line.
ROW_OVERHEAD = 5

BORDER_STYLE = "bright_black"
HEADER_STYLE = "bold cyan"
HEADER_SELECTED_STYLE = "bold black on cyan"
CELL_STYLE = "white"
ROW_SELECTED_STYLE = "white on grey23"
CELL_SELECTED_STYLE = "bold black on bright_cyan"
INDICATOR_STYLE = "dim"


def _cell_text(value: Any) -> str:
    return format_value(value).replace("\r", " ").replace("\n", " ").replace("\t", " ")


class ResultGrid:
    """
    A viewport over one query result.

    The selection always stays inside the rendered window: every movement and
    every viewport change re-runs the row/column visibility checks, which snap
    the offset back to the selection or advance it by the minimum amount.
    """

    def __init__(
        self,
        columns: List[str],
        rows: List[Dict[str, Any]],
        width: int = 80,
        height: int = 24,
        max_column_width: int = 50,
    ):
        self.columns = list(columns)
        self.rows = list(rows)
        self.max_column_width = max_column_width
        self.width = width
        self.height = height

        self.selected_row = 0
        self.selected_col = 0
        self.row_offset = 0
        self.col_offset = 0

        self.column_widths = self._compute_widths()

    @classmethod
    def from_result(cls, result: QueryResult, width: int, height: int, max_column_width: int = 50) -> "ResultGrid":
        return cls(result.columns, result.rows, width=width, height=height, max_column_width=max_column_width)

    def _compute_widths(self) -> List[int]:
        widths = []
        for col in self.columns:
            longest = len(col)
            for row in self.rows:
                longest = max(longest, len(_cell_text(row.get(col))))
            widths.append(min(longest, self.max_column_width))
        return widths

    @property
    def is_empty(self) -> bool:
        return not self.rows or not self.columns

    # ── Viewport ──────────────────────────────────────────────

    def set_viewport(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        self.ensure_column_visible()
        self.ensure_row_visible()

    def visible_row_count(self) -> int:
        return max(1, self.height - ROW_OVERHEAD)

    def visible_rows(self) -> range:
        end = min(self.row_offset + self.visible_row_count(), len(self.rows))
        return range(self.row_offset, end)

    def visible_columns(self) -> List[int]:
        """Greedy left-to-right fit from col_offset; never empty for a non-empty grid."""
        if not self.columns:
            return []

        visible = []
        total = 0
        for idx in range(self.col_offset, len(self.columns)):
            cost = self.column_widths[idx] + COLUMN_OVERHEAD
            if total + cost > self.width:
                break
            visible.append(idx)
            total += cost

        if not visible:
            visible.append(self.col_offset)
        return visible

    def ensure_row_visible(self) -> None:
        if not self.rows:
            return
        if self.selected_row < self.row_offset:
            self.row_offset = self.selected_row
            return
        last_visible = self.row_offset + self.visible_row_count() - 1
        if self.selected_row > last_visible:
            self.row_offset = max(0, self.selected_row - self.visible_row_count() + 1)

    def ensure_column_visible(self) -> None:
        if not self.columns:
            return
        if self.selected_col < self.col_offset:
            self.col_offset = self.selected_col
            return

        total = sum(
            self.column_widths[idx] + COLUMN_OVERHEAD
            for idx in range(self.col_offset, self.selected_col + 1)
        )
        while total > self.width and self.col_offset < self.selected_col:
            total -= self.column_widths[self.col_offset] + COLUMN_OVERHEAD
            self.col_offset += 1

    # ── Navigation ────────────────────────────────────────────

    def move_up(self) -> None:
        if self.rows and self.selected_row > 0:
            self.selected_row -= 1
            self.ensure_row_visible()

    def move_down(self) -> None:
        if self.rows and self.selected_row < len(self.rows) - 1:
            self.selected_row += 1
            self.ensure_row_visible()

    def move_left(self) -> None:
        if self.columns and self.selected_col > 0:
            self.selected_col -= 1
            self.ensure_column_visible()

    def move_right(self) -> None:
        if self.columns and self.selected_col < len(self.columns) - 1:
            self.selected_col += 1
            self.ensure_column_visible()

    def move(self, direction: str) -> None:
        handler = {
            "up": self.move_up,
            "down": self.move_down,
            "left": self.move_left,
            "right": self.move_right,
        }.get(direction)
        if handler is None:
            raise ValueError(f"unknown direction: {direction}")
        handler()

    # ── Selection ─────────────────────────────────────────────

    def selected_column(self) -> str:
        if 0 <= self.selected_col < len(self.columns):
            return self.columns[self.selected_col]
        return ""

    def selected_value(self) -> Optional[Any]:
        if self.is_empty:
            return None
        if not 0 <= self.selected_row < len(self.rows):
            return None
        return self.rows[self.selected_row].get(self.selected_column())

    # ── Export ────────────────────────────────────────────────

    def export_tsv(self) -> str:
        """Header plus every row, tab separated. Not limited to the viewport."""
        lines = ["\t".join(self.columns)]
        for row in self.rows:
            lines.append("\t".join(format_value(row.get(col)) for col in self.columns))
        return "\n".join(lines)

    # ── Rendering ─────────────────────────────────────────────

    def render(self) -> Text:
        text = Text()
        if self.is_empty:
            text.append("No results to display", style=INDICATOR_STYLE)
            return text

        visible_cols = self.visible_columns()
        more_left = self.col_offset > 0
        more_right = visible_cols[-1] < len(self.columns) - 1

        self._render_border(text, visible_cols, "╭", "┬", "╮", more_left, more_right)
        text.append("\n")
        self._render_header(text, visible_cols)
        text.append("\n")
        self._render_border(text, visible_cols, "├", "┼", "┤", False, False)
        text.append("\n")
        rows = self.visible_rows()
        for row_idx in rows:
            self._render_row(text, row_idx, visible_cols)
            text.append("\n")
        self._render_border(text, visible_cols, "╰", "┴", "╯", more_left, more_right)

        indicators = []
        if self.row_offset > 0 or rows.stop < len(self.rows):
            indicators.append(f"Rows {self.row_offset + 1}-{rows.stop} of {len(self.rows)}")
        if more_left or more_right:
            indicators.append(f"Cols {self.col_offset + 1}-{visible_cols[-1] + 1} of {len(self.columns)}")

        if indicators:
            text.append("\n")
            text.append(self._indicator_line(indicators, visible_cols, more_left, more_right), style=INDICATOR_STYLE)
        return text

    def _render_border(self, text: Text, cols: List[int], left: str, mid: str, right: str,
                       more_left: bool, more_right: bool) -> None:
        # Clipped sides keep a tee so the table reads as continuing off-screen.
        edge_left = mid if more_left else left
        edge_right = mid if more_right else right
        segments = ["─" * (self.column_widths[idx] + 2) for idx in cols]
        text.append(edge_left + mid.join(segments) + edge_right, style=BORDER_STYLE)

    def _render_header(self, text: Text, cols: List[int]) -> None:
        text.append("│", style=BORDER_STYLE)
        for idx in cols:
            width = self.column_widths[idx]
            label = truncate_string(self.columns[idx], width).ljust(width)
            style = HEADER_SELECTED_STYLE if idx == self.selected_col else HEADER_STYLE
            text.append(f" {label} ", style=style)
            text.append("│", style=BORDER_STYLE)

    def _render_row(self, text: Text, row_idx: int, cols: List[int]) -> None:
        row = self.rows[row_idx]
        text.append("│", style=BORDER_STYLE)
        for idx in cols:
            width = self.column_widths[idx]
            value = truncate_string(_cell_text(row.get(self.columns[idx])), width).ljust(width)
            if row_idx == self.selected_row and idx == self.selected_col:
                style = CELL_SELECTED_STYLE
            elif row_idx == self.selected_row:
                style = ROW_SELECTED_STYLE
            else:
                style = CELL_STYLE
            text.append(f" {value} ", style=style)
            text.append("│", style=BORDER_STYLE)

    def _indicator_line(self, indicators: List[str], cols: List[int], more_left: bool, more_right: bool) -> str:
        table_width = 2 + sum(self.column_widths[idx] + 2 for idx in cols) + len(cols) - 1
        available = table_width - int(more_left) - int(more_right)
        center = " • ".join(indicators)
        if len(center) < available:
            pad_left = (available - len(center)) // 2
            center = " " * pad_left + center + " " * (available - len(center) - pad_left)
        return ("←" if more_left else "") + center + ("→" if more_right else "")

    def __repr__(self):
        return (
            f"<ResultGrid rows={len(self.rows)} cols={len(self.columns)} "
            f"sel=({self.selected_row},{self.selected_col}) "
            f"off=({self.row_offset},{self.col_offset})>"
        )
