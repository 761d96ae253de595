import random

import pytest

from core.grid import COLUMN_OVERHEAD, ResultGrid


def make_grid(rows=10, cols=3, width=80, height=24, value_width=5):
    columns = [f"c{i}" for i in range(cols)]
    data = [{col: "x" * value_width for col in columns} for _ in range(rows)]
    return ResultGrid(columns, data, width=width, height=height)


def assert_selection_visible(grid):
    assert grid.selected_row in grid.visible_rows()
    assert grid.selected_col in grid.visible_columns()


# ── Widths ────────────────────────────────────────────────────

def test_column_width_is_longest_value_capped():
    grid = ResultGrid(
        ["id", "description"],
        [{"id": 1, "description": "a" * 80}, {"id": 22222, "description": "short"}],
        max_column_width=50,
    )
    assert grid.column_widths == [5, 50]


def test_null_counts_as_four_characters():
    grid = ResultGrid(["v"], [{"v": None}])
    assert grid.column_widths == [4]


# ── Navigation ────────────────────────────────────────────────

def test_moves_are_idempotent_at_boundaries():
    grid = make_grid(rows=3, cols=2)
    grid.move_up()
    grid.move_left()
    assert (grid.selected_row, grid.selected_col) == (0, 0)

    for _ in range(10):
        grid.move_down()
        grid.move_right()
    assert (grid.selected_row, grid.selected_col) == (2, 1)
    grid.move_down()
    grid.move_right()
    assert (grid.selected_row, grid.selected_col) == (2, 1)


def test_unknown_direction_raises():
    with pytest.raises(ValueError):
        make_grid().move("sideways")


def test_moving_down_scrolls_by_one_row():
    grid = make_grid(rows=50, height=15)  # ten visible rows
    assert grid.visible_row_count() == 10
    for _ in range(10):
        grid.move_down()
    assert grid.selected_row == 10
    assert grid.row_offset == 1
    assert_selection_visible(grid)


def test_moving_up_snaps_offset_to_selection():
    grid = make_grid(rows=50, height=15)
    for _ in range(30):
        grid.move_down()
    for _ in range(15):
        grid.move_up()
    assert grid.selected_row == 15
    assert grid.row_offset == 15


def test_moving_right_advances_column_offset_minimally():
    grid = make_grid(cols=10, width=4 * (5 + COLUMN_OVERHEAD))  # four columns fit
    assert grid.visible_columns() == [0, 1, 2, 3]
    for _ in range(4):
        grid.move_right()
    assert grid.selected_col == 4
    assert grid.col_offset == 1
    assert grid.visible_columns() == [1, 2, 3, 4]


def test_selection_stays_visible_during_random_walk():
    rng = random.Random(7)
    grid = ResultGrid(
        [f"col{i}" for i in range(12)],
        [{f"col{i}": "v" * rng.randint(1, 30) for i in range(12)} for _ in range(120)],
        width=70,
        height=20,
    )
    for _ in range(500):
        grid.move(rng.choice(["up", "down", "left", "right"]))
        assert_selection_visible(grid)


def test_wide_column_is_still_shown_alone():
    grid = ResultGrid(["huge"], [{"huge": "z" * 50}], width=20)
    assert grid.visible_columns() == [0]


# ── Viewport ──────────────────────────────────────────────────

def test_visible_rows_never_below_one():
    grid = make_grid(height=3)
    assert grid.visible_row_count() == 1
    assert list(grid.visible_rows()) == [0]


def test_shrinking_viewport_keeps_selection_visible():
    grid = make_grid(rows=100, height=25)  # twenty visible rows
    for _ in range(40):
        grid.move_down()
    assert grid.selected_row == 40
    assert grid.row_offset == 21

    grid.set_viewport(80, 10)
    assert grid.visible_row_count() == 5
    assert_selection_visible(grid)
    assert grid.row_offset == 36

    grid.set_viewport(80, 60)
    assert_selection_visible(grid)


def test_narrowing_viewport_keeps_selected_column_visible():
    grid = make_grid(cols=8, width=200)
    for _ in range(7):
        grid.move_right()
    assert grid.col_offset == 0

    grid.set_viewport(2 * (5 + COLUMN_OVERHEAD), 24)
    assert_selection_visible(grid)
    assert grid.col_offset == 6


# ── Selection & Export ────────────────────────────────────────

def test_selected_cell():
    grid = ResultGrid(["id", "name"], [{"id": 1, "name": "ada"}, {"id": 2, "name": "alan"}])
    grid.move_down()
    grid.move_right()
    assert grid.selected_column() == "name"
    assert grid.selected_value() == "alan"


def test_export_tsv_covers_all_rows():
    rows = [{"id": i, "name": f"n{i}", "note": None} for i in range(30)]
    grid = ResultGrid(["id", "name", "note"], rows, height=8)
    lines = grid.export_tsv().split("\n")
    assert len(lines) == 31
    assert lines[0] == "id\tname\tnote"
    assert lines[1] == "0\tn0\tNULL"
    assert all(len(line.split("\t")) == 3 for line in lines)


# ── Rendering ─────────────────────────────────────────────────

def test_render_small_table_has_rounded_corners_and_no_indicator():
    grid = ResultGrid(["id"], [{"id": 1}, {"id": None}])
    lines = grid.render().plain.split("\n")
    assert lines[0] == "╭──────╮"
    assert lines[1] == "│ id   │"
    assert lines[2] == "├──────┤"
    assert lines[3] == "│ 1    │"
    assert lines[4] == "│ NULL │"
    assert lines[5] == "╰──────╯"
    assert len(lines) == 6


def test_render_clipped_columns_use_tees_and_arrows():
    grid = make_grid(rows=3, cols=10, width=3 * (5 + COLUMN_OVERHEAD))
    plain = grid.render().plain
    top = plain.split("\n")[0]
    assert top.startswith("╭")
    assert top.endswith("┬")
    assert "Cols 1-3 of 10" in plain
    assert plain.rstrip().endswith("→")

    for _ in range(5):
        grid.move_right()
    top = grid.render().plain.split("\n")[0]
    assert top.startswith("┬")
    assert top.endswith("┬")


def test_render_row_indicator():
    grid = make_grid(rows=100, height=15)
    plain = grid.render().plain
    assert "Rows 1-10 of 100" in plain
    assert "Cols" not in plain


def test_render_flattens_newlines_in_cells():
    grid = ResultGrid(["text"], [{"text": "line one\nline two"}])
    assert "│ line one line two │" in grid.render().plain


def test_render_empty_grid():
    assert ResultGrid(["a"], []).render().plain == "No results to display"
