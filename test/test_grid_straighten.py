import logging

import pytest

from paperlib.geometry import Point
from paperlib.grid_straighten import (
    build_grid_control_points,
    generate_regular_grid,
    polynomial_order,
    straighten,
)
from paperlib.image_ops import Viewport


@pytest.mark.unit
@pytest.mark.parametrize("width,height,rows,cols", [
    (400, 300, 3, 3),
    (640, 480, 5, 7),
    (123.5, 77.25, 2, 2),
    (1000, 50, 4, 2),
])
def test_regular_grid_shape(width, height, rows, cols):
    grid = generate_regular_grid(width, height, rows, cols)

    assert len(grid) == rows * cols
    assert grid[0] == Point(0, 0)
    assert grid[cols - 1] == pytest.approx(Point(width, 0))
    assert grid[(rows - 1) * cols] == pytest.approx(Point(0, height))
    assert grid[-1] == pytest.approx(Point(width, height))


@pytest.mark.unit
def test_regular_grid_needs_two_lines():
    with pytest.raises(ValueError):
        generate_regular_grid(100, 100, 1, 3)


@pytest.mark.unit
def test_polynomial_order_is_capped():
    assert polynomial_order(2, 5) == 2
    assert polynomial_order(3, 3) == 3
    assert polynomial_order(6, 8) == 3


@pytest.mark.unit
def test_undragged_grid_is_identity():
    grid = generate_regular_grid(300, 200, 3, 3)

    pairs = build_grid_control_points(grid, 3, 3, 300, 200, scale_factor=1.0)

    assert len(pairs) == 9
    for cp in pairs:
        assert cp.src_x == pytest.approx(cp.dst_x)
        assert cp.src_y == pytest.approx(cp.dst_y)


@pytest.mark.unit
def test_dragged_point_is_source_and_scaled():
    grid = generate_regular_grid(100, 100, 3, 3)
    grid[4] = Point(60, 45)

    pairs = build_grid_control_points(grid, 3, 3, 100, 100, scale_factor=2.0)

    assert pairs[4].src_x == 120 and pairs[4].src_y == 90
    assert pairs[4].dst_x == 100 and pairs[4].dst_y == 100
    # Row-major: index 5 is row 1, col 2
    assert (pairs[5].dst_x, pairs[5].dst_y) == (200, 100)


@pytest.mark.unit
def test_point_count_mismatch_aborts(fake_ops, caplog):
    grid = generate_regular_grid(100, 100, 3, 3)[:-1]

    with caplog.at_level(logging.WARNING):
        assert build_grid_control_points(grid, 3, 3, 100, 100, 1.0) is None
        assert straighten("page.png", grid, 3, 3, 100, 100, 1.0, ops=fake_ops) is None

    assert "count mismatch" in caplog.text
    assert fake_ops.calls == []


@pytest.mark.unit
def test_straighten_warps_full_image(fake_ops):
    grid = generate_regular_grid(200, 150, 4, 4)

    result = straighten("page.png", grid, 4, 4, 200, 150, scale_factor=2.0, ops=fake_ops)

    assert result.shape[:2] == (300, 400)
    (call,) = fake_ops.warp_calls('polynomial')
    _, order, pairs, viewport, virtual_pixel = call
    assert order == 3
    assert len(pairs) == 16
    assert viewport == Viewport(400, 300, 0, 0)
    assert virtual_pixel == "edge"


@pytest.mark.unit
def test_straighten_unreadable_image(make_fake_ops):
    ops = make_fake_ops(load_fails=True)
    grid = generate_regular_grid(100, 100, 3, 3)

    assert straighten("missing.png", grid, 3, 3, 100, 100, 1.0, ops=ops) is None
    assert ops.warp_calls('polynomial') == []
