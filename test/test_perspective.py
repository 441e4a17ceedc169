import pytest

from paperlib.geometry import Point
from paperlib.image_ops import ImageOps
from paperlib.perspective import AspectRatio, correct_perspective, measured_ratio, output_size

RECT = [Point(200, 100), Point(0, 0), Point(0, 100), Point(200, 0)]


@pytest.mark.unit
@pytest.mark.parametrize("name,aspect", [
    ("original", AspectRatio.ORIGINAL),
    ("a4-portrait", AspectRatio.A4_PORTRAIT),
    ("Letter_Landscape", AspectRatio.LETTER_LANDSCAPE),
    ("us-dollar-bill-landscape", AspectRatio.US_DOLLAR_BILL_LANDSCAPE),
    ("custom", AspectRatio.CUSTOM),
])
def test_aspect_from_name(name, aspect):
    assert AspectRatio.from_name(name) is aspect


@pytest.mark.unit
def test_unknown_aspect_name():
    with pytest.raises(KeyError):
        AspectRatio.from_name("tabloid")


@pytest.mark.unit
def test_measured_ratio():
    assert measured_ratio(Point(0, 0), Point(200, 0), Point(200, 100), Point(0, 100)) == pytest.approx(0.5)
    assert measured_ratio(Point(0, 0), Point(0, 0), Point(0, 0), Point(0, 0)) is None


@pytest.mark.unit
def test_output_size():
    assert output_size(RECT) == (200, 100)
    assert output_size(RECT, AspectRatio.SQUARE) == (200, 200)
    assert output_size(RECT, AspectRatio.A4_PORTRAIT) == (200, 282)
    assert output_size(RECT, AspectRatio.CUSTOM, custom_ratio=0.25) == (200, 50)
    assert output_size(RECT, AspectRatio.CUSTOM) is None


@pytest.mark.unit
def test_perspective_uses_best_fit(fake_ops):
    result = correct_perspective("page.png", RECT, scale_factor=1.0, ops=fake_ops)

    assert result.shape == (300, 400, 3)
    (call,) = fake_ops.warp_calls('bestfit')
    control_points = call[1]
    assert [(cp.src_x, cp.src_y, cp.dst_x, cp.dst_y) for cp in control_points] == [
        (0, 0, 0, 0),
        (0, 100, 0, 100),
        (200, 100, 200, 100),
        (200, 0, 200, 0),
    ]


@pytest.mark.unit
def test_perspective_rejects_bad_input(fake_ops):
    assert correct_perspective("page.png", RECT[:3], 1.0, ops=fake_ops) is None
    assert correct_perspective("page.png", RECT, 1.0, AspectRatio.CUSTOM, ops=fake_ops) is None
    # 2x1 selection is below the minimum output size
    assert correct_perspective("page.png", RECT, 0.01, ops=fake_ops) is None
    assert fake_ops.calls == []


@pytest.mark.integration
def test_perspective_of_whole_image(image_file):
    corners = [Point(0, 0), Point(119, 0), Point(119, 89), Point(0, 89)]

    result = correct_perspective(image_file, corners, 1.0, AspectRatio.LETTER_PORTRAIT, ops=ImageOps())

    assert result is not None
    height, width = result.shape[:2]
    # A landscape selection mapped to portrait paper stretches vertically
    assert height > width
