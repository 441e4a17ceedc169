"""
Perspective correction - maps a 4-corner selection onto a rectangle of a chosen aspect ratio.
"""

import enum
import logging
import time

from .defaults import MIN_OUTPUT_SIZE
from .geometry import ControlPoint, bounding_box, distance, scale_points
from .image_ops import ImageOps
from .quad_detector import order_points
from .runner import CorrectionCancelled, check_cancelled, elapsed_ms


class AspectRatio(enum.Enum):
    """Standard page shapes; the value is height / width (None = derive)"""
    ORIGINAL = None
    SQUARE = 1.0
    LETTER_PORTRAIT = 11.0 / 8.5
    LETTER_LANDSCAPE = 8.5 / 11.0
    A4_PORTRAIT = 297.0 / 210.0
    A4_LANDSCAPE = 210.0 / 297.0
    US_DOLLAR_BILL_PORTRAIT = 6.14 / 2.61
    US_DOLLAR_BILL_LANDSCAPE = 2.61 / 6.14
    CUSTOM = "custom"

    @classmethod
    def from_name(cls, name):
        """Look up a preset by a command-line style name (e.g. "a4-portrait")"""
        return cls[name.strip().upper().replace('-', '_')]


def measured_ratio(tl, tr, br, bl):
    """Height / width of a quad from its averaged opposite sides"""
    avg_width = (distance(tl, tr) + distance(bl, br)) / 2.0
    avg_height = (distance(tl, bl) + distance(tr, br)) / 2.0
    if avg_width == 0:
        return None
    return avg_height / avg_width


def output_size(points, aspect=AspectRatio.ORIGINAL, custom_ratio=None):
    """
    Size of the corrected rectangle.

    The width is the horizontal extent of the selection; the height follows
    from the aspect ratio. ORIGINAL measures the ratio from the selection
    itself and CUSTOM uses custom_ratio (height / width).

    Returns:
        tuple: (width, height) in pixels, or None when no ratio is available
    """
    tl, tr, br, bl = order_points(points)

    if aspect is AspectRatio.CUSTOM:
        ratio = custom_ratio if custom_ratio else None
    elif aspect is AspectRatio.ORIGINAL:
        ratio = measured_ratio(tl, tr, br, bl)
    else:
        ratio = aspect.value

    if ratio is None:
        return None

    left, _, right, _ = bounding_box([tl, tr, br, bl])
    width = int(right - left)
    return width, int(width * ratio)


def correct_perspective(image_path, points, scale_factor, aspect=AspectRatio.ORIGINAL,
                        custom_ratio=None, ops=None, logger=None, cancel=None):
    """
    Rectify a 4-corner selection.

    Args:
        image_path: Path to the source image
        points: The four selection corners in display coordinates, any order
        scale_factor: Display to pixel scale
        aspect: AspectRatio preset of the target rectangle
        custom_ratio: Height / width when aspect is CUSTOM
        ops: ImageOps backend
        logger: Logger for diagnostics
        cancel: Optional threading.Event

    Returns:
        Corrected image sized to hold the whole warped source, or None on failure
    """
    log = logger or logging.getLogger(__name__)
    ops = ops or ImageOps(logger=log)
    start = time.perf_counter()

    if len(points) != 4:
        log.warning(f"[Perspective] Need 4 corner points, got {len(points)}")
        return None

    scaled = scale_points(points, scale_factor)
    size = output_size(scaled, aspect, custom_ratio)
    if size is None:
        log.warning(f"[Perspective] No usable aspect ratio for {aspect.name}, aborting.")
        return None

    width, height = size
    if width < MIN_OUTPUT_SIZE or height < MIN_OUTPUT_SIZE:
        log.warning(f"[Perspective] Output too small ({width}x{height}), aborting.")
        return None

    log.info(f"[Perspective] Starting. aspect={aspect.name}, target {width}x{height}")

    tl, tr, br, bl = order_points(scaled)
    control_points = [
        ControlPoint(tl.x, tl.y, 0, 0),
        ControlPoint(bl.x, bl.y, 0, height),
        ControlPoint(br.x, br.y, width, height),
        ControlPoint(tr.x, tr.y, width, 0),
    ]

    try:
        check_cancelled(cancel, "loading")
        source = ops.load_image(image_path)
        if source is None:
            return None

        check_cancelled(cancel, "warp")
        result = ops.distort_perspective_bestfit(source, control_points)
    except CorrectionCancelled as e:
        log.info(f"[Perspective] {e}")
        return None

    log.info(f"[Perspective] Complete in {elapsed_ms(start):.0f}ms")
    return result
