import cv2
import numpy as np
import pytest

from paperlib.image_ops import ImageOps, VIRTUAL_PIXEL_TRANSPARENT


class FakeImageOps(ImageOps):
    """
    ImageOps that records warp calls instead of resampling.

    Loading returns a fixed synthetic image; warps return solid rasters of
    the requested size so compositing and stitching can be checked.
    Cropping, compositing and canvases use the real numpy implementations.
    """

    def __init__(self, width=400, height=300, fill=40, load_fails=False):
        super().__init__()
        self.image = np.full((height, width, 3), fill, dtype=np.uint8)
        self.load_fails = load_fails
        self.calls = []

    def load_image(self, path):
        self.calls.append(('load', str(path)))
        if self.load_fails:
            return None
        return self.image.copy()

    def distort_polynomial(self, image, order, control_points, viewport, virtual_pixel="edge"):
        self.calls.append(('polynomial', order, list(control_points), viewport, virtual_pixel))
        if virtual_pixel == VIRTUAL_PIXEL_TRANSPARENT:
            out = np.full((viewport.height, viewport.width, 4), 200, dtype=np.uint8)
            out[:, :, 3] = 255
            return out
        return np.full((viewport.height, viewport.width, image.shape[2]), 200, dtype=np.uint8)

    def distort_perspective(self, image, control_points, viewport=None):
        self.calls.append(('perspective', list(control_points), viewport))
        index = len(self.warp_calls('perspective'))
        h, w = image.shape[:2]
        max_x = int(np.ceil(max(cp[2] for cp in control_points)))
        max_y = int(np.ceil(max(cp[3] for cp in control_points)))
        return np.full((max(h, max_y), max(w, max_x), image.shape[2]), index * 50, dtype=np.uint8)

    def distort_perspective_bestfit(self, image, control_points):
        self.calls.append(('bestfit', list(control_points), None))
        return image.copy()

    def warp_calls(self, kind):
        return [call for call in self.calls if call[0] == kind]


@pytest.fixture
def fake_ops():
    return FakeImageOps()


@pytest.fixture
def make_fake_ops():
    return FakeImageOps


@pytest.fixture
def document_image():
    """A light page on a dark table, 400x300, page corners at (80,60)-(320,240)"""
    image = np.full((300, 400, 3), 30, dtype=np.uint8)
    cv2.rectangle(image, (80, 60), (320, 240), (235, 235, 235), -1)
    return image


@pytest.fixture
def blank_image():
    return np.full((300, 400, 3), 128, dtype=np.uint8)


@pytest.fixture
def gradient_image():
    """Smooth RGB gradient; resampling errors show up as large differences"""
    xs, ys = np.meshgrid(np.arange(120), np.arange(90))
    image = np.zeros((90, 120, 3), dtype=np.uint8)
    image[:, :, 0] = (xs * 2).astype(np.uint8)
    image[:, :, 1] = (ys * 2).astype(np.uint8)
    image[:, :, 2] = 100
    return image


@pytest.fixture
def image_file(tmp_path, gradient_image):
    path = tmp_path / "page.png"
    # cv2 writes BGR
    cv2.imwrite(str(path), cv2.cvtColor(gradient_image, cv2.COLOR_RGB2BGR))
    return path
