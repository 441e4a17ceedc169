"""
ImageOps - Image decoding, encoding and the warp primitives used by the correctors.

The correctors only compute control points; every pixel operation goes
through this class so that it can be swapped for a recording fake in tests.
Images are numpy arrays in RGB (or RGBA) channel order.
"""

import logging
import math
import os
from collections import namedtuple

import cv2  # For perspective transforms and remapping
import cv3  # For basic I/O
import numpy as np
from PIL import Image
from pillow_heif import register_heif_opener  # For HEIC file support

from .defaults import DEFAULT_DPI, WARP_BAND_PIXELS

# Register HEIF opener with Pillow to enable HEIC support
register_heif_opener()


# Output raster of a warp: size plus the offset of its origin in destination space
Viewport = namedtuple("Viewport", ["width", "height", "x_offset", "y_offset"], defaults=(0, 0))

VIRTUAL_PIXEL_EDGE = "edge"
VIRTUAL_PIXEL_TRANSPARENT = "transparent"
VIRTUAL_PIXEL_METHODS = (VIRTUAL_PIXEL_EDGE, VIRTUAL_PIXEL_TRANSPARENT)

# Resampling kernel for every warp
INTERPOLATION = cv2.INTER_CUBIC

HEIC_EXTENSIONS = ('.heic', '.heif')


def polynomial_terms(order):
    """Number of coefficients of a bivariate polynomial of the given order"""
    return (order + 1) * (order + 2) // 2


def _polynomial_basis(xs, ys, order):
    # Basis: 1, y, y², ..., x, xy, ..., x^order
    cols = []
    for i in range(order + 1):
        for j in range(order + 1 - i):
            cols.append(xs ** i * ys ** j)
    return np.column_stack(cols)


def fit_polynomial(control_points, order):
    """
    Fit the reverse (destination -> source) polynomial mapping of a warp.

    Args:
        control_points: Sequence of (src_x, src_y, dst_x, dst_y)
        order: Polynomial order

    Returns:
        function(dst_xs, dst_ys) -> (src_xs, src_ys) operating on numpy arrays

    Raises:
        ValueError: If there are fewer control points than polynomial terms
    """
    pts = np.asarray(control_points, dtype=np.float64).reshape(-1, 4)
    terms = polynomial_terms(order)
    if len(pts) < terms:
        raise ValueError(f"Order {order} polynomial needs at least {terms} control points, got {len(pts)}")

    # Normalize destination coordinates for numerical stability
    center = pts[:, 2:].mean(axis=0)
    spread = max(float(np.abs(pts[:, 2:] - center).max()), 1.0)

    basis = _polynomial_basis((pts[:, 2] - center[0]) / spread,
                              (pts[:, 3] - center[1]) / spread, order)
    coeffs_x, _, _, _ = np.linalg.lstsq(basis, pts[:, 0], rcond=None)
    coeffs_y, _, _, _ = np.linalg.lstsq(basis, pts[:, 1], rcond=None)

    def mapping(dst_xs, dst_ys):
        grid = _polynomial_basis((np.asarray(dst_xs, dtype=np.float64) - center[0]) / spread,
                                 (np.asarray(dst_ys, dtype=np.float64) - center[1]) / spread, order)
        return grid @ coeffs_x, grid @ coeffs_y

    return mapping


def _with_alpha(image):
    """Return an RGBA copy of an image (alpha is opaque where newly added)"""
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
    if image.shape[2] == 4:
        return image
    return cv2.cvtColor(image, cv2.COLOR_RGB2RGBA)


def _max_value(dtype):
    if np.issubdtype(dtype, np.integer):
        return np.iinfo(dtype).max
    return 1.0


class ImageOps:
    """
    OpenCV-backed implementation of the image operations the correctors need.

    Supports:
    - Decoding (cv3, or Pillow + pillow-heif for HEIC) and DPI-tagged encoding
    - Polynomial warps from dense control point grids
    - 4-point perspective warps, with or without best-fit sizing
    - Cropping, compositing and blank canvases matching a source format
    """

    def __init__(self, logger=None):
        self.log = logger or logging.getLogger(__name__)

    def load_image(self, path):
        """
        Load an image from disk.

        Args:
            path: Image file path, or an already decoded numpy array

        Returns:
            numpy array in RGB format, or None if the file cannot be decoded
        """
        if isinstance(path, np.ndarray):
            return path.copy()

        path = str(path)
        is_heic = path.lower().endswith(HEIC_EXTENSIONS)

        try:
            if is_heic:
                # Load HEIC with PIL/pillow-heif, then convert to numpy array for OpenCV
                with Image.open(path) as pil_image:
                    image = np.array(pil_image.convert('RGB'))
            else:
                # cv3 loads images in RGB by default
                image = cv3.imread(path)
        except Exception as e:
            self.log.error(f"Could not load image {path}: {e}")
            return None

        if image is None or image.size == 0:
            self.log.error(f"Could not load image {path}: empty result")
            return None

        return image

    def save_image(self, image, path, dpi=DEFAULT_DPI):
        """
        Encode an image with DPI metadata.

        HEIC destinations are written as PNG, and JPEG destinations drop any
        alpha channel.

        Returns:
            str: The path actually written
        """
        path = str(path)
        name, ext = os.path.splitext(path)
        if ext.lower() in HEIC_EXTENSIONS:
            path = name + '.png'
            ext = '.png'

        pil_image = Image.fromarray(image)
        if ext.lower() in ('.jpg', '.jpeg') and pil_image.mode == 'RGBA':
            pil_image = pil_image.convert('RGB')

        pil_image.save(path, dpi=(dpi, dpi))
        self.log.info(f"Image saved to {path} @ {dpi} DPI")
        return path

    def size(self, image):
        """Return (width, height) of an image"""
        h, w = image.shape[:2]
        return w, h

    def distort_polynomial(self, image, order, control_points, viewport,
                           virtual_pixel=VIRTUAL_PIXEL_EDGE):
        """
        Resample an image through a polynomial warp.

        Args:
            image: Source numpy array
            order: Polynomial order
            control_points: Sequence of (src_x, src_y, dst_x, dst_y)
            viewport: Viewport of the output in destination space
            virtual_pixel: "edge" clamps samples outside the source,
                           "transparent" returns RGBA with alpha 0 there

        Returns:
            numpy array of viewport.height x viewport.width
        """
        if virtual_pixel not in VIRTUAL_PIXEL_METHODS:
            raise ValueError(f"Unknown virtual pixel method: {virtual_pixel}")

        count = len(control_points)
        fitted_order = order
        while fitted_order > 1 and polynomial_terms(fitted_order) > count:
            fitted_order -= 1
        if fitted_order != order:
            self.log.warning(f"Order {order} polynomial needs {polynomial_terms(order)} control points, "
                             f"got {count}; using order {fitted_order}")

        mapping = fit_polynomial(control_points, fitted_order)

        map_x, map_y = self._polynomial_maps(mapping, viewport)

        if virtual_pixel == VIRTUAL_PIXEL_EDGE:
            return cv2.remap(image, map_x, map_y, INTERPOLATION,
                             borderMode=cv2.BORDER_REPLICATE)

        return cv2.remap(_with_alpha(image), map_x, map_y, INTERPOLATION,
                         borderMode=cv2.BORDER_CONSTANT, borderValue=(0, 0, 0, 0))

    def _polynomial_maps(self, mapping, viewport):
        """
        Source coordinates of every viewport pixel as float32 remap maps.

        The mapping is evaluated in bands of rows so the float64 polynomial
        basis never spans the whole output.
        """
        width, height = viewport.width, viewport.height
        map_x = np.empty((height, width), dtype=np.float32)
        map_y = np.empty((height, width), dtype=np.float32)

        xs = np.arange(width, dtype=np.float64) + viewport.x_offset
        band = max(1, WARP_BAND_PIXELS // max(width, 1))
        for top in range(0, height, band):
            rows = min(band, height - top)
            band_ys = np.arange(top, top + rows, dtype=np.float64) + viewport.y_offset
            src_xs, src_ys = mapping(np.tile(xs, rows), np.repeat(band_ys, width))
            map_x[top:top + rows] = src_xs.reshape(rows, width)
            map_y[top:top + rows] = src_ys.reshape(rows, width)

        return map_x, map_y

    def _perspective_matrix(self, control_points):
        pts = np.asarray(control_points, dtype=np.float32).reshape(-1, 4)
        if len(pts) != 4:
            raise ValueError(f"Perspective warp needs exactly 4 control points, got {len(pts)}")

        src = np.ascontiguousarray(pts[:, :2])
        dst = np.ascontiguousarray(pts[:, 2:])
        return cv2.getPerspectiveTransform(src, dst), dst

    def distort_perspective(self, image, control_points, viewport=None):
        """
        Resample an image through a 4-point perspective warp.

        Without a viewport the output keeps the source dimensions, grown to
        contain the destination points, so the caller can crop the exact
        rectangle it asked for.
        """
        M, dst = self._perspective_matrix(control_points)

        if viewport is None:
            w, h = self.size(image)
            viewport = Viewport(max(w, int(math.ceil(dst[:, 0].max()))),
                                max(h, int(math.ceil(dst[:, 1].max()))))

        if viewport.x_offset or viewport.y_offset:
            shift = np.array([[1, 0, -viewport.x_offset],
                              [0, 1, -viewport.y_offset],
                              [0, 0, 1]], dtype=np.float64)
            M = shift @ M

        return cv2.warpPerspective(image, M, (viewport.width, viewport.height),
                                   flags=INTERPOLATION)

    def distort_perspective_bestfit(self, image, control_points):
        """
        Perspective warp whose output is sized to hold the whole transformed image.
        """
        M, _ = self._perspective_matrix(control_points)
        w, h = self.size(image)

        # Transform the four corners of the original image to see the bounding box
        img_corners = np.array([
            [0, 0],
            [w - 1, 0],
            [w - 1, h - 1],
            [0, h - 1]], dtype="float32")
        transformed = cv2.perspectiveTransform(img_corners.reshape(-1, 1, 2), M).reshape(-1, 2)

        min_x = int(np.floor(transformed[:, 0].min()))
        max_x = int(np.ceil(transformed[:, 0].max()))
        min_y = int(np.floor(transformed[:, 1].min()))
        max_y = int(np.ceil(transformed[:, 1].max()))

        shift = np.array([[1, 0, -min_x],
                          [0, 1, -min_y],
                          [0, 0, 1]], dtype=np.float64)
        return cv2.warpPerspective(image, shift @ M, (max_x - min_x, max_y - min_y),
                                   flags=INTERPOLATION)

    def crop(self, image, x, y, width, height):
        """Crop a region; the region is clipped to the image bounds"""
        w, h = self.size(image)
        x0, y0 = max(0, int(x)), max(0, int(y))
        x1, y1 = min(w, int(x) + int(width)), min(h, int(y) + int(height))
        return image[y0:y1, x0:x1].copy()

    def composite(self, base, overlay, x, y):
        """
        Draw overlay over base with its top-left at (x, y).

        An alpha channel on the overlay is honoured ("over" operator); the
        result keeps the channel layout of base.
        """
        result = base.copy()
        bw, bh = self.size(base)
        ow, oh = self.size(overlay)

        x0, y0 = max(0, int(x)), max(0, int(y))
        x1, y1 = min(bw, int(x) + ow), min(bh, int(y) + oh)
        if x1 <= x0 or y1 <= y0:
            return result

        patch = overlay[y0 - int(y):y1 - int(y), x0 - int(x):x1 - int(x)]
        region = result[y0:y1, x0:x1]

        base_channels = 1 if base.ndim == 2 else base.shape[2]
        has_alpha = patch.ndim == 3 and patch.shape[2] == 4

        if not has_alpha:
            if base_channels == 4:
                patch = _with_alpha(patch)
            region[...] = patch.reshape(region.shape)
            return result

        scale = float(_max_value(patch.dtype))
        alpha = patch[:, :, 3:4].astype(np.float64) / scale
        color = patch[:, :, :3].astype(np.float64)

        if base_channels == 4:
            base_alpha = region[:, :, 3:4].astype(np.float64) / scale
            out_alpha = alpha + base_alpha * (1.0 - alpha)
            blended = color * alpha + region[:, :, :3] * base_alpha * (1.0 - alpha)
            blended = np.divide(blended, out_alpha, out=np.zeros_like(blended), where=out_alpha > 0)
            region[:, :, :3] = np.clip(blended, 0, scale).astype(base.dtype)
            region[:, :, 3:4] = np.clip(out_alpha * scale, 0, scale).astype(base.dtype)
        elif base_channels == 3:
            blended = color * alpha + region.astype(np.float64) * (1.0 - alpha)
            region[...] = np.clip(blended, 0, scale).astype(base.dtype)
        else:
            gray = cv2.cvtColor(patch[:, :, :3], cv2.COLOR_RGB2GRAY).astype(np.float64)
            blended = gray * alpha[:, :, 0] + region.astype(np.float64) * (1.0 - alpha[:, :, 0])
            region[...] = np.clip(blended, 0, scale).astype(base.dtype)

        return result

    def new_canvas(self, width, height, like):
        """White canvas with the same channel layout and dtype as `like`"""
        shape = (int(height), int(width)) + like.shape[2:]
        return np.full(shape, _max_value(like.dtype), dtype=like.dtype)
