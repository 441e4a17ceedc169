"""
Paperwarp library modules - document geometry correction.
"""

from .geometry import ControlPoint, Point
from .image_ops import ImageOps, Viewport
from .quad_detector import DetectionResult, Quadrilateral, QuadrilateralDetector
from .grid_straighten import generate_regular_grid, straighten
from .edge_correction import correct_edges, get_edge_snap_info
from .unwarp import correct_unwarp, sample_edge_curve
from .trifold import correct_trifold
from .perspective import AspectRatio, correct_perspective
from .runner import CorrectionCancelled, CorrectionRunner

__all__ = [
    'Point',
    'ControlPoint',
    'ImageOps',
    'Viewport',
    'QuadrilateralDetector',
    'Quadrilateral',
    'DetectionResult',
    'generate_regular_grid',
    'straighten',
    'correct_edges',
    'get_edge_snap_info',
    'correct_unwarp',
    'sample_edge_curve',
    'correct_trifold',
    'AspectRatio',
    'correct_perspective',
    'CorrectionRunner',
    'CorrectionCancelled',
]
