"""
Central place for configurable defaults and magic numbers.
"""

# Control grids
EDGE_GRID_DIVISIONS = 20
UNWARP_GRID_DIVISIONS = 16
MAX_POLYNOMIAL_ORDER = 3

# Corrections producing anything smaller than this (px) are aborted
MIN_OUTPUT_SIZE = 10

# Tri-fold panels are never shorter than this (px)
MIN_PANEL_HEIGHT = 10

# Quadrilateral detection
DETECT_MIN_AREA = 0.05          # fraction of the image area
DETECT_MAX_RESULTS = 5
DETECT_APPROX_EPSILON = 0.02    # fraction of the contour arc length
DETECT_BLUR_KERNEL = 5
DETECT_CANNY_LOWER = 50
DETECT_CANNY_UPPER = 150
DETECT_DILATE_KERNEL = 3
SIZE_WEIGHT = 0.6
RECTANGULARITY_WEIGHT = 0.4
MAX_ANGLE_DEVIATION = 45.0      # degrees; deviation at which rectangularity hits 0

# Output encoding
DEFAULT_DPI = 300

# Background worker pool
DEFAULT_WORKERS = 2

# Polynomial warps evaluate their mapping this many output pixels at a time
WARP_BAND_PIXELS = 65536
