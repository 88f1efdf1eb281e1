"""Named thresholds for every heuristic stage.

Pixel values are on the 0-255 scale unless a name says otherwise; ratios are
fractions of the visible pixels of a region. Classifier comparisons are strict
(``ratio > THRESHOLD``), so a ratio sitting exactly on a threshold does not fire.
"""
from __future__ import annotations

# ---- working resolution / visibility ----
WORKING_RESOLUTION = 256
DEFAULT_MESH_RESOLUTION = 256
ALPHA_VISIBLE_THRESHOLD = 128  # alpha >= 50% counts as visible

# ---- pixel content analysis ----
COLOR_CLUSTER_TOLERANCE = 30.0
COLOR_CLUSTER_SAMPLE_STRIDE = 4
DOMINANT_COLOR_COUNT = 3
DARK_POINT_BRIGHTNESS = 0.2
BRIGHT_POINT_BRIGHTNESS = 0.8
SOBEL_KERNEL_X = (
    (-1.0, 0.0, 1.0),
    (-2.0, 0.0, 2.0),
    (-1.0, 0.0, 1.0),
)
# Sobel peaks below this are float rounding noise.
EDGE_PEAK_EPSILON = 1e-6

# ---- background segmentation ----
BACKGROUND_TOLERANCE = 40.0
BACKGROUND_BORDER_SHARE = 0.6
BACKGROUND_BORDER_STRIDE = 2

# ---- feature regions (fractions of image height) ----
HEAD_REGION = (0.0, 0.4)
EYE_REGION = (0.15, 0.30)
MOUTH_REGION = (0.30, 0.50)
BODY_REGION = (0.40, 1.0)

# ---- headwear ----
HEADWEAR_DARK_BRIGHTNESS = 80
HEADWEAR_COLORED_CHANNEL = 150
HEADWEAR_METALLIC_BRIGHTNESS = 200
HEADWEAR_METALLIC_CHANNEL_DIFF = 30
HEADWEAR_DARK_RATIO = 0.3
HEADWEAR_COLORED_RATIO = 0.4
HEADWEAR_SOLID_DARK_RATIO = 0.5
HEADWEAR_METALLIC_RATIO = 0.1
HEADWEAR_COLOR_BIN = 50

# ---- eyewear ----
EYEWEAR_DARK_BRIGHTNESS = 60
EYEWEAR_REFLECTIVE_BRIGHTNESS = 220
EYEWEAR_RED_MIN_R = 200
EYEWEAR_RED_MAX_GB = 100
EYEWEAR_DARK_RATIO = 0.4
EYEWEAR_REFLECTIVE_RATIO = 0.2
EYEWEAR_RED_RATIO = 0.1

# ---- mouth ----
MOUTH_METALLIC_BRIGHTNESS = 180
MOUTH_METALLIC_CHANNEL_DIFF = 20
MOUTH_WHITE_CHANNEL = 220
MOUTH_DARK_BRIGHTNESS = 80
MOUTH_GRILL_RATIO = 0.05
MOUTH_TEETH_RATIO = 0.1
MOUTH_FANG_DARK_RATIO = 0.2
MOUTH_OPEN_DARK_RATIO = 0.3

# ---- clothing ----
CLOTHING_FABRIC_MIN_BRIGHTNESS = 80
CLOTHING_FABRIC_MAX_BRIGHTNESS = 200
CLOTHING_FABRIC_CHROMA = 50
CLOTHING_CHAIN_BRIGHTNESS = 200
CLOTHING_CHAIN_CHANNEL_DIFF = 15
CLOTHING_FABRIC_RATIO = 0.3
CLOTHING_CHAIN_RATIO = 0.02
CLOTHING_COLOR_BIN = 30
CLOTHING_PATTERN_BIN_COUNT = 8

# ---- fur ----
FUR_COLOR_BIN = 40
FUR_MIN_BIN_SHARE = 0.05
FUR_MULTICOLOR_BIN_COUNT = 3
FUR_ROUGH_EDGE_MEAN = 0.08
FUR_DEFAULT_PRIMARY_COLOR = "120,80,40"

# ---- missing body parts: (x0, x1, y0, y1) windows, sampled every 3 px ----
MISSING_PART_SAMPLE_STRIDE = 3
MISSING_PART_MIN_VARIANCE = 500.0
MISSING_PART_MIN_MEAN = 20.0
MISSING_PART_MAX_MEAN = 235.0
ARM_LEFT_WINDOW = (0.1, 0.3, 0.4, 0.8)
ARM_RIGHT_WINDOW = (0.7, 0.9, 0.4, 0.8)
LEG_LEFT_WINDOW = (0.35, 0.45, 0.8, 1.0)
LEG_RIGHT_WINDOW = (0.55, 0.65, 0.8, 1.0)
TORSO_WINDOW = (0.3, 0.7, 0.4, 0.8)
HAND_LEFT_WINDOW = (0.05, 0.25, 0.6, 0.8)
HAND_RIGHT_WINDOW = (0.75, 0.95, 0.6, 0.8)

# ---- character type vote ----
FEATURE_VOTE_WEIGHTS = {
    "hat": 1.0,
    "sunglasses": 1.0,
    "grill_or_fangs": 1.0,
    "clothing": 1.0,
    "multicolored_fur": 1.0,
}
NFT_VOTE_THRESHOLD = 3.0

# ---- pose ----
ASYMMETRY_THRESHOLD = 0.3
RAISED_ARM_ANGLE = 45.0
LARGE_ANGLE_DIFFERENCE = 60.0
MIN_FOREGROUND_FRACTION = 0.02
MAX_FOREGROUND_FRACTION = 0.95
TORSO_COLUMN_COVERAGE = 0.5
TORSO_ROW_COVERAGE = 0.8
SHOULDER_DROP_FRACTION = 0.1
MIN_ARM_LENGTH_FRACTION = 0.2

# ---- pose normalization overlays (normalized coordinates) ----
CANONICAL_SHOULDER_Y = 0.35
GUIDE_LINE_SPAN = (0.1, 0.9)
ARM_ZONE_CENTERS_X = (0.15, 0.85)
ARM_ZONE_RADIUS_FRACTION = 30.0 / 512.0
ARM_GUIDE_SEGMENTS = ((0.15, 0.35), (0.65, 0.85))
TINT_ALPHA = 0.05
GUIDE_LINE_ALPHA = 0.1
ARM_ZONE_ALPHA = 0.05
ARM_GUIDE_ALPHA = 0.1
GUIDE_LINE_COLOR = (0, 255, 0)
ARM_ZONE_COLOR = (0, 100, 255)
GUIDE_REFERENCE_SIZE = 512  # stroke widths below are pixels at this image width
GUIDE_LINE_WIDTH = 2
ARM_GUIDE_WIDTH = 3

# ---- depth synthesis ----
MIN_DEPTH = 0.02
MAX_DEPTH = 0.8
BASE_DEPTH = 0.1
FACE_ZONE_MAX_Y = 0.6
FACE_BONUS = 0.3
EYE_ZONE_MAX_Y = 0.4
EYE_DARK_BRIGHTNESS = 0.4
EYE_SOCKET_BONUS = 0.15
LIP_ZONE_Y = (0.4, 0.6)
LIP_BONUS = 0.2
TORSO_ZONE_Y = (0.6, 0.85)
TORSO_BONUS = 0.15
CHEST_ZONE_X = (0.35, 0.65)
CHEST_BONUS = 0.1
HIGHLIGHT_BRIGHTNESS = 0.8
HIGHLIGHT_BONUS = 0.2
SATURATION_THRESHOLD = 0.6
SATURATION_BONUS = 0.25
NORMAL_DEVIATION_SCALE = 0.2

# ---- external inference ----
INFERENCE_TIMEOUT_S = 20.0
INFERENCE_MAX_CONCURRENCY = 2
INFERENCE_MIN_INTERVAL_S = 0.5
