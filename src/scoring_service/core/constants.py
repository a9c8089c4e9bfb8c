"""
Shared schema keys and numeric policies.

Response keys are declared once here so that the formatter, the
similarity layer and the metric engine agree on the external shape.
"""

# --- Response schema keys ---

PREDICTIONS_KEY = "predictions"
URI_KEY = "uri"
LOSS_KEY = "loss"
INDEX_URI_KEY = "index_uri"
INDEXED_KEY = "indexed"
NNS_KEY = "nns"
DIST_KEY = "dist"

# Payload list key, chosen by task
CLASSES_KEY = "classes"
VECTOR_KEY = "vector"
LOSSES_KEY = "losses"
ROIS_KEY = "rois"
SERIES_KEY = "series"

# Entry keys
CAT_KEY = "cat"
PROB_KEY = "prob"
VAL_KEY = "val"
BBOX_KEY = "bbox"
VALS_KEY = "vals"
MASK_KEY = "mask"
OUT_KEY = "out"
LAST_KEY = "last"

# Bounding box coordinates
XMIN_KEY = "xmin"
YMIN_KEY = "ymin"
XMAX_KEY = "xmax"
YMAX_KEY = "ymax"

# Measure record keys
MEASURE_KEY = "measure"
MEASURES_KEY = "measures"
TEST_ID_KEY = "test_id"
TEST_NAME_KEY = "test_name"

# --- Numeric policies ---

# Added to confusion-matrix row/column sums
F1_EPSILON = 1e-8

# Values below this are clamped before taking logs in KL/JS
SOFT_DIVERGENCE_EPSILON = 1e-5

# Added to every time-series denominator
TS_METRICS_EPSILON = 1e-2

# Minimum recall step counted by the AP envelope integration
AP_RECALL_EPSILON = 1e-6

# Added to |target| in relative error
PERCENT_EPSILON = 1e-9

# Tolerance when comparing a target against ignore_label
IGNORE_LABEL_TOLERANCE = 1e-9

# Threshold sentinel: mask only negative targets
UNSET_THRESHOLD = -1.0

SOFT_DELTAS = (0.05, 0.1, 0.2, 0.5)

# Masked entries in the delta score never fall under any delta
MASKED_DELTA_FILL = 10.0

# Detection raw output placeholders
UNDEFINED_GT = "UNDEFINED_GT"
NO_DETECTION = "NO_DETECTION"
