"""
Shared constants for palettes, fallback colors and default limits.
"""

# Volcano plot palette, in allocation order
DEFAULT_VOLCANO_PALETTE = (
    "#fd7f6f",
    "#7eb0d5",
    "#b2e061",
    "#bd7ebe",
    "#ffb55a",
    "#ffee65",
    "#beb9db",
    "#fdcce5",
    "#8bd3c7",
)

# Search list palette (one extra entry compared to the volcano palette)
DEFAULT_SEARCH_LIST_PALETTE = (
    "#fd7f6f",
    "#7eb0d5",
    "#b2e061",
    "#bd7ebe",
    "#ffb55a",
    "#ffee65",
    "#beb9db",
    "#fdcce5",
    "#8bd3c7",
    "#ff9999",
)

FALLBACK_GREY = "#cccccc"
SELECTION_GREY = "#808080"
BACKGROUND_GREY = "#a4a2a2"
BACKGROUND_GROUP = "Background"

# Colors that mark a point as "not significant / not selected" for down-sampling
DEFAULT_POINT_COLORS = frozenset({FALLBACK_GREY, SELECTION_GREY, BACKGROUND_GREY})

DEFAULT_COMPARISON = "1"
DEFAULT_BACKGROUND_CAP = 2000
DEFAULT_TYPEAHEAD_LIMIT = 10
TYPEAHEAD_MIN_LENGTH = 2

# Axis bounds used when a pass has no valid points
EMPTY_AXIS = (-3.0, 3.0, 0.0, 5.0)
AXIS_PADDING = 1.0
