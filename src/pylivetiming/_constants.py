"""Internal constants shared across the library."""

BASE_URL = "https://api.openf1.org/v1"
USER_AGENT = "pylivetiming"
LATEST = "latest"

# Body returned with HTTP 404 when a filtered query matches nothing.
NO_RESULTS_DETAIL = "No results found."

# ------------------------------------------------------------------
# Default polling cadences (seconds)
# ------------------------------------------------------------------

DEFAULT_CADENCES: dict[str, float] = {
    "position": 4.0,
    "intervals": 4.0,
    "laps": 5.0,
    "stints": 10.0,
    "pit": 5.0,
    "race_control": 5.0,
}
DEFAULT_CADENCE = 5.0
