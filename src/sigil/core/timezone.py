"""UTC timezone enforcement.

This module sets the TZ environment variable to UTC to ensure
consistent datetime behavior across all environments, and provides the
naive-UTC clock used for every stored timestamp.
"""

import os
from datetime import UTC, datetime

# Set UTC timezone for the entire application
os.environ["TZ"] = "UTC"


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Timestamp columns are stored without tzinfo, so comparisons in queries
    (sweep cutoffs, heartbeat staleness) must use naive UTC values as well.
    """
    return datetime.now(UTC).replace(tzinfo=None)
