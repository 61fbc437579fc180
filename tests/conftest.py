import os
import time
from pathlib import Path

import pytest

# Zone tests need the system tz database (both libc and zoneinfo read it)
needs_tzdata = pytest.mark.skipif(
    not Path("/usr/share/zoneinfo/Asia/Tokyo").exists() or not hasattr(time, "tzset"),
    reason="system tz database or time.tzset() unavailable",
)


@pytest.fixture
def local_zone():
    """Switch the process default zone (TZ + tzset) for one test, then restore it."""
    saved = os.environ.get("TZ")

    def switch(name: str) -> None:
        os.environ["TZ"] = name
        time.tzset()

    yield switch

    if saved is None:
        os.environ.pop("TZ", None)
    else:
        os.environ["TZ"] = saved
    if hasattr(time, "tzset"):
        time.tzset()
