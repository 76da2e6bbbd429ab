from __future__ import annotations

from datetime import datetime, timezone

import pytest


@pytest.fixture
def datetime_now() -> datetime:
    return datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
