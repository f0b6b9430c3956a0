from datetime import datetime

import pytest


@pytest.fixture
def fixed_now() -> datetime:
    # Monday morning, ten minutes after a 09:00 class start.
    return datetime(2026, 3, 2, 9, 10, 0)
