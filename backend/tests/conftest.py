import os
from datetime import datetime

import pytest

# Settings are validated at import time; the dev secret is only allowed in debug
os.environ.setdefault("DEBUG", "true")
os.environ.pop("ANTHROPIC_API_KEY", None)
os.environ.pop("OPENAI_API_KEY", None)

from fakes import FakeCatalog, FakeClients, FakeInventory, FakeSales  # noqa: E402

NOW = datetime(2024, 6, 30, 12, 0, 0)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def sales(catalog):
    return FakeSales(catalog=catalog)


@pytest.fixture
def clients():
    return FakeClients()


@pytest.fixture
def inventory():
    return FakeInventory()
