import pytest

from .fakes import FakeApexSource, FakePointStore, daily_records, make_settings


@pytest.fixture
def source() -> FakeApexSource:
    return FakeApexSource(records=daily_records())


@pytest.fixture
def store() -> FakePointStore:
    return FakePointStore()


@pytest.fixture
def settings():
    return make_settings()
