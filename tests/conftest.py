import pytest

from core.cache import MemoryCacheBackend, ReportStore, ResultCache
from fakes import FakeProvider


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def memory_backend():
    return MemoryCacheBackend()


@pytest.fixture
def result_cache(memory_backend):
    return ResultCache(memory_backend, ttl=0)


@pytest.fixture
def report_store(memory_backend):
    return ReportStore(memory_backend, ttl=0)
