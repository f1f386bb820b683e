import copy

import pytest

from database import LocalFileRecordStore, MemoryRecordStore
from repositories import Repositories


class FakeKV:
    """In-process stand-in for the hosted key-value client."""

    def __init__(self):
        self.data = {}
        self.fail_get = False
        self.fail_set = False
        self.gate = None
        self.set_calls = 0

    def get(self, key):
        if self.fail_get:
            raise ConnectionError("kv unreachable")
        return copy.deepcopy(self.data.get(key))

    def set(self, key, value):
        if self.gate is not None:
            self.gate.wait(5)
        self.set_calls += 1
        if self.fail_set:
            raise ConnectionError("kv unreachable")
        self.data[key] = copy.deepcopy(value)
        return True


@pytest.fixture
def kv():
    return FakeKV()


@pytest.fixture
def memory_store():
    return MemoryRecordStore()


@pytest.fixture
def file_store(tmp_path):
    return LocalFileRecordStore(tmp_path / "data")


@pytest.fixture
def repos(memory_store):
    return Repositories(memory_store)
