from datetime import date
from decimal import Decimal

import pytest

from wallet.catalog import CatalogService
from wallet.errors import StoreUnavailable
from wallet.models import CreateCourseRequest, RegisterCustomerRequest
from wallet.service import LedgerService
from wallet.store import InMemoryDocumentStore


class FixedClock:
    def __init__(self, day: date):
        self.day = day

    def __call__(self) -> date:
        return self.day


class FlakyStore(InMemoryDocumentStore):
    """Store that can be taken down.

    ``offline`` fails every call; ``reject_commits`` lets reads through and
    fails only batch commits.
    """

    def __init__(self):
        super().__init__()
        self.offline = False
        self.reject_commits = False

    def _check(self):
        if self.offline:
            raise StoreUnavailable("document store unreachable")

    def get(self, collection, key):
        self._check()
        return super().get(collection, key)

    def find(self, collection, field_name, value):
        self._check()
        return super().find(collection, field_name, value)

    def scan(self, collection):
        self._check()
        return super().scan(collection)

    def next_sequence(self, name):
        self._check()
        return super().next_sequence(name)

    def commit(self, writes):
        self._check()
        if self.reject_commits:
            raise StoreUnavailable("document store rejected the commit")
        return super().commit(writes)


@pytest.fixture
def store():
    return FlakyStore()


@pytest.fixture
def clock():
    return FixedClock(date(2024, 3, 1))


@pytest.fixture
def catalog(store):
    return CatalogService(store)


@pytest.fixture
def ledger(store, clock):
    return LedgerService(store, today=clock)


@pytest.fixture
def customer(catalog):
    return catalog.register_customer(RegisterCustomerRequest(name="Asha Student", email="asha@example.com"))


@pytest.fixture
def make_course(catalog):
    def _make(price="20.00", name="Morning Hatha Flow", category="Hatha"):
        return catalog.add_course(CreateCourseRequest(name=name, price=Decimal(price), category=category))
    return _make
