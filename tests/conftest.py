import os
import tempfile
import threading
import time

import pytest

from gcping.core.exceptions import ConflictError, ProvisioningError
from gcping.core.region_store import RegionStore
from gcping.db.db import Database
from gcping.db.models import RegionRecord, Setting
from gcping.db.repository import Repository
from gcping.providers.provider_base import CloudProvider
from gcping.providers.provider_types import Address, Instance, Region


class FakeProvider(CloudProvider):
    """In-memory provisioning collaborator that enforces the provider's rules"""

    def __init__(self, available_regions=(), delay: float = 0.0):
        super().__init__("fake-token")
        self.available_regions = list(available_regions)
        self.addresses: dict[str, Address] = {}
        self.instances: dict[str, Instance] = {}
        self.failures: dict[tuple[str, str], Exception] = {}
        self.gates: dict[tuple[str, str], threading.Event] = {}
        self.calls: list[tuple[str, str]] = []
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()
        self._next_ip = 1

    def requires_api_key(self) -> bool:
        return False

    def describe_region(self, region_id: str) -> Region:
        return Region(id=region_id, city=region_id.split("-")[0].title(), country="Testland")

    def list_regions(self) -> list[Region]:
        return [self.describe_region(r) for r in self.available_regions]

    def list_addresses(self) -> dict[str, Address]:
        return dict(self.addresses)

    def list_instances(self) -> dict[str, Instance]:
        return dict(self.instances)

    def get_address(self, region_id: str) -> Address:
        if region_id not in self.addresses:
            raise ProvisioningError(f"No address for {region_id}", region_id)
        return self.addresses[region_id]

    def reserve_address(self, region_id: str) -> Address:
        self._call("reserve_address", region_id)
        with self._lock:
            if region_id in self.addresses:
                raise ConflictError(f"Address {region_id} exists", region_id)
            address = Address(region=region_id, name=region_id, ip=f"10.0.0.{self._next_ip}")
            self._next_ip += 1
            self.addresses[region_id] = address
            return address

    def release_address(self, region_id: str) -> None:
        self._call("release_address", region_id)
        with self._lock:
            if region_id in self.instances:
                raise ProvisioningError(f"Address of {region_id} is in use", region_id)
            if self.addresses.pop(region_id, None) is None:
                raise ConflictError(f"Address {region_id} not found", region_id)

    def create_instance(self, region_id: str, address: str) -> Instance:
        self._call("create_instance", region_id)
        with self._lock:
            reserved = self.addresses.get(region_id)
            if reserved is None or reserved.ip != address:
                raise ProvisioningError(f"Address {address} is not reserved for {region_id}", region_id)
            if region_id in self.instances:
                raise ConflictError(f"Instance {region_id} exists", region_id)
            instance = Instance(region_id, region_id, f"{region_id}-b", "RUNNING", address)
            self.instances[region_id] = instance
            return instance

    def delete_instance(self, region_id: str) -> None:
        self._call("delete_instance", region_id)
        with self._lock:
            if self.instances.pop(region_id, None) is None:
                raise ConflictError(f"Instance {region_id} not found", region_id)

    def _call(self, name: str, region_id: str) -> None:
        with self._lock:
            self.calls.append((name, region_id))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            gate = self.gates.get((name, region_id))
            if gate is not None:
                gate.wait(timeout=5)
            if self.delay:
                time.sleep(self.delay)
            failure = self.failures.get((name, region_id))
            if failure is not None:
                raise failure
        finally:
            with self._lock:
                self.active -= 1

    # Test helpers

    def converge(self, *region_ids: str) -> None:
        """Give each region a reserved address and a running instance bound to it"""
        for region_id in region_ids:
            address = Address(region=region_id, name=region_id, ip=f"10.1.0.{self._next_ip}")
            self._next_ip += 1
            self.addresses[region_id] = address
            self.instances[region_id] = Instance(
                region_id, region_id, f"{region_id}-b", "RUNNING", address.ip
            )


@pytest.fixture(scope='function')
def test_db_path():
    """Create a temporary database file for testing."""
    fd, path = tempfile.mkstemp(suffix='.db')
    os.close(fd)  # Peewee manages the connection
    try:
        yield path
    finally:
        for suffix in ("", "-wal", "-shm"):
            if os.path.exists(path + suffix):
                os.remove(path + suffix)


@pytest.fixture(scope='function')
def db_instance(test_db_path):
    """Initialize the Database instance with the test database."""
    db = Database()
    db.init_db(db_url=f'sqlite:///{test_db_path}')
    yield db
    db.close()


@pytest.fixture(scope='function')
def repository(db_instance):
    """Provide a Repository instance on freshly created tables."""
    db_instance.db.drop_tables([RegionRecord, Setting])
    db_instance.db.create_tables([RegionRecord, Setting])
    return Repository()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def store(provider, repository, tmp_path):
    return RegionStore(provider, repository, source="static", regions_file=str(tmp_path / "regions.txt"))
