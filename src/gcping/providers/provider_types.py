from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum

from gcping.core.utils import setup_logger

logger = setup_logger(name="providers.provider_types")

DEFAULT_ZONE_SUFFIX = "-b"


class RegionStatus(str, Enum):
    ABSENT = "absent"
    ADDRESS_RESERVED = "address_reserved"
    INSTANCE_RUNNING = "instance_running"
    DELETED = "deleted"


@dataclass
class Region:
    id: str
    city: str | None = None
    country: str = "Unknown"
    country_code: str | None = None
    provider: str = "gcp"
    address: str | None = None
    status: RegionStatus = RegionStatus.ABSENT
    zone_suffix: str = DEFAULT_ZONE_SUFFIX

    @property
    def zone(self) -> str:
        # b-zones exist in every region so far
        return f"{self.id}{self.zone_suffix}"

    @property
    def display_name(self) -> str:
        if self.city and self.country != "Unknown":
            return f"{self.city}, {self.country}"
        if self.city:
            return self.city
        if self.country != "Unknown":
            return self.country
        return self.id


class RegionSet:
    """Ordered collection of regions, unique by id."""

    def __init__(self, regions: Iterable[Region] = ()):
        self._regions: dict[str, Region] = {}
        for region in regions:
            if region.id in self._regions:
                logger.warning(f"Ignoring duplicate region '{region.id}'")
                continue
            self._regions[region.id] = region

    def __iter__(self) -> Iterator[Region]:
        return iter(self._regions.values())

    def __len__(self) -> int:
        return len(self._regions)

    def __contains__(self, region_id: object) -> bool:
        return region_id in self._regions

    def __repr__(self) -> str:
        return f"RegionSet({self.ids()!r})"

    def get(self, region_id: str) -> Region | None:
        return self._regions.get(region_id)

    def ids(self) -> list[str]:
        return list(self._regions)


@dataclass(frozen=True)
class Address:
    region: str
    name: str
    ip: str


@dataclass(frozen=True)
class Instance:
    region: str
    name: str
    zone: str
    status: str
    nat_ip: str | None = None

    @property
    def running(self) -> bool:
        return self.status == "RUNNING"


@dataclass
class ObservedState:
    """Provider-side view of static addresses and instances, keyed by region."""

    addresses: dict[str, Address] = field(default_factory=dict)
    instances: dict[str, Instance] = field(default_factory=dict)

    def regions(self) -> set[str]:
        return set(self.addresses) | set(self.instances)


class OperationKind(str, Enum):
    RESERVE_ADDRESS = "reserve_address"
    RELEASE_ADDRESS = "release_address"
    CREATE_INSTANCE = "create_instance"
    DELETE_INSTANCE = "delete_instance"


@dataclass(frozen=True)
class Operation:
    kind: OperationKind
    region: str
    address: str | None = None

    def __str__(self) -> str:
        if self.address:
            return f"{self.kind.value}({self.region}, {self.address})"
        return f"{self.kind.value}({self.region})"


@dataclass
class DeploymentPlan:
    operations: list[Operation] = field(default_factory=list)

    def __iter__(self) -> Iterator[Operation]:
        return iter(self.operations)

    def __len__(self) -> int:
        return len(self.operations)

    @property
    def is_empty(self) -> bool:
        return not self.operations

    def regions(self) -> list[str]:
        """Regions touched by the plan, in plan order"""
        return list(dict.fromkeys(op.region for op in self.operations))

    def by_region(self) -> dict[str, list[Operation]]:
        grouped: dict[str, list[Operation]] = {}
        for op in self.operations:
            grouped.setdefault(op.region, []).append(op)
        return grouped
