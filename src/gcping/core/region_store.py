import threading
from pathlib import Path

from gcping.core.exceptions import RegionSourceError
from gcping.core.utils import setup_logger
from gcping.db.repository import Repository
from gcping.providers.provider_base import CloudProvider
from gcping.providers.provider_types import ObservedState, Region, RegionSet, RegionStatus

logger = setup_logger(name="core.region_store")


def observed_status(region_id: str, observed: ObservedState) -> RegionStatus:
    instance = observed.instances.get(region_id)
    if instance is not None and instance.running and region_id in observed.addresses:
        return RegionStatus.INSTANCE_RUNNING
    if region_id in observed.addresses:
        return RegionStatus.ADDRESS_RESERVED
    return RegionStatus.ABSENT


class RegionStore:
    """
    Source of the desired region set and keeper of each region's address and
    deployment status.

    Provider calls retry with backoff on their own; when they give up an
    UnavailableError reaches the caller instead of an empty result.
    """

    def __init__(
        self,
        provider: CloudProvider,
        repository: Repository,
        source: str = "static",
        regions_file: str = "regions.txt",
    ):
        if source not in ("static", "live"):
            raise ValueError(f"Unknown region source: {source}")
        self.provider = provider
        self.repository = repository
        self.source = source
        self.regions_file = regions_file
        self._lock = threading.Lock()

    def load(self) -> RegionSet:
        """
        Read the desired set of regions.

        :raises RegionSourceError: If the source is missing or yields no regions
        :raises UnavailableError: If the live query cannot complete
        """
        if self.source == "static":
            regions = [self.provider.describe_region(r) for r in self._read_static()]
        else:
            regions = self.provider.list_regions()

        region_set = RegionSet(regions)
        if not region_set:
            raise RegionSourceError(f"No regions found in {self._source_label()}")

        logger.info(f"Loaded {len(region_set)} regions from {self._source_label()}")
        return region_set

    def _source_label(self) -> str:
        return self.regions_file if self.source == "static" else "provider region list"

    def _read_static(self) -> list[str]:
        path = Path(self.regions_file)
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise RegionSourceError(f"Cannot read region file {path}: {e}") from e

        region_ids = []
        for line in lines:
            line = line.split("#", 1)[0].strip()
            if line:
                region_ids.append(line)
        return region_ids

    def save(self, region_set: RegionSet, path: str | None = None) -> Path:
        """Write the region ids in the static file format."""
        target = Path(path or self.regions_file)
        target.write_text("".join(f"{r}\n" for r in region_set.ids()), encoding="utf-8")
        logger.info(f"Wrote {len(region_set)} regions to {target}")
        return target

    def addresses(self) -> dict[str, str]:
        """Reserved static addresses, keyed by region id."""
        return {r: a.ip for r, a in self.provider.list_addresses().items()}

    def observe(self) -> ObservedState:
        return ObservedState(
            addresses=self.provider.list_addresses(),
            instances=self.provider.list_instances(),
        )

    # ----------------- Bookkeeping ----------------- #

    def record(
        self,
        region_id: str,
        status: RegionStatus,
        address: str | None = None,
        error: str | None = None,
    ) -> None:
        """Persist a region's status. Safe to call from region workers."""
        zone = self.provider.describe_region(region_id).zone
        with self._lock:
            self.repository.upsert_region(
                region_id=region_id,
                zone=zone,
                status=status.value,
                address=address,
                last_error=error,
            )
            if status in (RegionStatus.DELETED, RegionStatus.ABSENT) and address is None:
                self.repository.clear_address(region_id)
        logger.debug(f"Recorded {region_id} as {status.value}")

    def sync(self, region_set: RegionSet, observed: ObservedState) -> None:
        """
        Record the observed status of every desired or observed region.

        Stored regions that are neither desired nor observed any more are
        marked deleted, so they drop out of running_regions().
        """
        known = list(region_set.ids()) + sorted(observed.regions() - set(region_set.ids()))
        for region_id in known:
            address = observed.addresses.get(region_id)
            self.record(
                region_id,
                observed_status(region_id, observed),
                address=address.ip if address else None,
            )

        for record in self.repository.list_regions():
            if record.region_id in known or record.status == RegionStatus.DELETED.value:
                continue
            logger.info(f"{record.region_id} is gone from the provider, marking it deleted")
            self.record(record.region_id, RegionStatus.DELETED)

    def status_of(self, region_id: str) -> RegionStatus | None:
        """Last recorded status of a region, None when it was never recorded."""
        try:
            return RegionStatus(self.repository.get_region(region_id).status)
        except ValueError:
            return None

    def running_regions(self) -> RegionSet:
        """Persisted regions with a running instance, sorted by id."""
        regions = []
        for record in self.repository.list_regions(status=RegionStatus.INSTANCE_RUNNING.value):
            region = self.provider.describe_region(record.region_id)
            region.address = record.address
            region.status = RegionStatus.INSTANCE_RUNNING
            regions.append(region)
        return RegionSet(regions)
