import pytest

from gcping.core.exceptions import RegionSourceError, UnavailableError
from gcping.core.region_store import RegionStore, observed_status
from gcping.providers.provider_types import Instance, ObservedState, Region, RegionSet, RegionStatus


class TestRegionStoreLoad:
    def test_static_file(self, store, tmp_path):
        (tmp_path / "regions.txt").write_text(
            "# serving regions\n"
            "us-central1\n"
            "\n"
            "europe-west1  # Belgium\n"
            "us-central1\n"
        )

        region_set = store.load()

        assert region_set.ids() == ["us-central1", "europe-west1"]
        assert region_set.get("europe-west1").zone == "europe-west1-b"

    def test_missing_static_file(self, store):
        with pytest.raises(RegionSourceError):
            store.load()

    def test_empty_static_file_is_not_an_empty_region_set(self, store, tmp_path):
        (tmp_path / "regions.txt").write_text("# nothing yet\n")

        with pytest.raises(RegionSourceError):
            store.load()

    def test_live_source(self, provider, repository):
        provider.available_regions = ["asia-east1", "us-east1"]
        store = RegionStore(provider, repository, source="live")

        assert store.load().ids() == ["asia-east1", "us-east1"]

    def test_live_source_unavailable(self, provider, repository, mocker):
        mocker.patch.object(provider, "list_regions", side_effect=UnavailableError("provider down"))
        store = RegionStore(provider, repository, source="live")

        with pytest.raises(UnavailableError):
            store.load()

    def test_unknown_source(self, provider, repository):
        with pytest.raises(ValueError):
            RegionStore(provider, repository, source="carrier-pigeon")

    def test_save_writes_static_format(self, store, tmp_path):
        (tmp_path / "regions.txt").write_text("us-west1\nasia-east1\n")
        region_set = store.load()

        target = store.save(region_set, str(tmp_path / "out.txt"))

        assert target.read_text() == "us-west1\nasia-east1\n"


class TestRegionStoreState:
    def test_addresses(self, store, provider):
        provider.converge("us-east1")

        assert store.addresses() == {"us-east1": provider.addresses["us-east1"].ip}

    def test_sync_and_running_regions(self, store, provider, repository, tmp_path):
        (tmp_path / "regions.txt").write_text("us-east1\neurope-west1\nasia-east1\n")
        provider.converge("us-east1")
        provider.reserve_address("europe-west1")

        region_set = store.load()
        store.sync(region_set, store.observe())

        assert repository.get_region("us-east1").status == RegionStatus.INSTANCE_RUNNING.value
        assert repository.get_region("europe-west1").status == RegionStatus.ADDRESS_RESERVED.value
        assert repository.get_region("asia-east1").status == RegionStatus.ABSENT.value

        running = store.running_regions()
        assert running.ids() == ["us-east1"]
        region = running.get("us-east1")
        assert region.address == provider.addresses["us-east1"].ip
        assert region.status == RegionStatus.INSTANCE_RUNNING

    def test_sync_marks_vanished_regions_deleted(self, store, provider, repository):
        store.record("asia-east1", RegionStatus.INSTANCE_RUNNING, address="10.0.0.9")
        store.record("europe-west1", RegionStatus.ABSENT)
        provider.converge("us-central1")

        store.sync(RegionSet([Region(id="us-central1")]), store.observe())

        record = repository.get_region("asia-east1")
        assert record.status == RegionStatus.DELETED.value
        assert record.address is None
        assert repository.get_region("europe-west1").status == RegionStatus.DELETED.value
        assert store.running_regions().ids() == ["us-central1"]

    def test_status_of(self, store):
        assert store.status_of("us-east1") is None

        store.record("us-east1", RegionStatus.ADDRESS_RESERVED, address="10.0.0.1")

        assert store.status_of("us-east1") == RegionStatus.ADDRESS_RESERVED

    def test_record_deleted_clears_address(self, store, repository):
        store.record("asia-east1", RegionStatus.ADDRESS_RESERVED, address="10.0.0.3")
        store.record("asia-east1", RegionStatus.DELETED)

        record = repository.get_region("asia-east1")
        assert record.status == RegionStatus.DELETED.value
        assert record.address is None


class TestObservedStatus:
    def test_running_instance_without_address_is_not_running(self):
        state = ObservedState(
            instances={"us-east1": Instance("us-east1", "us-east1", "us-east1-b", "RUNNING", "192.0.2.1")}
        )

        assert observed_status("us-east1", state) == RegionStatus.ABSENT
