import json

from gcping.core.config_emitter import CONFIG_JS, CONFIG_JSON, DESCS_JS, emit
from gcping.providers.provider_types import Region, RegionStatus


def running(region_id, address, city=None, country="Unknown"):
    return Region(
        id=region_id,
        city=city,
        country=country,
        address=address,
        status=RegionStatus.INSTANCE_RUNNING,
    )


class TestEmit:
    def test_output_is_byte_identical_and_order_independent(self):
        regions = [
            running("us-central1", "10.0.0.1", "Iowa", "United States"),
            running("asia-east1", "10.0.0.2", "Changhua County", "Taiwan, Province of China"),
        ]

        first = emit(regions)
        second = emit(list(reversed(regions)))

        assert first.documents == second.documents
        assert first.digest == second.digest

    def test_regions_sorted_by_id(self):
        artifact = emit([running("us-east1", "10.0.0.1"), running("asia-east1", "10.0.0.2")])

        config = json.loads(artifact.documents[CONFIG_JSON])
        assert list(config["regions"]) == ["asia-east1", "us-east1"]

    def test_only_running_regions_are_exposed(self):
        reserved = Region(id="europe-west1", address="10.0.0.3", status=RegionStatus.ADDRESS_RESERVED)
        no_address = Region(id="us-west1", status=RegionStatus.INSTANCE_RUNNING)

        artifact = emit([running("us-east1", "10.0.0.1"), reserved, no_address])

        config = json.loads(artifact.documents[CONFIG_JSON])
        assert list(config["regions"]) == ["us-east1"]
        for name in (CONFIG_JS, DESCS_JS):
            assert b"europe-west1" not in artifact.documents[name]

    def test_entry_fields(self):
        artifact = emit([running("us-central1", "10.0.0.1", "Iowa", "United States")])

        config = json.loads(artifact.documents[CONFIG_JSON])
        assert config["regions"]["us-central1"] == {
            "address": "10.0.0.1",
            "displayName": "Iowa, United States",
            "url": "http://10.0.0.1/ping",
        }
        assert b'"us-central1": "http://10.0.0.1/ping"' in artifact.documents[CONFIG_JS]
        assert b'"us-central1": "Iowa, United States"' in artifact.documents[DESCS_JS]

    def test_empty_region_set_is_valid(self):
        artifact = emit([])

        assert json.loads(artifact.documents[CONFIG_JSON]) == {"regions": {}}
        assert artifact.documents[CONFIG_JS] == b"var _URLS = {};\n"
        assert artifact.documents[DESCS_JS] == b"var _REGION_DESCS = {};\n"

    def test_write(self, tmp_path):
        artifact = emit([running("us-east1", "10.0.0.1")])

        written = artifact.write(tmp_path / "site")

        assert sorted(p.name for p in written) == [CONFIG_JS, CONFIG_JSON, DESCS_JS]
        assert (tmp_path / "site" / CONFIG_JSON).read_bytes() == artifact.documents[CONFIG_JSON]

    def test_digest_changes_with_content(self):
        assert emit([running("us-east1", "10.0.0.1")]).digest != emit([running("us-east1", "10.0.0.2")]).digest
