import json

import pytest
import requests
import yaml

from gcping.core.exceptions import (
    ConflictError,
    ProvisioningError,
    QuotaError,
    UnavailableError,
)
from gcping.providers.gcp_provider import GCPProvider
from gcping.providers.provider_factory import CloudProviderFactory

PROJECT_URL = "https://compute.googleapis.com/compute/v1/projects/gcping-test"


def make_response(status=200, body=None, url="https://compute.googleapis.com/test"):
    response = requests.Response()
    response.status_code = status
    response._content = json.dumps(body).encode() if body is not None else b""
    response.url = url
    return response


def error_response(status, reason, message="error"):
    return make_response(status, {"error": {"message": message, "errors": [{"reason": reason}]}})


def done_operation(name="op-1", error=None):
    op = {"name": name, "status": "DONE", "selfLink": f"{PROJECT_URL}/operations/{name}"}
    if error:
        op["error"] = {"errors": [{"code": error, "message": f"{error} happened"}]}
    return op


@pytest.fixture
def session(mocker):
    return mocker.Mock(spec=requests.Session)


@pytest.fixture
def provider(session):
    return GCPProvider(
        api_key="token",
        project="gcping-test",
        container_image="gcr.io/gcping-test/ping:latest",
        retry_attempts=2,
        retry_max_wait=0,
        session=session,
    )


class TestGCPProviderSetup:
    def test_requires_token(self):
        with pytest.raises(ValueError):
            GCPProvider(api_key=None, project="gcping-test")

    def test_requires_project(self):
        with pytest.raises(ValueError):
            GCPProvider(api_key="token", project=None)

    def test_describe_region(self, provider):
        region = provider.describe_region("us-central1")

        assert region.city == "Iowa"
        assert region.country == "United States"
        assert region.zone == "us-central1-b"
        assert region.display_name == "Iowa, United States"

    def test_describe_unknown_region(self, provider):
        region = provider.describe_region("moon-base1")

        assert region.country == "Unknown"
        assert region.display_name == "moon-base1"

    def test_factory_caches_provider(self):
        CloudProviderFactory.clear_cache()
        try:
            first = CloudProviderFactory.get_provider("gcp", "token", project="gcping-test")
            second = CloudProviderFactory.get_provider("GCP")
            assert first is second
            assert CloudProviderFactory.get_provider("vultr") is None
        finally:
            CloudProviderFactory.clear_cache()

    def test_factory_without_token(self):
        CloudProviderFactory.clear_cache()
        assert CloudProviderFactory.get_provider("gcp", None, project="gcping-test") is None


class TestGCPProviderQueries:
    def test_list_regions_skips_regions_that_are_down(self, provider, session):
        session.request.return_value = make_response(body={
            "items": [
                {"name": "us-central1", "status": "UP"},
                {"name": "europe-west1", "status": "DOWN"},
            ]
        })

        regions = provider.list_regions()

        assert [r.id for r in regions] == ["us-central1"]
        method, url = session.request.call_args.args[:2]
        assert (method, url) == ("GET", f"{PROJECT_URL}/regions")
        assert session.request.call_args.kwargs["headers"]["Authorization"] == "Bearer token"

    def test_list_regions_follows_pages(self, provider, session):
        session.request.side_effect = [
            make_response(body={"items": [{"name": "us-east1", "status": "UP"}], "nextPageToken": "p2"}),
            make_response(body={"items": [{"name": "us-west1", "status": "UP"}]}),
        ]

        assert [r.id for r in provider.list_regions()] == ["us-east1", "us-west1"]
        assert session.request.call_args.kwargs["params"] == {"pageToken": "p2"}

    def test_list_addresses(self, provider, session):
        session.request.return_value = make_response(body={
            "items": {
                "global": {"addresses": [{"name": "global", "address": "203.0.113.1"}]},
                "regions/us-east1": {"addresses": [
                    {"name": "us-east1", "address": "203.0.113.2"},
                    {"name": "something-else", "address": "203.0.113.3"},
                ]},
                "regions/asia-east1": {"warning": {"code": "NO_RESULTS_ON_PAGE"}},
            }
        })

        addresses = provider.list_addresses()

        assert list(addresses) == ["us-east1"]
        assert addresses["us-east1"].ip == "203.0.113.2"

    def test_list_instances(self, provider, session):
        session.request.return_value = make_response(body={
            "items": {
                "zones/us-east1-b": {"instances": [{
                    "name": "us-east1",
                    "status": "RUNNING",
                    "zone": f"{PROJECT_URL}/zones/us-east1-b",
                    "networkInterfaces": [{"accessConfigs": [{"natIP": "203.0.113.2"}]}],
                }]},
                "zones/europe-west1-b": {"instances": [{"name": "unrelated-vm", "status": "RUNNING"}]},
            }
        })

        instances = provider.list_instances()

        assert list(instances) == ["us-east1"]
        instance = instances["us-east1"]
        assert instance.running
        assert instance.zone == "us-east1-b"
        assert instance.nat_ip == "203.0.113.2"


class TestGCPProviderMutations:
    def test_reserve_address_waits_for_operation(self, provider, session):
        session.request.side_effect = [
            make_response(body={"name": "op-1", "status": "RUNNING", "selfLink": f"{PROJECT_URL}/operations/op-1"}),
            make_response(body=done_operation()),
            make_response(body={"name": "us-east1", "address": "203.0.113.9"}),
        ]

        address = provider.reserve_address("us-east1")

        assert address.ip == "203.0.113.9"
        calls = [c.args[:2] for c in session.request.call_args_list]
        assert calls == [
            ("POST", f"{PROJECT_URL}/regions/us-east1/addresses"),
            ("POST", f"{PROJECT_URL}/operations/op-1/wait"),
            ("GET", f"{PROJECT_URL}/regions/us-east1/addresses/us-east1"),
        ]

    def test_reserve_existing_address_conflicts(self, provider, session):
        session.request.return_value = error_response(409, "alreadyExists")

        with pytest.raises(ConflictError) as exc_info:
            provider.reserve_address("us-east1")
        assert exc_info.value.region == "us-east1"

    def test_delete_missing_instance_conflicts(self, provider, session):
        session.request.return_value = error_response(404, "notFound")

        with pytest.raises(ConflictError):
            provider.delete_instance("us-east1")

    def test_quota_exceeded(self, provider, session):
        session.request.return_value = error_response(403, "quotaExceeded")

        with pytest.raises(QuotaError):
            provider.create_instance("us-east1", "203.0.113.2")
        assert session.request.call_count == 1

    def test_operation_quota_error(self, provider, session):
        session.request.return_value = make_response(body=done_operation(error="QUOTA_EXCEEDED"))

        with pytest.raises(QuotaError):
            provider.create_instance("us-east1", "203.0.113.2")

    def test_operation_already_exists(self, provider, session):
        session.request.return_value = make_response(body=done_operation(error="ALREADY_EXISTS"))

        with pytest.raises(ConflictError):
            provider.reserve_address("us-east1")

    def test_server_errors_are_retried(self, provider, session):
        session.request.side_effect = [
            make_response(503, {"error": {"message": "backend error"}}),
            make_response(body=done_operation()),
        ]

        provider.release_address("us-east1")

        assert session.request.call_count == 2

    def test_unreachable_api_raises_unavailable(self, provider, session):
        session.request.side_effect = requests.ConnectionError("connection refused")

        with pytest.raises(UnavailableError):
            provider.list_addresses()
        assert session.request.call_count == 2

    def test_other_client_errors(self, provider, session):
        session.request.return_value = error_response(400, "invalid", "bad machine type")

        with pytest.raises(ProvisioningError) as exc_info:
            provider.delete_instance("us-east1")
        assert not isinstance(exc_info.value, (ConflictError, QuotaError, UnavailableError))
        assert "bad machine type" in str(exc_info.value)

    def test_create_instance_body(self, provider, session):
        session.request.side_effect = [
            make_response(body=done_operation()),
            make_response(body={
                "name": "us-east1",
                "status": "RUNNING",
                "zone": f"{PROJECT_URL}/zones/us-east1-b",
                "networkInterfaces": [{"accessConfigs": [{"natIP": "203.0.113.2"}]}],
            }),
        ]

        instance = provider.create_instance("us-east1", "203.0.113.2")

        assert instance.nat_ip == "203.0.113.2"
        method, url = session.request.call_args_list[0].args[:2]
        assert (method, url) == ("POST", f"{PROJECT_URL}/zones/us-east1-b/instances")
        body = session.request.call_args_list[0].kwargs["json"]
        assert body["name"] == "us-east1"
        assert body["machineType"] == "zones/us-east1-b/machineTypes/f1-micro"
        assert body["tags"] == {"items": ["http-server"]}
        assert body["networkInterfaces"][0]["accessConfigs"][0]["natIP"] == "203.0.113.2"
        assert body["networkInterfaces"][0]["subnetwork"] == "regions/us-east1/subnetworks/subnet"

        declaration = yaml.safe_load(body["metadata"]["items"][0]["value"])
        container = declaration["spec"]["containers"][0]
        assert container["image"] == "gcr.io/gcping-test/ping:latest"
        assert container["env"] == [{"name": "REGION", "value": "us-east1"}]

    def test_create_instance_requires_image(self, session):
        provider = GCPProvider(api_key="token", project="gcping-test", session=session)

        with pytest.raises(ValueError):
            provider.create_instance("us-east1", "203.0.113.2")
        session.request.assert_not_called()
