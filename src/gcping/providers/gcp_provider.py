from collections.abc import Iterator
from typing import Any

import pycountry
import requests
import yaml

from gcping.core.exceptions import (
    ConflictError,
    ProvisioningError,
    QuotaError,
    UnavailableError,
)
from gcping.core.retry import backoff, poll_until
from gcping.core.utils import setup_logger
from gcping.providers.gcp_locations import GCP_LOCATIONS
from gcping.providers.provider_base import CloudProvider
from gcping.providers.provider_types import (
    DEFAULT_ZONE_SUFFIX,
    Address,
    Instance,
    Region,
)

logger = setup_logger(name="providers.gcp_provider")

CONFLICT_CODES = {"ALREADY_EXISTS", "RESOURCE_ALREADY_EXISTS", "RESOURCE_NOT_FOUND"}
QUOTA_CODES = {"QUOTA_EXCEEDED", "quotaExceeded", "ZONE_RESOURCE_POOL_EXHAUSTED"}
RATE_LIMIT_REASONS = {"rateLimitExceeded", "userRateLimitExceeded"}


class GCPProvider(CloudProvider):
    """Compute Engine REST API client for ping server addresses and instances"""

    BASE_URL = "https://compute.googleapis.com/compute/v1"
    COS_IMAGE = "projects/cos-cloud/global/images/family/cos-stable"
    REQUEST_TIMEOUT = (10, 150)

    def __init__(
        self,
        api_key: str | None = None,
        project: str | None = None,
        container_image: str | None = None,
        machine_type: str = "f1-micro",
        network: str = "network",
        subnet: str = "subnet",
        zone_suffix: str = DEFAULT_ZONE_SUFFIX,
        retry_attempts: int = 5,
        retry_max_wait: float = 30.0,
        operation_timeout: float = 600.0,
        session: requests.Session | None = None,
    ):
        super().__init__(api_key)
        if not api_key:
            raise ValueError("GCP provider requires an access token")
        if not project:
            raise ValueError("GCP provider requires a project id")
        self.project = project
        self.container_image = container_image
        self.machine_type = machine_type
        self.network = network
        self.subnet = subnet
        self.zone_suffix = zone_suffix
        self.retry_attempts = retry_attempts
        self.retry_max_wait = retry_max_wait
        self.operation_timeout = operation_timeout
        self.session = session or requests.Session()

    def requires_api_key(self) -> bool:
        return True

    @property
    def project_url(self) -> str:
        return f"{self.BASE_URL}/projects/{self.project}"

    def get_headers(self):
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

    def _get_country_name(self, country_code: str | None) -> str:
        """Convert country code to full name"""
        if not country_code:
            return "Unknown"
        try:
            country = pycountry.countries.get(alpha_2=country_code)
            return country.name if country else "Unknown"
        except (KeyError, AttributeError):
            return "Unknown"

    def _zone(self, region_id: str) -> str:
        return f"{region_id}{self.zone_suffix}"

    # ----------------- Regions ----------------- #

    def describe_region(self, region_id: str) -> Region:
        city, country_code = GCP_LOCATIONS.get(region_id, (None, None))
        return Region(
            id=region_id,
            city=city,
            country=self._get_country_name(country_code),
            country_code=country_code,
            provider="gcp",
            zone_suffix=self.zone_suffix,
        )

    def list_regions(self) -> list[Region]:
        """
        Fetch all regions of the project that are up
        """
        regions = []
        for r in self._paginate("/regions"):
            if r.get("status") != "UP":
                logger.debug(f"Skipping region {r['name']} with status {r.get('status')}")
                continue
            regions.append(self.describe_region(r["name"]))
        return regions

    # ----------------- Addresses ----------------- #

    def list_addresses(self) -> dict[str, Address]:
        addresses = {}
        for scope, entry in self._paginate_aggregated("/aggregated/addresses"):
            if not scope.startswith("regions/"):
                continue
            region_id = scope.split("/", 1)[1]
            for a in entry.get("addresses", []):
                # One address per region, named after the region
                if a["name"] == region_id:
                    addresses[region_id] = Address(region=region_id, name=a["name"], ip=a["address"])
        return addresses

    def get_address(self, region_id: str) -> Address:
        a = self._request("GET", f"/regions/{region_id}/addresses/{region_id}", region_id)
        return Address(region=region_id, name=a["name"], ip=a["address"])

    def reserve_address(self, region_id: str) -> Address:
        operation = self._request(
            "POST",
            f"/regions/{region_id}/addresses",
            region_id,
            json={"name": region_id, "description": f"gcping static address for {region_id}"},
        )
        self._wait_for_operation(operation, region_id)
        address = self.get_address(region_id)
        logger.info(f"Reserved address {address.ip} for {region_id}")
        return address

    def release_address(self, region_id: str) -> None:
        operation = self._request("DELETE", f"/regions/{region_id}/addresses/{region_id}", region_id)
        self._wait_for_operation(operation, region_id)
        logger.info(f"Released address of {region_id}")

    # ----------------- Instances ----------------- #

    def list_instances(self) -> dict[str, Instance]:
        instances = {}
        for scope, entry in self._paginate_aggregated("/aggregated/instances"):
            if not scope.startswith("zones/"):
                continue
            zone = scope.split("/", 1)[1]
            region_id = zone.rsplit("-", 1)[0]
            for i in entry.get("instances", []):
                if i["name"] == region_id:
                    instances[region_id] = self._to_instance(region_id, i)
        return instances

    def create_instance(self, region_id: str, address: str) -> Instance:
        if not self.container_image:
            raise ValueError("A container image is required to create instances")

        zone = self._zone(region_id)
        operation = self._request(
            "POST",
            f"/zones/{zone}/instances",
            region_id,
            json=self._instance_body(region_id, zone, address),
        )
        self._wait_for_operation(operation, region_id)
        instance = self._request("GET", f"/zones/{zone}/instances/{region_id}", region_id)
        logger.info(f"Created instance {region_id} in {zone} with address {address}")
        return self._to_instance(region_id, instance)

    def delete_instance(self, region_id: str) -> None:
        zone = self._zone(region_id)
        operation = self._request("DELETE", f"/zones/{zone}/instances/{region_id}", region_id)
        self._wait_for_operation(operation, region_id)
        logger.info(f"Deleted instance {region_id} in {zone}")

    def _instance_body(self, region_id: str, zone: str, address: str) -> dict[str, Any]:
        container_declaration = yaml.safe_dump({
            "spec": {
                "containers": [{
                    "name": region_id,
                    "image": self.container_image,
                    "env": [{"name": "REGION", "value": region_id}],
                    "stdin": False,
                    "tty": False,
                }],
                "restartPolicy": "Always",
            }
        })
        return {
            "name": region_id,
            "machineType": f"zones/{zone}/machineTypes/{self.machine_type}",
            "tags": {"items": ["http-server"]},
            "labels": {"container-vm": "cos-stable"},
            "metadata": {
                "items": [{"key": "gce-container-declaration", "value": container_declaration}]
            },
            "networkInterfaces": [{
                "network": f"global/networks/{self.network}",
                "subnetwork": f"regions/{region_id}/subnetworks/{self.subnet}",
                "accessConfigs": [{
                    "type": "ONE_TO_ONE_NAT",
                    "name": "External NAT",
                    "natIP": address,
                }],
            }],
            "disks": [{
                "boot": True,
                "autoDelete": True,
                "deviceName": region_id,
                "initializeParams": {
                    "sourceImage": self.COS_IMAGE,
                    "diskSizeGb": "10",
                    "diskType": f"zones/{zone}/diskTypes/pd-standard",
                },
            }],
            "scheduling": {"onHostMaintenance": "MIGRATE", "automaticRestart": True},
        }

    @staticmethod
    def _to_instance(region_id: str, data: dict[str, Any]) -> Instance:
        nat_ip = None
        for interface in data.get("networkInterfaces", []):
            for access in interface.get("accessConfigs", []):
                nat_ip = nat_ip or access.get("natIP")
        return Instance(
            region=region_id,
            name=data["name"],
            zone=data.get("zone", "").rsplit("/", 1)[-1],
            status=data.get("status", "UNKNOWN"),
            nat_ip=nat_ip,
        )

    # ----------------- HTTP plumbing ----------------- #

    def _request(self, method: str, path: str, region_id: str | None = None, **kwargs) -> dict[str, Any]:
        """Send a request, retrying with backoff while the API is unavailable"""
        url = path if path.startswith("https://") else f"{self.project_url}{path}"
        retrying = backoff(attempts=self.retry_attempts, max_wait=self.retry_max_wait)
        return retrying(self._send, method, url, region_id, **kwargs)

    def _send(self, method: str, url: str, region_id: str | None, **kwargs) -> dict[str, Any]:
        try:
            response = self.session.request(
                method, url, headers=self.get_headers(), timeout=self.REQUEST_TIMEOUT, **kwargs
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise UnavailableError(f"{method} {url} failed: {e}", region_id) from e

        self._raise_for_status(response, method, region_id)
        return response.json() if response.content else {}

    @staticmethod
    def _raise_for_status(response: requests.Response, method: str, region_id: str | None) -> None:
        if response.ok:
            return

        reason, message = "", response.text
        try:
            error = response.json().get("error", {})
            message = error.get("message", message)
            reason = (error.get("errors") or [{}])[0].get("reason", "")
        except ValueError:
            pass

        status = response.status_code
        detail = f"{method} {response.url} returned {status}: {message}"
        if status == 409 or (status == 404 and method == "DELETE"):
            raise ConflictError(detail, region_id)
        if status == 429 or reason in RATE_LIMIT_REASONS or status >= 500:
            raise UnavailableError(detail, region_id)
        if reason in QUOTA_CODES:
            raise QuotaError(detail, region_id)
        raise ProvisioningError(detail, region_id)

    def _wait_for_operation(self, operation: dict[str, Any], region_id: str) -> dict[str, Any]:
        """Block until a long-running operation is done and raise its error, if any"""
        state = {"operation": operation}

        def done() -> bool:
            if state["operation"].get("status") == "DONE":
                return True
            state["operation"] = self._request(
                "POST", f"{state['operation']['selfLink']}/wait", region_id
            )
            return state["operation"].get("status") == "DONE"

        if not poll_until(done, timeout=self.operation_timeout, min_wait=0.5, max_wait=5.0):
            raise UnavailableError(
                f"Timed out waiting for operation {operation.get('name')}", region_id
            )

        errors = state["operation"].get("error", {}).get("errors", [])
        if errors:
            code = errors[0].get("code", "")
            detail = f"Operation {operation.get('name')} failed: {errors[0].get('message', code)}"
            if code in CONFLICT_CODES:
                raise ConflictError(detail, region_id)
            if code in QUOTA_CODES:
                raise QuotaError(detail, region_id)
            raise ProvisioningError(detail, region_id)
        return state["operation"]

    def _paginate(self, path: str) -> Iterator[dict[str, Any]]:
        params: dict[str, str] = {}
        while True:
            page = self._request("GET", path, params=params)
            yield from page.get("items", [])
            if not page.get("nextPageToken"):
                return
            params = {"pageToken": page["nextPageToken"]}

    def _paginate_aggregated(self, path: str) -> Iterator[tuple[str, dict[str, Any]]]:
        params: dict[str, str] = {}
        while True:
            page = self._request("GET", path, params=params)
            yield from page.get("items", {}).items()
            if not page.get("nextPageToken"):
                return
            params = {"pageToken": page["nextPageToken"]}
