from abc import ABC, abstractmethod

from gcping.providers.provider_types import Address, Instance, Region


class CloudProvider(ABC):
    """Abstract base class for the provisioning collaborator"""

    def __init__(self, api_key: str | None = None):
        self.api_key = api_key

    @abstractmethod
    def requires_api_key(self) -> bool:
        """Whether this provider requires an API key"""
        pass

    @abstractmethod
    def describe_region(self, region_id: str) -> Region:
        """Build a Region with location metadata, without calling the API"""
        pass

    @abstractmethod
    def list_regions(self) -> list[Region]:
        """Get all regions that are currently up"""
        pass

    @abstractmethod
    def list_addresses(self) -> dict[str, Address]:
        """Get reserved static addresses, keyed by region id"""
        pass

    @abstractmethod
    def get_address(self, region_id: str) -> Address:
        """Describe the static address reserved for a region"""
        pass

    @abstractmethod
    def reserve_address(self, region_id: str) -> Address:
        """
        Reserve the static address for a region.

        Raises:
            ConflictError: If the address is already reserved
        """
        pass

    @abstractmethod
    def release_address(self, region_id: str) -> None:
        """
        Release the static address of a region.

        Raises:
            ConflictError: If the address does not exist
        """
        pass

    @abstractmethod
    def list_instances(self) -> dict[str, Instance]:
        """Get ping server instances, keyed by region id"""
        pass

    @abstractmethod
    def create_instance(self, region_id: str, address: str) -> Instance:
        """
        Create the ping server instance of a region bound to its static address.

        Raises:
            ConflictError: If the instance already exists
            QuotaError: If the provider refuses the instance
        """
        pass

    @abstractmethod
    def delete_instance(self, region_id: str) -> None:
        """
        Delete the ping server instance of a region.

        Raises:
            ConflictError: If the instance does not exist
        """
        pass
