class GcpingError(Exception):
    """Base exception for gcping."""

    pass


class RegionSourceError(GcpingError):
    """Raised when the desired set of regions cannot be read."""

    pass


class ProvisioningError(GcpingError):
    """Base exception for errors returned by the provisioning collaborator."""

    def __init__(self, message: str, region: str | None = None):
        super().__init__(message)
        self.region = region


class UnavailableError(ProvisioningError):
    """Raised when the provider cannot be reached. Retry with backoff."""

    pass


class ConflictError(ProvisioningError):
    """Raised when a resource already exists or is already gone."""

    pass


class QuotaError(ProvisioningError):
    """Raised when the provider rejects an operation for quota reasons."""

    pass


class PartialFailure(GcpingError):
    """Raised when a reconciliation run finished with failed regions."""

    def __init__(self, report):
        failed = ", ".join(r.region for r in report.failed)
        super().__init__(f"Reconciliation failed for regions: {failed}")
        self.report = report
