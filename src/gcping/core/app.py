import threading
from collections.abc import Iterable

from gcping.core.config_emitter import ConfigArtifact, emit, ping_url
from gcping.core.health import wait_for_pong
from gcping.core.reconciler import ReconcileReport, Reconciler
from gcping.core.region_store import RegionStore
from gcping.core.settings import Settings
from gcping.db.db import db_instance
from gcping.db.repository import Repository
from gcping.providers.gcs_publisher import GCSPublisher
from gcping.providers.provider_base import CloudProvider
from gcping.providers.provider_factory import CloudProviderFactory
from gcping.providers.provider_types import DeploymentPlan, RegionSet

from .utils import setup_logger

logger = setup_logger(name="core.app")


class App:
    """
    Application layer that wires the region store, reconciler, config
    emitter and publisher together from one validated Settings object.
    """

    LAST_DIGEST_KEY = "last_published_digest"

    def __init__(
        self,
        settings: Settings,
        provider: CloudProvider | None = None,
        publisher: GCSPublisher | None = None,
    ):
        db_instance.init_db(db_url=settings.DATABASE_URL)

        self.settings = settings
        self.data_layer = Repository()

        self.provider = provider or CloudProviderFactory.get_provider(
            "gcp",
            settings.GCP_ACCESS_TOKEN,
            project=settings.GCP_PROJECT,
            container_image=settings.CONTAINER_IMAGE,
            machine_type=settings.MACHINE_TYPE,
            network=settings.NETWORK,
            subnet=settings.SUBNET,
            zone_suffix=settings.ZONE_SUFFIX,
            retry_attempts=settings.RETRY_ATTEMPTS,
            retry_max_wait=settings.RETRY_MAX_WAIT,
        )
        if self.provider is None:
            raise ValueError("No provider available; check GCP_ACCESS_TOKEN and GCP_PROJECT")

        self.store = RegionStore(
            provider=self.provider,
            repository=self.data_layer,
            source=settings.REGION_SOURCE,
            regions_file=settings.REGIONS_FILE,
        )
        self.reconciler = Reconciler(
            provider=self.provider,
            store=self.store,
            concurrency=settings.CONCURRENCY,
            soft_deadline=settings.SOFT_DEADLINE,
        )
        self._publisher = publisher

    @property
    def publisher(self) -> GCSPublisher:
        if self._publisher is None:
            self._publisher = GCSPublisher(
                bucket=self.settings.BUCKET,
                api_key=self.settings.GCP_ACCESS_TOKEN,
                retry_attempts=self.settings.RETRY_ATTEMPTS,
                retry_max_wait=self.settings.RETRY_MAX_WAIT,
            )
        return self._publisher

    # ----------------- Regions ----------------- #

    def load_regions(self) -> RegionSet:
        return self.store.load()

    # ----------------- Reconciliation ----------------- #

    def plan(self, replace: Iterable[str] = ()) -> DeploymentPlan:
        return self.reconciler.plan(self.store.load(), replace)

    def reconcile(
        self,
        replace: Iterable[str] = (),
        cancel_event: threading.Event | None = None,
    ) -> ReconcileReport:
        """
        Converge infrastructure to the desired regions and rewrite the config.

        The config is written even when some regions failed; failed regions
        are simply not part of it.
        """
        region_set = self.store.load()
        report = self.reconciler.reconcile(region_set, replace, cancel_event)
        self.emit_config()
        return report

    # ----------------- Config ----------------- #

    def render_config(self) -> ConfigArtifact:
        return emit(self.store.running_regions())

    def emit_config(self) -> ConfigArtifact:
        artifact = self.render_config()
        artifact.write(self.settings.CONFIG_DIR)
        return artifact

    def publish(self, force: bool = False) -> bool:
        """
        Upload the current config and static assets.

        Returns:
            False when the config did not change since the last publish
        """
        artifact = self.render_config()
        try:
            last_digest = self.data_layer.get_setting(self.LAST_DIGEST_KEY)
        except ValueError:
            last_digest = None

        if artifact.digest == last_digest and not force:
            logger.info("Config unchanged since last publish, skipping upload")
            return False

        self.publisher.publish(artifact.documents, self.settings.ASSETS_DIR)
        self.data_layer.set_setting(self.LAST_DIGEST_KEY, artifact.digest)
        return True

    def probe(self, timeout: float = 60.0) -> dict[str, bool]:
        """Check that every running region answers pong"""
        results = {}
        for region in self.store.running_regions():
            results[region.id] = wait_for_pong(ping_url(region.address), timeout=timeout)
        return results
