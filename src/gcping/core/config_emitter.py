import hashlib
import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from gcping.core.utils import setup_logger
from gcping.providers.provider_types import Region, RegionStatus

logger = setup_logger(name="core.config_emitter")

CONFIG_JSON = "config.json"
CONFIG_JS = "config.js"
DESCS_JS = "descs.js"


@dataclass(frozen=True)
class ConfigArtifact:
    """Client-facing documents, keyed by file name"""

    documents: dict[str, bytes] = field(default_factory=dict)

    @property
    def digest(self) -> str:
        h = hashlib.sha256()
        for name in sorted(self.documents):
            h.update(name.encode("utf-8"))
            h.update(b"\0")
            h.update(self.documents[name])
        return h.hexdigest()

    def write(self, directory: str | Path) -> list[Path]:
        target = Path(directory)
        target.mkdir(parents=True, exist_ok=True)
        written = []
        for name in sorted(self.documents):
            path = target / name
            path.write_bytes(self.documents[name])
            written.append(path)
        logger.info(f"Wrote {len(written)} config documents to {target}")
        return written


def ping_url(address: str) -> str:
    return f"http://{address}/ping"


def _dump(value) -> str:
    return json.dumps(value, indent=2, sort_keys=True, ensure_ascii=False)


def emit(regions: Iterable[Region]) -> ConfigArtifact:
    """
    Render the reachable regions into the config documents the static page loads.

    Regions without a running instance or without an address are left out.
    Output is sorted by region id, so equal input gives byte-identical output.
    """
    reachable = sorted(
        (r for r in regions if r.status == RegionStatus.INSTANCE_RUNNING and r.address),
        key=lambda r: r.id,
    )

    entries = {
        r.id: {
            "address": r.address,
            "displayName": r.display_name,
            "url": ping_url(r.address),
        }
        for r in reachable
    }
    urls = {region_id: entry["url"] for region_id, entry in entries.items()}
    descs = {region_id: entry["displayName"] for region_id, entry in entries.items()}

    documents = {
        CONFIG_JSON: (_dump({"regions": entries}) + "\n").encode("utf-8"),
        CONFIG_JS: f"var _URLS = {_dump(urls)};\n".encode("utf-8"),
        DESCS_JS: f"var _REGION_DESCS = {_dump(descs)};\n".encode("utf-8"),
    }
    logger.debug(f"Emitted config for {len(entries)} regions")
    return ConfigArtifact(documents)
