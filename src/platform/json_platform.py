# src/platform/json_platform.py — v1
"""Platform backed by a JSON state file, for CLI use without a cluster.

File format::

    {"resources": [<Resource>...], "metrics": {"<workload>": 55.0}}

State is loaded before and saved after every call.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from shipyard.core.models import MetricSample, Resource, ResourceKey, ResourceSelector, ResourceTree
from shipyard.platform.memory_platform import MemoryPlatform

logger = logging.getLogger(__name__)


class JsonFilePlatform(MemoryPlatform):
    """MemoryPlatform persisted to a JSON file."""

    def __init__(self, path: Path | str) -> None:
        super().__init__()
        self._path = Path(path).expanduser()

    async def get_observed(self, selector: ResourceSelector | None = None) -> ResourceTree:
        self._load()
        return await super().get_observed(selector)

    async def apply(self, tree: ResourceTree) -> None:
        self._load()
        try:
            await super().apply(tree)
        finally:
            self._save()

    async def delete(self, keys: list[ResourceKey]) -> None:
        self._load()
        await super().delete(keys)
        self._save()

    async def set_replicas(self, workload: str, count: int) -> None:
        self._load()
        await super().set_replicas(workload, count)
        self._save()

    async def utilization(self, workload: str) -> MetricSample:
        self._load()
        return await super().utilization(workload)

    def replicas(self, workload: str) -> int | None:
        self._load()
        return super().replicas(workload)

    def _load(self) -> None:
        if not self._path.exists():
            self._resources = {}
            self._metrics = {}
            return
        payload = json.loads(self._path.read_text(encoding="utf-8"))
        resources = [Resource(**r) for r in payload.get("resources", [])]
        self._resources = {r.key: r for r in resources}
        self._metrics = {k: float(v) for k, v in payload.get("metrics", {}).items()}

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        tmp.write_text(
            json.dumps({"resources": self.dump(), "metrics": self._metrics}, indent=2),
            encoding="utf-8",
        )
        os.replace(tmp, self._path)
