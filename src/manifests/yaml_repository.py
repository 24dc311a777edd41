# src/manifests/yaml_repository.py — v1
"""YAML file-backed manifest repository (MANIFEST_REPOSITORY=yaml).

Layout under the root directory::

    <workload>.yaml                  # {"version": N, "document": {...}}
    .history/<workload>/<N>.yaml     # one file per committed version

Files are written to a temporary name and renamed into place.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from shipyard.core.errors import ConflictError, ManifestNotFound
from shipyard.core.models import ManifestDocument, ManifestRevision
from shipyard.manifests.base_repository import BaseManifestRepository

logger = logging.getLogger(__name__)


class YamlManifestRepository(BaseManifestRepository):
    """One YAML document per workload plus numbered history files."""

    def __init__(self, root: Path | str) -> None:
        super().__init__()
        self._root = Path(root).expanduser()
        self._root.mkdir(parents=True, exist_ok=True)

    async def read(self, workload: str) -> tuple[ManifestDocument, int]:
        path = self._current_path(workload)
        if not path.exists():
            raise ManifestNotFound(f"No manifest for workload '{workload}' in {self._root}")
        payload = _load_yaml_mapping(path)
        return ManifestDocument(**payload["document"]), int(payload.get("version", 1))

    async def write(
        self,
        workload: str,
        document: ManifestDocument,
        expected_version: int,
        message: str = "",
    ) -> int:
        current = self._current_version(workload)
        if current != expected_version:
            raise ConflictError(workload, expected_version, current)

        version = current + 1
        data = document.model_dump(mode="json")
        _dump_yaml(self._history_path(workload, version), {
            "version": version,
            "message": message,
            "document": data,
        })
        _dump_yaml(self._current_path(workload), {"version": version, "document": data})
        logger.debug("Committed %s v%d to %s", workload, version, self._root)
        self._notify(workload, version)
        return version

    async def list_workloads(self) -> list[str]:
        return sorted(p.stem for p in self._root.glob("*.yaml"))

    async def history(self, workload: str) -> list[ManifestRevision]:
        history_dir = self._root / ".history" / workload
        revisions: list[ManifestRevision] = []
        for path in history_dir.glob("*.yaml"):
            payload = _load_yaml_mapping(path)
            revisions.append(
                ManifestRevision(
                    version=int(payload["version"]),
                    document=ManifestDocument(**payload["document"]),
                    message=payload.get("message") or "",
                )
            )
        return sorted(revisions, key=lambda r: r.version)

    def _current_version(self, workload: str) -> int:
        path = self._current_path(workload)
        if not path.exists():
            return 0
        return int(_load_yaml_mapping(path).get("version", 1))

    def _current_path(self, workload: str) -> Path:
        return self._root / f"{workload}.yaml"

    def _history_path(self, workload: str, version: int) -> Path:
        return self._root / ".history" / workload / f"{version:06d}.yaml"


def _load_yaml_mapping(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise ValueError(f"Manifest file must contain a YAML mapping: {path}")
    return dict(payload)


def _dump_yaml(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    with open(tmp, "w", encoding="utf-8") as handle:
        yaml.safe_dump(payload, handle, sort_keys=False)
    os.replace(tmp, path)
