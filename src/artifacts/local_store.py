# src/artifacts/local_store.py — v1
"""Filesystem artifact store (ARTIFACT_STORE=local).

Blobs are content-addressed under ``blobs/<sha256>``; tag metadata lives in
``tags/<name>/<tag>.json``. A push writes the blob to a temp file first and
renames it, so an aborted push never leaves a tag pointing at a partial blob.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from shipyard.artifacts.base_artifact_store import BaseArtifactStore, compute_digest
from shipyard.core.errors import AlreadyExists, ArtifactNotFound, TransientInfraError
from shipyard.core.models import Artifact

logger = logging.getLogger(__name__)


class LocalArtifactStore(BaseArtifactStore):
    """File-based artifact store."""

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser()
        (self._root / "blobs").mkdir(parents=True, exist_ok=True)
        (self._root / "tags").mkdir(parents=True, exist_ok=True)

    async def push(self, name: str, tag: str, blob: bytes) -> Artifact:
        existing = await self.get(name, tag)
        if existing is not None:
            raise AlreadyExists(existing)

        digest = compute_digest(blob)
        blob_path = self._blob_path(digest)
        try:
            if not blob_path.exists():
                tmp = blob_path.with_suffix(".partial")
                tmp.write_bytes(blob)
                os.replace(tmp, blob_path)

            artifact = Artifact(name=name, tag=tag, digest=digest, size=len(blob))
            meta = self._tag_path(name, tag)
            meta.parent.mkdir(parents=True, exist_ok=True)
            meta.write_text(artifact.model_dump_json(indent=2), encoding="utf-8")
        except OSError as exc:
            raise TransientInfraError(f"Cannot write artifact {name}:{tag}: {exc}") from exc

        logger.debug("Pushed %s -> %s", artifact.reference, digest)
        return artifact

    async def exists(self, name: str, tag: str) -> bool:
        return self._tag_path(name, tag).exists()

    async def get(self, name: str, tag: str) -> Artifact | None:
        path = self._tag_path(name, tag)
        if not path.exists():
            return None
        try:
            return Artifact(**json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError) as exc:
            raise TransientInfraError(f"Cannot read artifact {name}:{tag}: {exc}") from exc

    async def pull(self, name: str, tag: str) -> bytes:
        artifact = await self.get(name, tag)
        if artifact is None:
            raise ArtifactNotFound(f"{name}:{tag}")
        return self._blob_path(artifact.digest).read_bytes()

    async def list_tags(self, name: str) -> list[str]:
        tag_dir = self._root / "tags" / _safe(name)
        if not tag_dir.is_dir():
            return []
        artifacts = [
            Artifact(**json.loads(p.read_text(encoding="utf-8")))
            for p in tag_dir.glob("*.json")
        ]
        return [a.tag for a in sorted(artifacts, key=lambda a: a.pushed_at)]

    async def abort(self, name: str, tag: str) -> None:
        for partial in (self._root / "blobs").glob("*.partial"):
            partial.unlink(missing_ok=True)

    def _blob_path(self, digest: str) -> Path:
        return self._root / "blobs" / digest.replace(":", "_")

    def _tag_path(self, name: str, tag: str) -> Path:
        return self._root / "tags" / _safe(name) / f"{_safe(tag)}.json"


def _safe(part: str) -> str:
    return part.replace("/", "_").replace("\\", "_").replace(":", "_")
