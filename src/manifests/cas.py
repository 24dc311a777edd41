# src/manifests/cas.py — v1
"""Compare-and-swap update of a manifest's artifact reference.

This is the only mutation the pipeline engine performs on the manifest
repository: read the current document, replace the artifact field, write
it back against the version that was read. A concurrent commit makes the
write fail with ConflictError, and the whole read-modify-write is redone
against the newer version.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from shipyard.artifacts.base_artifact_store import BaseArtifactStore
from shipyard.core.errors import ArtifactNotFound, ConflictError, ShipyardError
from shipyard.core.models import Artifact
from shipyard.manifests.base_repository import BaseManifestRepository

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_CONFLICT_DELAY_S = 0.05


@dataclass
class CasResult:
    """Outcome of a successful compare-and-swap update."""

    workload: str
    previous_reference: str
    reference: str
    base_version: int
    version: int
    attempts: int
    changed: bool = True


async def update_artifact_reference(
    repository: BaseManifestRepository,
    store: BaseArtifactStore,
    workload: str,
    artifact: Artifact,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    conflict_delay_s: float = DEFAULT_CONFLICT_DELAY_S,
) -> CasResult:
    """Point ``workload``'s manifest at ``artifact`` using optimistic concurrency.

    Raises:
        ArtifactNotFound: If the artifact is not in the store at commit time.
        ConflictError: If every attempt lost a race with another writer.
    """
    last_conflict: ConflictError | None = None

    for attempt in range(1, max_attempts + 1):
        document, version = await repository.read(workload)
        previous = document.artifact

        if previous == artifact.reference:
            logger.info("Manifest %s already references %s (v%d)", workload, previous, version)
            return CasResult(
                workload=workload,
                previous_reference=previous,
                reference=artifact.reference,
                base_version=version,
                version=version,
                attempts=attempt,
                changed=False,
            )

        if not await store.exists(artifact.name, artifact.tag):
            raise ArtifactNotFound(
                f"Refusing to reference {artifact.reference}: not present in artifact store"
            )

        try:
            new_version = await repository.write(
                workload,
                document.with_artifact(artifact.reference),
                expected_version=version,
                message=f"promote {artifact.reference}",
            )
        except ConflictError as exc:
            last_conflict = exc
            logger.warning(
                "Manifest %s conflict (attempt %d/%d): expected v%d, found v%d",
                workload, attempt, max_attempts, exc.expected, exc.actual,
            )
            if attempt < max_attempts and conflict_delay_s:
                await asyncio.sleep(conflict_delay_s * attempt)
            continue

        logger.info(
            "Manifest %s: %s -> %s (v%d -> v%d)",
            workload, previous, artifact.reference, version, new_version,
        )
        return CasResult(
            workload=workload,
            previous_reference=previous,
            reference=artifact.reference,
            base_version=version,
            version=new_version,
            attempts=attempt,
        )

    if last_conflict is None:
        raise ShipyardError(f"Manifest {workload} not updated: max_attempts={max_attempts}")
    raise last_conflict
