# src/build/base_toolchain.py — v1
"""Build toolchain capability interface.

Checkout, compile, test, package and image construction are external
collaborators; the engine only needs their success/failure signal and the
resulting image blob.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from shipyard.core.models import Revision


@dataclass
class Workspace:
    """Working state of one revision's build."""

    revision: Revision
    path: Path | None = None
    image: bytes | None = None
    logs: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)


class BaseToolchain(ABC):
    """Standard interface for the build toolchain.

    Each step raises TransientInfraError for infrastructure faults and
    PolicyViolation when the code itself is rejected (e.g. failing tests).
    """

    @abstractmethod
    async def checkout(self, revision: Revision) -> Workspace:
        """Fetch the source tree for ``revision``."""

    @abstractmethod
    async def compile(self, workspace: Workspace) -> None:
        """Compile the source tree."""

    @abstractmethod
    async def test(self, workspace: Workspace) -> None:
        """Run the test suite."""

    @abstractmethod
    async def package(self, workspace: Workspace) -> None:
        """Produce the deployable package."""

    @abstractmethod
    async def build_image(self, workspace: Workspace) -> bytes:
        """Build the container image and return its blob."""

    def cleanup(self, workspace: Workspace) -> None:
        """Release whatever ``checkout`` allocated. Called once the run is over."""
