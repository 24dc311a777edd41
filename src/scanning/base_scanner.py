# src/scanning/base_scanner.py — v1
"""Scanner gateway interface.

Static-analysis, dependency and image scanners are interchangeable
implementations of one contract: scan a target, return a typed report.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from shipyard.core.models import ScanReport, ScanTarget


class BaseScanner(ABC):
    """Standard interface for all vulnerability/quality scanners."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Scanner identifier used in reports."""

    @abstractmethod
    async def scan(self, target: ScanTarget) -> ScanReport:
        """Scan ``target`` and return findings.

        Raises:
            TransientInfraError: If the scanner itself could not run.
        """
