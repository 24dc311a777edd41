# src/scanning/static_scanner.py — v1
"""Scanner returning preconfigured findings (SCANNER_BACKEND=static).

Useful for local runs and as a deterministic stand-in for a real scanner.
"""

from __future__ import annotations

from shipyard.core.models import Finding, ScanReport, ScanTarget
from shipyard.scanning.base_scanner import BaseScanner


class StaticScanner(BaseScanner):
    """Reports the same findings for every target of the configured kinds."""

    def __init__(
        self,
        findings: dict[str, list[Finding]] | None = None,
        name: str = "static",
    ) -> None:
        self._findings = findings or {}
        self._name = name
        self.scanned: list[ScanTarget] = []

    @property
    def name(self) -> str:
        return self._name

    async def scan(self, target: ScanTarget) -> ScanReport:
        self.scanned.append(target)
        findings = list(self._findings.get(target.kind, []))
        return ScanReport(scanner=self._name, target=target, findings=findings, passed=True)
