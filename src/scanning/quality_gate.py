# src/scanning/quality_gate.py — v1
"""Quality gate — block promotion on findings at or above a severity threshold.

Findings below the threshold are recorded as advisory only. A scanner that
declares failure without reporting any finding blocks as an opaque failure,
unless the report is of an advisory kind (dependency scans by default).
When findings are present the threshold alone decides.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from shipyard.core.errors import PolicyViolation
from shipyard.core.models import Finding, ScanReport, Severity

logger = logging.getLogger(__name__)


class GateVerdict(BaseModel):
    """Outcome of evaluating scan reports against the gate."""

    passed: bool
    threshold: Severity
    blocking: list[Finding] = Field(default_factory=list)
    advisory: list[Finding] = Field(default_factory=list)
    failed_scanners: list[str] = Field(default_factory=list)

    def summary(self) -> str:
        if self.passed:
            return f"passed ({len(self.advisory)} advisory findings below {self.threshold.value})"
        parts = []
        if self.blocking:
            ids = ", ".join(f"{f.id}[{f.severity.value}]" for f in self.blocking)
            parts.append(f"{len(self.blocking)} findings >= {self.threshold.value}: {ids}")
        if self.failed_scanners:
            parts.append("scanner reported failure: " + ", ".join(self.failed_scanners))
        return "; ".join(parts)


class QualityGate:
    """Severity-threshold gate over one or more scan reports."""

    def __init__(
        self,
        threshold: Severity = Severity.HIGH,
        advisory_kinds: frozenset[str] = frozenset({"dependencies"}),
    ) -> None:
        self._threshold = threshold
        self._advisory_kinds = advisory_kinds

    @property
    def threshold(self) -> Severity:
        return self._threshold

    def evaluate(self, reports: list[ScanReport]) -> GateVerdict:
        blocking: list[Finding] = []
        advisory: list[Finding] = []
        failed: list[str] = []
        for report in reports:
            if (
                not report.passed
                and not report.findings
                and report.target.kind not in self._advisory_kinds
            ):
                failed.append(f"{report.scanner}:{report.target.kind}")
            for finding in report.findings:
                if finding.severity.at_least(self._threshold):
                    blocking.append(finding)
                else:
                    advisory.append(finding)

        verdict = GateVerdict(
            passed=not blocking and not failed,
            threshold=self._threshold,
            blocking=blocking,
            advisory=advisory,
            failed_scanners=failed,
        )
        logger.info("Quality gate %s", verdict.summary())
        return verdict

    def enforce(self, reports: list[ScanReport]) -> GateVerdict:
        """Evaluate and raise PolicyViolation when the gate blocks."""
        verdict = self.evaluate(reports)
        if not verdict.passed:
            raise PolicyViolation(
                f"Quality gate blocked promotion: {verdict.summary()}",
                findings=verdict.blocking,
            )
        return verdict
