# src/scanning/command_scanner.py — v1
"""Scanner backed by an external command (SCANNER_BACKEND=command).

The command receives the target reference as its last argument and must
print a JSON object on stdout::

    {"passed": true, "findings": [{"id": "CVE-2024-0001", "severity": "HIGH"}]}

A non-zero exit code is fine as long as stdout carries that JSON (most
scanners exit non-zero when they find something). A non-zero exit with
unparsable output is treated as a scanner outage and retried.
"""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from shipyard.core.errors import TransientInfraError
from shipyard.core.models import Finding, ScanReport, ScanTarget
from shipyard.core.process import run_command, split_command
from shipyard.scanning.base_scanner import BaseScanner

logger = logging.getLogger(__name__)

DEFAULT_SCAN_TIMEOUT_S = 900.0


class CommandScanner(BaseScanner):
    """Runs a configured command per target kind and parses its JSON report.

    Args:
        commands: target kind ("source", "dependencies", "image") -> command.
        timeout_s: Per-invocation timeout.
    """

    def __init__(
        self,
        commands: dict[str, str | list[str]],
        timeout_s: float = DEFAULT_SCAN_TIMEOUT_S,
        name: str = "command",
    ) -> None:
        self._commands = {k: split_command(v) for k, v in commands.items()}
        self._timeout_s = timeout_s
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def scan(self, target: ScanTarget) -> ScanReport:
        argv = self._commands.get(target.kind)
        if argv is None:
            logger.info("No scanner command for %s targets, reporting clean", target.kind)
            return ScanReport(scanner=self._name, target=target)

        result = await run_command(
            [*argv, target.path or target.ref], timeout_s=self._timeout_s
        )
        try:
            payload = json.loads(result.stdout)
            findings = [Finding(**f) for f in payload.get("findings", [])]
        except (json.JSONDecodeError, AttributeError, TypeError, ValidationError) as exc:
            if result.ok:
                raise TransientInfraError(
                    f"Scanner {argv[0]} produced unparsable output: {exc}"
                ) from exc
            raise TransientInfraError(
                f"Scanner {argv[0]} failed with exit code {result.exit_code}: "
                f"{result.stderr.strip()[:500]}"
            ) from exc

        passed = bool(payload.get("passed", result.ok))
        logger.info(
            "Scanned %s %s: %d findings, passed=%s",
            target.kind, target.ref, len(findings), passed,
        )
        return ScanReport(scanner=self._name, target=target, findings=findings, passed=passed)
