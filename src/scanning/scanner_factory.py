# src/scanning/scanner_factory.py — v1
"""Factory for scanner gateway instantiation."""

from __future__ import annotations

from shipyard.config.settings import Settings
from shipyard.scanning.base_scanner import BaseScanner


def create_scanner(settings: Settings | None = None) -> BaseScanner:
    """Instantiate the configured scanner backend."""
    backend = "static" if settings is None else settings.scanner_backend

    if backend == "static":
        from shipyard.scanning.static_scanner import StaticScanner
        return StaticScanner()

    if backend == "command":
        from shipyard.scanning.command_scanner import CommandScanner
        return CommandScanner(
            commands=settings.scanner_commands_map,
            timeout_s=settings.stage_timeout_s,
        )

    raise ValueError(f"Unsupported scanner backend: {backend!r}")
