# src/build/toolchain_factory.py — v1
"""Factory for build toolchain instantiation."""

from __future__ import annotations

from shipyard.build.base_toolchain import BaseToolchain
from shipyard.build.command_toolchain import CommandToolchain
from shipyard.config.settings import Settings


def create_toolchain(settings: Settings | None = None) -> BaseToolchain:
    """Command toolchain configured from ``build_commands`` (empty = no-op steps)."""
    if settings is None:
        return CommandToolchain(commands={})
    return CommandToolchain(
        commands=settings.build_commands_map,
        work_root=settings.build_work_root,
        timeout_s=settings.stage_timeout_s,
    )
