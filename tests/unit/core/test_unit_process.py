# tests/unit/core/test_unit_process.py — v1
"""Tests for core/process.py — async subprocess invocation."""

from __future__ import annotations

import sys

import pytest

from shipyard.core.errors import StageTimeout, TransientInfraError
from shipyard.core.process import run_command, split_command


class TestSplitCommand:
    def test_string(self):
        assert split_command("trivy image --format 'json'") == [
            "trivy", "image", "--format", "json",
        ]

    def test_list_copied(self):
        argv = ["make", "test"]
        result = split_command(argv)
        assert result == argv
        assert result is not argv


class TestRunCommand:
    @pytest.mark.asyncio
    async def test_captures_output(self, tmp_path):
        result = await run_command(
            [sys.executable, "-c", "import os; print(os.getcwd())"], cwd=tmp_path
        )
        assert result.ok
        assert result.stdout.strip() == str(tmp_path.resolve())

    @pytest.mark.asyncio
    async def test_non_zero_exit(self):
        result = await run_command(
            [sys.executable, "-c", "import sys; sys.stderr.write('bad'); sys.exit(3)"]
        )
        assert not result.ok
        assert result.exit_code == 3
        assert result.stderr == "bad"

    @pytest.mark.asyncio
    async def test_missing_command(self):
        with pytest.raises(TransientInfraError, match="Command not found"):
            await run_command(["shipyard-no-such-binary-xyz"])

    @pytest.mark.asyncio
    async def test_timeout(self):
        with pytest.raises(StageTimeout, match="timed out"):
            await run_command(
                [sys.executable, "-c", "import time; time.sleep(10)"],
                timeout_s=0.2,
                kill_timeout_s=1.0,
            )

    @pytest.mark.asyncio
    async def test_empty_command(self):
        with pytest.raises(ValueError):
            await run_command("")
