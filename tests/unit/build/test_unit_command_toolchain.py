# tests/unit/build/test_unit_command_toolchain.py — v1
"""Tests for build/command_toolchain.py — one command per build step."""

from __future__ import annotations

import sys

import pytest

from shipyard.build.base_toolchain import Workspace
from shipyard.build.command_toolchain import CommandToolchain
from shipyard.build.toolchain_factory import create_toolchain
from shipyard.config.settings import Settings
from shipyard.core.errors import PolicyViolation, ShipyardError, TransientInfraError


def _py(code: str) -> str:
    return f'"{sys.executable}" -c "{code}"'


class TestCommandToolchain:
    def test_unknown_step_rejected(self):
        with pytest.raises(ValueError, match="Unknown toolchain steps"):
            CommandToolchain({"deploy": "kubectl apply"})

    @pytest.mark.asyncio
    async def test_steps_see_revision_env(self, tmp_path, revision):
        toolchain = CommandToolchain(
            {"compile": _py("import os; print(os.environ['SHIPYARD_COMMIT'])")},
            work_root=tmp_path,
        )
        workspace = await toolchain.checkout(revision)
        assert workspace.path.parent == tmp_path
        await toolchain.compile(workspace)
        assert workspace.logs["compile"].strip() == revision.commit

    @pytest.mark.asyncio
    async def test_missing_steps_are_noops(self, tmp_path, revision):
        toolchain = CommandToolchain({}, work_root=tmp_path)
        workspace = await toolchain.checkout(revision)
        await toolchain.compile(workspace)
        await toolchain.test(workspace)
        await toolchain.package(workspace)
        image = await toolchain.build_image(workspace)
        assert image.startswith(revision.revision_id.encode())

    @pytest.mark.asyncio
    async def test_failing_tests_are_policy_violations(self, tmp_path, revision):
        toolchain = CommandToolchain(
            {"test": _py("import sys; sys.exit(1)")}, work_root=tmp_path
        )
        workspace = await toolchain.checkout(revision)
        with pytest.raises(PolicyViolation, match="test failed"):
            await toolchain.test(workspace)

    @pytest.mark.asyncio
    async def test_failing_package_is_transient(self, tmp_path, revision):
        toolchain = CommandToolchain(
            {"package": _py("import sys; sys.exit(4)")}, work_root=tmp_path
        )
        workspace = await toolchain.checkout(revision)
        with pytest.raises(TransientInfraError, match="exit code 4"):
            await toolchain.package(workspace)

    @pytest.mark.asyncio
    async def test_image_step_writes_archive(self, tmp_path, revision):
        toolchain = CommandToolchain(
            {"image": _py(
                "import os; open(os.environ['SHIPYARD_IMAGE_PATH'], 'wb').write(b'tarball')"
            )},
            work_root=tmp_path,
        )
        workspace = await toolchain.checkout(revision)
        assert await toolchain.build_image(workspace) == b"tarball"

    @pytest.mark.asyncio
    async def test_image_step_without_archive(self, tmp_path, revision):
        toolchain = CommandToolchain({"image": _py("pass")}, work_root=tmp_path)
        workspace = await toolchain.checkout(revision)
        with pytest.raises(TransientInfraError, match="did not produce"):
            await toolchain.build_image(workspace)


class TestToolchainFactory:
    def test_from_settings(self, tmp_path):
        settings = Settings(
            _env_file=None, build_commands="compile=make", build_work_root=tmp_path
        )
        toolchain = create_toolchain(settings)
        assert isinstance(toolchain, CommandToolchain)


class TestWorkspaceCleanup:
    @pytest.mark.asyncio
    async def test_cleanup_removes_checkout(self, tmp_path, revision):
        toolchain = CommandToolchain({}, work_root=tmp_path)
        workspace = await toolchain.checkout(revision)
        assert workspace.path.is_dir()

        toolchain.cleanup(workspace)

        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_failed_checkout_leaves_nothing_behind(self, tmp_path, revision):
        toolchain = CommandToolchain(
            {"checkout": _py("import sys; sys.exit(3)")}, work_root=tmp_path
        )
        for _ in range(3):
            with pytest.raises(TransientInfraError, match="checkout failed"):
                await toolchain.checkout(revision)
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_image_needs_workspace_path(self, revision):
        with pytest.raises(ShipyardError, match="checked-out workspace"):
            await CommandToolchain({}).build_image(Workspace(revision=revision))
