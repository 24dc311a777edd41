# src/build/command_toolchain.py — v1
"""Toolchain that runs one configured command per build step.

Commands run inside the checkout directory with the revision exposed via
environment variables (SHIPYARD_WORKLOAD, SHIPYARD_COMMIT, SHIPYARD_BUILD).
The image step must write the image archive to ``$SHIPYARD_IMAGE_PATH``.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

from shipyard.build.base_toolchain import BaseToolchain, Workspace
from shipyard.core.errors import PolicyViolation, ShipyardError, TransientInfraError
from shipyard.core.models import Revision
from shipyard.core.process import CommandResult, run_command

logger = logging.getLogger(__name__)

STEPS = ("checkout", "compile", "test", "package", "image")

# Steps whose non-zero exit means the code was rejected, not the infra.
_POLICY_STEPS = frozenset({"compile", "test"})


class CommandToolchain(BaseToolchain):
    """Shell-command driven toolchain.

    Args:
        commands: step name -> command. Missing steps are no-ops, except
            "image" whose absence yields an image built from the step logs.
        work_root: Parent directory for checkouts (temp dir if None).
        timeout_s: Per-command timeout.
    """

    def __init__(
        self,
        commands: dict[str, str],
        work_root: Path | None = None,
        timeout_s: float | None = None,
    ) -> None:
        unknown = set(commands) - set(STEPS)
        if unknown:
            raise ValueError(f"Unknown toolchain steps: {sorted(unknown)}")
        self._commands = commands
        self._work_root = work_root
        self._timeout_s = timeout_s

    async def checkout(self, revision: Revision) -> Workspace:
        path = Path(
            tempfile.mkdtemp(
                prefix=f"{revision.workload}-{revision.build_number}-",
                dir=str(self._work_root) if self._work_root else None,
            )
        )
        workspace = Workspace(revision=revision, path=path)
        try:
            await self._step("checkout", workspace)
        except BaseException:
            self.cleanup(workspace)
            raise
        return workspace

    def cleanup(self, workspace: Workspace) -> None:
        if workspace.path is not None and workspace.path.exists():
            shutil.rmtree(workspace.path, ignore_errors=True)
            logger.debug("Removed workspace %s", workspace.path)

    async def compile(self, workspace: Workspace) -> None:
        await self._step("compile", workspace)

    async def test(self, workspace: Workspace) -> None:
        await self._step("test", workspace)

    async def package(self, workspace: Workspace) -> None:
        await self._step("package", workspace)

    async def build_image(self, workspace: Workspace) -> bytes:
        if workspace.path is None:
            raise ShipyardError("Image build needs a checked-out workspace")
        image_path = workspace.path / "image.tar"
        if "image" not in self._commands:
            blob = "\n".join(f"{k}:{v}" for k, v in sorted(workspace.logs.items()))
            workspace.image = f"{workspace.revision.revision_id}\n{blob}".encode()
            return workspace.image

        await self._step("image", workspace, extra_env={"SHIPYARD_IMAGE_PATH": str(image_path)})
        if not image_path.exists():
            raise TransientInfraError(f"Image step did not produce {image_path}")
        workspace.image = image_path.read_bytes()
        return workspace.image

    async def _step(
        self,
        step: str,
        workspace: Workspace,
        extra_env: dict[str, str] | None = None,
    ) -> CommandResult | None:
        command = self._commands.get(step)
        if command is None:
            return None

        revision = workspace.revision
        env = dict(os.environ)
        env.update({
            "SHIPYARD_WORKLOAD": revision.workload,
            "SHIPYARD_COMMIT": revision.commit,
            "SHIPYARD_BUILD": str(revision.build_number),
        })
        env.update(extra_env or {})

        result = await run_command(command, cwd=workspace.path, env=env, timeout_s=self._timeout_s)
        workspace.logs[step] = result.stdout[-4000:]
        if result.ok:
            return result

        message = f"{step} failed with exit code {result.exit_code}: {result.stderr.strip()[:500]}"
        if step in _POLICY_STEPS:
            raise PolicyViolation(message)
        raise TransientInfraError(message)
