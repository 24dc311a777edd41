# tests/unit/pipeline/test_unit_run_table.py — v1
"""Tests for pipeline/run_table.py — run registry and queries."""

from __future__ import annotations

import re

import pytest

from shipyard.core.errors import RunStateError
from shipyard.core.models import Revision
from shipyard.pipeline.run_table import RunTable, generate_run_id

SPECS = [("checkout", "required"), ("dependency-scan", "best-effort")]


class TestRunTable:
    def test_create_registers_pending_stages(self, revision):
        table = RunTable()
        run = table.create(revision, SPECS)
        assert run.status == "queued"
        assert run.stage_order() == ["checkout", "dependency-scan"]
        assert run.stages["dependency-scan"].policy == "best-effort"
        assert all(s.status == "pending" for s in run.stages.values())
        assert table.get(run.run_id) is run

    def test_unknown_run(self):
        with pytest.raises(RunStateError, match="Unknown run"):
            RunTable().get("nope")

    def test_queries(self, revision):
        table = RunTable()
        other = Revision(workload="api", commit="abc", build_number=1)
        first = table.create(revision, SPECS)
        second = table.create(revision, SPECS)
        table.create(other, SPECS)
        first.start()

        assert table.active("web") is first
        assert table.queued("web") == [second]
        assert table.latest("web") is second
        assert table.workloads() == ["api", "web"]
        assert len(table.list_runs()) == 3
        assert table.list_runs(status="running") == [first]
        assert table.active("api") is None
        assert len(table) == 3

    def test_run_ids_unique(self, revision):
        table = RunTable()
        ids = {table.create(revision, SPECS).run_id for _ in range(50)}
        assert len(ids) == 50

    def test_run_id_format(self):
        assert re.match(r"^\d{8}_\d{6}_[0-9a-f]{6}$", generate_run_id())
