# tests/unit/reconciler/test_unit_waves.py — v1
"""Tests for reconciler/waves.py — apply ordering."""

from __future__ import annotations

from conftest import make_manifest
from shipyard.core.models import Resource, ResourceTree
from shipyard.reconciler.waves import DEFAULT_WAVE, group_into_waves, wave_of


class TestWaveOf:
    def test_kind_defaults(self):
        assert wave_of(Resource(kind="Namespace", name="apps", namespace="")) == 0
        assert wave_of(Resource(kind="Secret", name="s")) == 1
        assert wave_of(Resource(kind="Service", name="s")) == 3
        assert wave_of(Resource(kind="Ingress", name="i")) == 5

    def test_unknown_kind(self):
        assert wave_of(Resource(kind="Widget", name="w")) == DEFAULT_WAVE

    def test_annotation_override(self):
        resource = Resource(
            kind="Job", name="migrate", metadata={"annotations": {"sync-wave": "-1"}}
        )
        assert wave_of(resource) == -1

    def test_invalid_annotation_falls_back(self):
        resource = Resource(
            kind="Service", name="s", metadata={"annotations": {"sync-wave": "soon"}}
        )
        assert wave_of(resource) == 3


class TestGroupIntoWaves:
    def test_manifest_ordering(self):
        tree = ResourceTree.from_resources(make_manifest().resources)
        waves = group_into_waves(tree)
        assert [w for w, _ in waves] == [0, 1, 3, 4]
        assert [r.kind for _, batch in waves for r in batch] == [
            "Namespace", "ConfigMap", "Service", "Deployment",
        ]

    def test_empty(self):
        assert group_into_waves(ResourceTree()) == []
