# tests/unit/platform/test_unit_memory_platform.py — v1
"""Tests for platform/memory_platform.py — the in-memory cluster simulator."""

from __future__ import annotations

import pytest

from conftest import make_deployment
from shipyard.core.errors import ApplyPartialFailure, PlatformUnreachable
from shipyard.core.models import Resource, ResourceSelector, ResourceTree
from shipyard.platform.memory_platform import MemoryPlatform


class TestObserve:
    @pytest.mark.asyncio
    async def test_deployment_status_synthesized(self):
        deployment = make_deployment(replicas=3)
        platform = MemoryPlatform([deployment])
        observed = (await platform.get_observed()).get(deployment.key)
        assert observed.status == {"replicas": 3, "readyReplicas": 3}

    @pytest.mark.asyncio
    async def test_unhealthy_injection(self):
        deployment = make_deployment(replicas=3)
        config = Resource(kind="ConfigMap", name="c", namespace="apps")
        platform = MemoryPlatform([deployment, config])
        platform.unhealthy.update({deployment.key, config.key})
        observed = await platform.get_observed()
        assert observed.get(deployment.key).status["readyReplicas"] == 0
        assert observed.get(config.key).status == {"health": "Degraded"}

    @pytest.mark.asyncio
    async def test_selector(self):
        platform = MemoryPlatform([
            make_deployment(namespace="apps"),
            make_deployment(namespace="batch"),
        ])
        tree = await platform.get_observed(ResourceSelector(namespaces=["batch"]))
        assert [k.namespace for k in tree.keys()] == ["batch"]

    @pytest.mark.asyncio
    async def test_unreachable(self):
        platform = MemoryPlatform()
        platform.reachable = False
        with pytest.raises(PlatformUnreachable):
            await platform.get_observed()


class TestApply:
    @pytest.mark.asyncio
    async def test_service_gets_stable_cluster_ip(self):
        platform = MemoryPlatform()
        service = Resource(kind="Service", name="web", namespace="apps", spec={"ports": []})
        await platform.apply(ResourceTree.from_resources([service]))
        first_ip = platform.resource(service.key).spec["clusterIP"]
        await platform.apply(ResourceTree.from_resources([service]))
        assert platform.resource(service.key).spec["clusterIP"] == first_ip

    @pytest.mark.asyncio
    async def test_replicas_preserved_when_omitted(self):
        platform = MemoryPlatform([make_deployment(replicas=5)])
        await platform.apply(ResourceTree.from_resources([make_deployment(replicas=None)]))
        assert platform.replicas("web") == 5

    @pytest.mark.asyncio
    async def test_resource_version_bumped(self):
        deployment = make_deployment()
        platform = MemoryPlatform([deployment])
        before = platform.resource(deployment.key).metadata["resourceVersion"]
        await platform.apply(ResourceTree.from_resources([deployment]))
        assert platform.resource(deployment.key).metadata["resourceVersion"] != before

    @pytest.mark.asyncio
    async def test_partial_failure(self):
        ok = Resource(kind="ConfigMap", name="ok", namespace="apps")
        bad = Resource(kind="ConfigMap", name="bad", namespace="apps")
        platform = MemoryPlatform()
        platform.reject.add(bad.key)
        with pytest.raises(ApplyPartialFailure) as exc_info:
            await platform.apply(ResourceTree.from_resources([ok, bad]))
        assert exc_info.value.failed == [bad.key]
        assert platform.resource(ok.key) is not None
        assert platform.resource(bad.key) is None

    @pytest.mark.asyncio
    async def test_delete_ignores_missing(self):
        config = Resource(kind="ConfigMap", name="c", namespace="apps")
        platform = MemoryPlatform([config])
        missing = Resource(kind="Secret", name="s", namespace="apps").key
        await platform.delete([config.key, missing])
        assert platform.deleted == [config.key]


class TestScaling:
    @pytest.mark.asyncio
    async def test_set_replicas_and_metrics(self):
        platform = MemoryPlatform([make_deployment(replicas=2)])
        platform.set_metric("web", 80.0)
        await platform.set_replicas("web", 4)
        sample = await platform.utilization("web")
        assert (sample.value, sample.replicas) == (80.0, 4)
        assert platform.replica_updates == [("web", 4)]

    @pytest.mark.asyncio
    async def test_set_replicas_unknown_workload(self):
        with pytest.raises(PlatformUnreachable):
            await MemoryPlatform().set_replicas("ghost", 3)

    @pytest.mark.asyncio
    async def test_metrics_unreachable(self):
        platform = MemoryPlatform([make_deployment()])
        platform.set_metric("web", 50.0)
        platform.metrics_reachable = False
        with pytest.raises(PlatformUnreachable):
            await platform.utilization("web")

    @pytest.mark.asyncio
    async def test_no_metric(self):
        with pytest.raises(PlatformUnreachable, match="No metrics"):
            await MemoryPlatform([make_deployment()]).utilization("web")
