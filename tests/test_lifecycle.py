"""
Tests for DeploymentLifecycle (list / stop / delete).
"""
import asyncio

import pytest

from conftest import SAMPLE_TOKEN, FakeRuntime

from dockbot.deploy import (
    ConcurrencyError,
    ContainerRuntimeError,
    DeploymentLifecycle,
    DeploymentRecord,
    DeploymentStatus,
    KeyedLock,
    NotFoundError,
    OperationTimeoutError,
)


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def locks():
    return KeyedLock("credential", timeout=1.0, mask_keys=True)


@pytest.fixture
def lifecycle(registry, runtime, ports, locks):
    return DeploymentLifecycle(registry, runtime, ports, locks, stop_grace_seconds=3)


async def seed(registry, runtime, ports, credential: str = SAMPLE_TOKEN) -> DeploymentRecord:
    """Put a running deployment into the registry and the fake runtime."""
    port = ports.allocate()
    image_id = runtime.add_image("bot_image")
    handle = await runtime.create_and_start("bot_image", "bot", {}, 3000, port)
    record = DeploymentRecord(
        credential=credential,
        image_ref="bot_image",
        image_id=image_id,
        runtime_handle=handle,
        host_port=port,
    )
    await registry.insert(record)
    return record


class TestList:
    @pytest.mark.asyncio
    async def test_empty(self, lifecycle):
        assert await lifecycle.list() == []

    @pytest.mark.asyncio
    async def test_returns_records(self, lifecycle, registry, runtime, ports):
        record = await seed(registry, runtime, ports)

        assert await lifecycle.list() == [record]


class TestStop:
    @pytest.mark.asyncio
    async def test_stop_keeps_record_and_port(self, lifecycle, registry, runtime, ports):
        record = await seed(registry, runtime, ports)

        stopped = await lifecycle.stop(SAMPLE_TOKEN)

        assert stopped.status is DeploymentStatus.STOPPED
        assert runtime.containers[record.runtime_handle]["running"] is False
        assert (await registry.get(SAMPLE_TOKEN)).status is DeploymentStatus.STOPPED
        assert ports.reserved == {record.host_port}

    @pytest.mark.asyncio
    async def test_stop_twice_contacts_runtime_once(self, lifecycle, registry, runtime, ports):
        await seed(registry, runtime, ports)

        await lifecycle.stop(SAMPLE_TOKEN)
        again = await lifecycle.stop(SAMPLE_TOKEN)

        assert again.status is DeploymentStatus.STOPPED
        assert len(runtime.called("stop")) == 1

    @pytest.mark.asyncio
    async def test_stop_vanished_container_marks_stopped(self, lifecycle, registry, runtime, ports):
        record = await seed(registry, runtime, ports)
        runtime.containers.pop(record.runtime_handle)

        stopped = await lifecycle.stop(SAMPLE_TOKEN)

        assert stopped.status is DeploymentStatus.STOPPED
        assert (await registry.get(SAMPLE_TOKEN)).status is DeploymentStatus.STOPPED

    @pytest.mark.asyncio
    async def test_stop_unknown(self, lifecycle, registry, runtime, ports):
        await seed(registry, runtime, ports)

        with pytest.raises(NotFoundError) as exc_info:
            await lifecycle.stop("999:unknown")

        assert exc_info.value.stage == "stop"
        assert len(registry) == 1
        assert runtime.called("stop") == []

    @pytest.mark.asyncio
    async def test_stop_failure_keeps_running_status(self, lifecycle, registry, runtime, ports):
        await seed(registry, runtime, ports)
        runtime.stop_error = OperationTimeoutError("stop took too long", stage="container_stop")

        with pytest.raises(OperationTimeoutError):
            await lifecycle.stop(SAMPLE_TOKEN)

        assert (await registry.get(SAMPLE_TOKEN)).status is DeploymentStatus.RUNNING


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_removes_everything(self, lifecycle, registry, runtime, ports):
        record = await seed(registry, runtime, ports)

        deleted = await lifecycle.delete(SAMPLE_TOKEN)

        assert deleted == record
        assert len(registry) == 0
        assert runtime.containers == {}
        assert runtime.images == {}
        assert ("remove_image", record.image_id) in runtime.calls
        assert ports.reserved == frozenset()

    @pytest.mark.asyncio
    async def test_delete_after_stop(self, lifecycle, registry, runtime, ports):
        await seed(registry, runtime, ports)
        await lifecycle.stop(SAMPLE_TOKEN)

        await lifecycle.delete(SAMPLE_TOKEN)

        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_delete_tolerates_vanished_container(self, lifecycle, registry, runtime, ports):
        record = await seed(registry, runtime, ports)
        runtime.containers.pop(record.runtime_handle)

        await lifecycle.delete(SAMPLE_TOKEN)

        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_image_removal_failure_is_not_fatal(self, lifecycle, registry, runtime, ports):
        await seed(registry, runtime, ports)

        async def broken_remove_image(image_ref):
            raise ContainerRuntimeError("image in use", stage="image_remove")

        runtime.remove_image = broken_remove_image

        await lifecycle.delete(SAMPLE_TOKEN)

        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_delete_unknown_leaves_registry_unchanged(self, lifecycle, registry, runtime, ports):
        record = await seed(registry, runtime, ports)

        with pytest.raises(NotFoundError):
            await lifecycle.delete("999:unknown")

        assert await registry.list() == [record]
        assert runtime.called("remove") == []


class TestLocking:
    @pytest.mark.asyncio
    async def test_commands_wait_for_credential_lock(self, lifecycle, registry, runtime, ports, locks):
        await seed(registry, runtime, ports)
        release = asyncio.Event()

        async def deploy_in_progress():
            async with locks.hold(SAMPLE_TOKEN):
                await release.wait()

        holder = asyncio.create_task(deploy_in_progress())
        await asyncio.sleep(0)

        stop = asyncio.create_task(lifecycle.stop(SAMPLE_TOKEN))
        await asyncio.sleep(0.01)
        assert runtime.called("stop") == []

        release.set()
        await holder
        await stop
        assert len(runtime.called("stop")) == 1

    @pytest.mark.asyncio
    async def test_command_gives_up_after_lock_timeout(self, registry, runtime, ports):
        locks = KeyedLock("credential", timeout=0.01, mask_keys=True)
        lifecycle = DeploymentLifecycle(registry, runtime, ports, locks)
        await seed(registry, runtime, ports)
        release = asyncio.Event()

        async def deploy_in_progress():
            async with locks.hold(SAMPLE_TOKEN):
                await release.wait()

        holder = asyncio.create_task(deploy_in_progress())
        await asyncio.sleep(0)

        with pytest.raises(ConcurrencyError):
            await lifecycle.delete(SAMPLE_TOKEN)

        release.set()
        await holder
        assert len(registry) == 1
