"""
Tests for the Docker runtime adapter.

The docker client is a MagicMock; docker.errors are the real SDK
exception types so the adapter's error mapping is exercised as written.
"""
import threading
import time
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from docker.errors import APIError, ImageNotFound, NotFound

from conftest import SAMPLE_TOKEN, FakeRuntime

from dockbot.deploy import (
    BuildError,
    ContainerRuntime,
    ContainerRuntimeError,
    DockerRuntime,
    OperationTimeoutError,
)
from dockbot.pipeline import PipelineContext
from dockbot.pipeline.frames import ImageFrame
from dockbot.pipeline.processors import ContainerStartProcessor


@pytest.fixture
def client():
    client = MagicMock()
    client.containers.get.side_effect = NotFound("No such container")
    return client


@pytest.fixture
def runtime(client):
    return DockerRuntime(client=client, build_timeout=5, start_timeout=5, stop_timeout=5)


class TestProtocol:
    def test_docker_runtime_is_container_runtime(self, runtime):
        assert isinstance(runtime, ContainerRuntime)

    def test_fake_runtime_is_container_runtime(self):
        assert isinstance(FakeRuntime(), ContainerRuntime)


class TestBuildImage:
    @pytest.mark.asyncio
    async def test_successful_build_returns_image_id(self, runtime, client):
        client.api.build.return_value = iter([
            {"stream": "Step 1/4 : FROM python:3.11-slim\n"},
            {"stream": "Successfully built abc\n"},
        ])
        client.images.get.return_value = MagicMock(id="sha256:abc", short_id="abc")

        image_id = await runtime.build_image(Path("/tmp/ctx"), "bot_tag")

        assert image_id == "sha256:abc"
        kwargs = client.api.build.call_args.kwargs
        assert kwargs["path"] == "/tmp/ctx"
        assert kwargs["tag"] == "bot_tag"
        assert kwargs["decode"] is True
        client.images.get.assert_called_once_with("bot_tag")

    @pytest.mark.asyncio
    async def test_error_event_raises_build_error(self, runtime, client):
        client.api.build.return_value = iter([
            {"stream": "Step 3/4 : RUN pip install nothing-here\n"},
            {"errorDetail": {"message": "returned a non-zero code: 1"}, "error": "x"},
        ])

        with pytest.raises(BuildError) as exc_info:
            await runtime.build_image(Path("/tmp/ctx"), "bot_tag")

        assert "non-zero code" in str(exc_info.value)
        assert exc_info.value.stage == "image_build"
        client.images.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_api_error_raises_build_error(self, runtime, client):
        client.api.build.side_effect = APIError("daemon unavailable")

        with pytest.raises(BuildError):
            await runtime.build_image(Path("/tmp/ctx"), "bot_tag")

    @pytest.mark.asyncio
    async def test_build_timeout(self, client):
        release = threading.Event()

        def slow_build(**kwargs):
            release.wait(5)
            return iter([])

        client.api.build.side_effect = slow_build
        runtime = DockerRuntime(client=client, build_timeout=0.05)

        try:
            with pytest.raises(OperationTimeoutError) as exc_info:
                await runtime.build_image(Path("/tmp/ctx"), "bot_tag")
        finally:
            release.set()

        assert exc_info.value.stage == "image_build"
        assert exc_info.value.kind == "timeout"


class TestCreateAndStart:
    @pytest.mark.asyncio
    async def test_maps_port_and_passes_environment(self, runtime, client):
        container = MagicMock(id="c" * 64, short_id="cccccccccc")
        client.containers.create.return_value = container

        handle = await runtime.create_and_start(
            "bot_img", "bot_name", {"BOT_TOKEN": "1:a"}, 3000, 31005
        )

        assert handle == "c" * 64
        args, kwargs = client.containers.create.call_args
        assert args == ("bot_img",)
        assert kwargs["name"] == "bot_name"
        assert kwargs["environment"] == {"BOT_TOKEN": "1:a"}
        assert kwargs["ports"] == {"3000/tcp": 31005}
        container.start.assert_called_once()

    @pytest.mark.asyncio
    async def test_removes_stale_container_with_same_name(self, runtime, client):
        stale = MagicMock(short_id="old")
        client.containers.get.side_effect = None
        client.containers.get.return_value = stale
        client.containers.create.return_value = MagicMock(id="new")

        await runtime.create_and_start("img", "bot_name", {}, 3000, 31001)

        client.containers.get.assert_called_once_with("bot_name")
        stale.remove.assert_called_once_with(force=True)

    @pytest.mark.asyncio
    async def test_create_failure(self, runtime, client):
        client.containers.create.side_effect = APIError("port is already allocated")

        with pytest.raises(ContainerRuntimeError) as exc_info:
            await runtime.create_and_start("img", "bot_name", {}, 3000, 31001)

        assert exc_info.value.stage == "container_start"

    @pytest.mark.asyncio
    async def test_start_failure_removes_created_container(self, runtime, client):
        container = MagicMock(id="c1")
        container.start.side_effect = APIError("bind failed")
        client.containers.create.return_value = container

        with pytest.raises(ContainerRuntimeError):
            await runtime.create_and_start("img", "bot_name", {}, 3000, 31001)

        container.remove.assert_called_once_with(force=True)


class TestStartTimeout:
    """A start that outlasts start_timeout must not leave a container behind."""

    @pytest.fixture
    def live(self, client):
        live: dict[str, MagicMock] = {}

        def create(image, name, **kwargs):
            container = MagicMock(id=f"{name}-id", short_id=name[:10])
            container.start.side_effect = lambda: time.sleep(0.3)
            container.remove.side_effect = lambda force=False: live.pop(name, None)
            live[name] = container
            return container

        def get(name):
            if name not in live:
                raise NotFound("No such container")
            return live[name]

        client.containers.create.side_effect = create
        client.containers.get.side_effect = get
        return live

    @pytest.mark.asyncio
    async def test_late_container_is_removed(self, client, live):
        runtime = DockerRuntime(client=client, start_timeout=0.05, stop_timeout=2)

        with pytest.raises(OperationTimeoutError) as exc_info:
            await runtime.create_and_start("img", "bot_name", {}, 3000, 31001)

        assert exc_info.value.stage == "container_start"
        assert live == {}

    @pytest.mark.asyncio
    async def test_processor_records_nothing(self, client, live, registry, ports):
        runtime = DockerRuntime(client=client, start_timeout=0.05, stop_timeout=2)
        processor = ContainerStartProcessor(runtime=runtime, registry=registry, ports=ports)
        frame = ImageFrame(
            credential=SAMPLE_TOKEN,
            slug="bot_name",
            image_ref="bot_name",
            image_id="sha256:img",
        )

        with pytest.raises(OperationTimeoutError):
            await processor.process(frame, PipelineContext())

        assert live == {}
        assert await registry.list() == []
        assert ports.reserved == frozenset()


class TestStopAndRemove:
    @pytest.mark.asyncio
    async def test_stop_uses_grace_period(self, runtime, client):
        container = MagicMock()
        client.containers.get.side_effect = None
        client.containers.get.return_value = container

        await runtime.stop("c" * 64, timeout=7)

        container.stop.assert_called_once_with(timeout=7)

    @pytest.mark.asyncio
    async def test_stop_missing_container_counts_as_stopped(self, runtime, client):
        await runtime.stop("c" * 64)

        client.containers.get.assert_called_once_with("c" * 64)

    @pytest.mark.asyncio
    async def test_stop_api_error(self, runtime, client):
        container = MagicMock()
        container.stop.side_effect = APIError("daemon unavailable")
        client.containers.get.side_effect = None
        client.containers.get.return_value = container

        with pytest.raises(ContainerRuntimeError) as exc_info:
            await runtime.stop("c" * 64)

        assert exc_info.value.stage == "container_stop"

    @pytest.mark.asyncio
    async def test_remove_existing(self, runtime, client):
        container = MagicMock()
        client.containers.get.side_effect = None
        client.containers.get.return_value = container

        assert await runtime.remove("c1") is True
        container.remove.assert_called_once_with(force=True)

    @pytest.mark.asyncio
    async def test_remove_missing_returns_false(self, runtime):
        assert await runtime.remove("c1") is False

    @pytest.mark.asyncio
    async def test_remove_api_error(self, runtime, client):
        container = MagicMock()
        container.remove.side_effect = APIError("device busy")
        client.containers.get.side_effect = None
        client.containers.get.return_value = container

        with pytest.raises(ContainerRuntimeError) as exc_info:
            await runtime.remove("c1")

        assert exc_info.value.stage == "container_remove"

    @pytest.mark.asyncio
    async def test_remove_image(self, runtime, client):
        assert await runtime.remove_image("bot_img") is True
        client.images.remove.assert_called_once_with("bot_img", force=True)

    @pytest.mark.asyncio
    async def test_remove_missing_image_returns_false(self, runtime, client):
        client.images.remove.side_effect = ImageNotFound("no such image")

        assert await runtime.remove_image("bot_img") is False
