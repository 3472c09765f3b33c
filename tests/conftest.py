"""
Pytest configuration and fixtures for dockbot tests.
"""

import asyncio
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

# Add the repository root to path for imports
# This allows `from dockbot.pipeline import ...` to work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from dockbot.config import AppSettings
from dockbot.deploy import (
    ConversationStore,
    DeploymentLifecycle,
    DeploymentRegistry,
    KeyedLock,
    PortAllocator,
)
from dockbot.deploy.dispatcher import CommandDispatcher
from dockbot.pipeline import SendResult, register_transport, reset_transport_registry
from dockbot.pipeline.builder import create_deploy_pipeline


SAMPLE_TOKEN = "123456789:AAFakeTokenForTestsOnly_abcdefghij"
OTHER_TOKEN = "987654321:BBAnotherFakeTokenForTests_klmnopq"
SAMPLE_CODE = b"print('hello from bot')\n"


class FakeRuntime:
    """
    In-memory ContainerRuntime.

    Records every call, and tracks how many builds per tag run at once.
    Images are keyed by id; rebuilding a tag moves it to the new image
    and leaves the old one untagged, as Docker does.
    """

    def __init__(self, build_delay: float = 0.0):
        self.build_delay = build_delay
        self.build_error: Exception | None = None
        self.start_error: Exception | None = None
        self.stop_error: Exception | None = None
        self.calls: list[tuple] = []
        self.images: dict[str, str] = {}
        self.containers: dict[str, dict] = {}
        self.active_builds: dict[str, int] = {}
        self.max_concurrent_builds = 0
        self._counter = 0
        self._image_counter = 0

    @property
    def tags(self) -> set[str]:
        return {tag for tag in self.images.values() if tag}

    def add_image(self, tag: str) -> str:
        self._image_counter += 1
        image_id = f"sha256:{self._image_counter:04d}{tag}"
        for existing, existing_tag in self.images.items():
            if existing_tag == tag:
                self.images[existing] = ""
        self.images[image_id] = tag
        return image_id

    async def build_image(self, context_dir, tag):
        self.calls.append(("build_image", str(context_dir), tag))
        self.active_builds[tag] = self.active_builds.get(tag, 0) + 1
        self.max_concurrent_builds = max(self.max_concurrent_builds, self.active_builds[tag])
        try:
            if self.build_delay:
                await asyncio.sleep(self.build_delay)
            if self.build_error is not None:
                raise self.build_error
            return self.add_image(tag)
        finally:
            self.active_builds[tag] -= 1

    async def create_and_start(self, image, name, env, container_port, host_port):
        self.calls.append(("create_and_start", image, name, host_port))
        if self.start_error is not None:
            raise self.start_error
        self._counter += 1
        handle = f"container{self._counter:03d}".ljust(64, "0")
        self.containers[handle] = {
            "image": image,
            "name": name,
            "env": dict(env),
            "ports": {f"{container_port}/tcp": host_port},
            "running": True,
        }
        return handle

    async def stop(self, handle, timeout=10):
        self.calls.append(("stop", handle))
        if self.stop_error is not None:
            raise self.stop_error
        if handle in self.containers:
            self.containers[handle]["running"] = False

    async def remove(self, handle, force=True):
        self.calls.append(("remove", handle))
        return self.containers.pop(handle, None) is not None

    async def remove_image(self, image_ref):
        self.calls.append(("remove_image", image_ref))
        for image_id, tag in list(self.images.items()):
            if image_ref in (image_id, tag):
                del self.images[image_id]
                return True
        return False

    def called(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]


class FakeTransport:
    """Transport that records sent messages and serves known files."""

    def __init__(self, channel_id: str = "telegram"):
        self._channel_id = channel_id
        self.sent: list[tuple[str, str]] = []
        self.files: dict[str, str] = {}

    @property
    def channel_id(self) -> str:
        return self._channel_id

    async def normalize_request(self, request, payload=None):
        return None

    async def send_message(self, recipient: str, message: str) -> SendResult:
        self.sent.append((recipient, message))
        return SendResult(success=True, message_id=str(len(self.sent)))

    async def resolve_file_url(self, file_id: str) -> str:
        return self.files.get(file_id, f"https://files.example/{file_id}")

    @property
    def last_message(self) -> str:
        return self.sent[-1][1] if self.sent else ""


def make_download_client(content: bytes = SAMPLE_CODE, status_code: int = 200) -> httpx.AsyncClient:
    """HTTP client whose every GET returns content."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, content=content)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture(autouse=True)
def clean_transport_registry():
    """Each test starts with an empty transport registry."""
    reset_transport_registry()
    yield
    reset_transport_registry()


@pytest.fixture
def sample_token():
    return SAMPLE_TOKEN


@pytest.fixture
def fake_runtime():
    return FakeRuntime()


@pytest.fixture
def fake_transport():
    transport = FakeTransport()
    register_transport(transport)
    return transport


@pytest.fixture
def ports():
    return PortAllocator(31001, 31010, probe=False)


@pytest.fixture
def registry():
    return DeploymentRegistry()


@pytest.fixture
def settings(tmp_path):
    return AppSettings(artifact_dir=str(tmp_path / "artifacts"), pip_packages=[])


@pytest.fixture
def validator():
    mock = MagicMock()
    mock.validate = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def stack(settings, fake_runtime, fake_transport, ports, registry, validator):
    """
    A fully wired dispatcher over fakes.

    The deploy pipeline is the real one; only Docker, Telegram and the
    token check are replaced.
    """
    credential_locks = KeyedLock("credential", timeout=5.0, mask_keys=True)
    conversation_locks = KeyedLock("conversation", timeout=5.0)
    conversations = ConversationStore()
    download_client = make_download_client()

    pipeline = create_deploy_pipeline(
        settings,
        runtime=fake_runtime,
        registry=registry,
        ports=ports,
        download_client=download_client,
    )
    lifecycle = DeploymentLifecycle(
        registry=registry,
        runtime=fake_runtime,
        ports=ports,
        credential_locks=credential_locks,
    )
    dispatcher = CommandDispatcher(
        conversations=conversations,
        validator=validator,
        deploy_pipeline=pipeline,
        lifecycle=lifecycle,
        credential_locks=credential_locks,
        conversation_locks=conversation_locks,
        accepted_mime_types=settings.accepted_mime_types,
    )

    return SimpleNamespace(
        dispatcher=dispatcher,
        conversations=conversations,
        registry=registry,
        runtime=fake_runtime,
        transport=fake_transport,
        ports=ports,
        lifecycle=lifecycle,
        credential_locks=credential_locks,
        validator=validator,
        settings=settings,
    )
