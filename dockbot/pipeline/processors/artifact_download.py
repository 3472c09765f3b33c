"""
Artifact Download Processor for dockbot.

Fetches the submitted source file from the transport and persists it
under a location derived from the credential.
"""
from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from dockbot.deploy.errors import OperationTimeoutError, TransferError, deployment_slug

from ..processor import Processor

if TYPE_CHECKING:
    from ..context import PipelineContext
    from ..frames import Frame

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class ArtifactDownloadProcessor(Processor):
    """
    Streams a document from the transport to local storage.

    Input: DocumentInputFrame with credential set
    Output: ArtifactFrame pointing at the persisted file

    Bytes are written to "<name>.part" as they arrive; the file is
    flushed, closed and renamed to its final name only after the whole
    stream has been received. The partial file is removed on failure.

    Layout:
        <artifact_dir>/<slug>/<artifact_filename>
    """

    def __init__(
        self,
        artifact_dir: Path | str,
        artifact_filename: str = "bot.py",
        timeout_seconds: float = 60.0,
        max_bytes: int = 5 * 1024 * 1024,
        client: httpx.AsyncClient | None = None,
    ):
        self._artifact_dir = Path(artifact_dir)
        self._artifact_filename = artifact_filename
        self._timeout = timeout_seconds
        self._max_bytes = max_bytes
        self._client = client

    @property
    def name(self) -> str:
        return "artifact_download"

    def artifact_path(self, credential: str) -> Path:
        """Deterministic location of the artifact for a credential."""
        return self._artifact_dir / deployment_slug(credential) / self._artifact_filename

    async def process(
        self,
        frame: "Frame",
        ctx: "PipelineContext",
    ) -> "Frame | None":
        from ..frames import ArtifactFrame, DocumentInputFrame
        from ..transports import TransportNotFoundError, get_transport

        if not isinstance(frame, DocumentInputFrame):
            return frame

        if not frame.credential:
            raise ValueError("DocumentInputFrame has no credential bound")

        if frame.file_size and frame.file_size > self._max_bytes:
            raise TransferError(
                f"File is {frame.file_size} bytes, limit is {self._max_bytes}",
                credential=frame.credential,
            )

        target = self.artifact_path(frame.credential)
        partial = target.with_name(target.name + ".part")

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TransferError(
                f"Cannot create artifact directory {target.parent}: {e}",
                credential=frame.credential,
                reason="storage",
            ) from e

        try:
            transport = get_transport(frame.channel_id or ctx.channel_id)
        except TransportNotFoundError as e:
            raise TransferError(str(e), credential=frame.credential) from e

        try:
            url = await asyncio.wait_for(
                transport.resolve_file_url(frame.file_id), timeout=self._timeout
            )
            logger.info(f"Downloading artifact {frame.file_name or frame.file_id} to {target}")
            size = await asyncio.wait_for(
                self._stream_to_file(url, partial, frame.credential),
                timeout=self._timeout,
            )
            os.replace(partial, target)
        except asyncio.TimeoutError:
            self._discard(partial)
            raise OperationTimeoutError(
                f"Artifact transfer exceeded {self._timeout}s",
                credential=frame.credential,
                stage=self.name,
            ) from None
        except TransferError as e:
            self._discard(partial)
            e.credential = e.credential or frame.credential
            raise
        except OSError as e:
            self._discard(partial)
            raise TransferError(
                f"Cannot finalize artifact {target}: {e}",
                credential=frame.credential,
                reason="storage",
            ) from e

        logger.info(f"Downloaded {size} bytes to {target}")

        return ArtifactFrame(
            path=target,
            size_bytes=size,
            credential=frame.credential,
            slug=deployment_slug(frame.credential),
            conversation_id=frame.conversation_id,
            source_frame_id=frame.id,
        )

    async def _stream_to_file(self, url: str, partial: Path, credential: str) -> int:
        """Stream url into partial, returning bytes written."""
        if self._client is not None:
            return await self._stream_with(self._client, url, partial, credential)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await self._stream_with(client, url, partial, credential)

    async def _stream_with(
        self,
        client: httpx.AsyncClient,
        url: str,
        partial: Path,
        credential: str,
    ) -> int:
        size = 0
        try:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                with open(partial, "wb") as fh:
                    async for chunk in response.aiter_bytes(CHUNK_SIZE):
                        size += len(chunk)
                        if size > self._max_bytes:
                            raise TransferError(
                                f"Artifact exceeds {self._max_bytes} bytes",
                                credential=credential,
                            )
                        fh.write(chunk)
                    fh.flush()
                    os.fsync(fh.fileno())
        except httpx.HTTPError as e:
            raise TransferError(
                f"File download failed: {type(e).__name__}: {e}",
                credential=credential,
            ) from e
        except OSError as e:
            raise TransferError(
                f"Cannot write artifact {partial}: {e}",
                credential=credential,
                reason="storage",
            ) from e

        if size == 0:
            raise TransferError("Downloaded file is empty", credential=credential)
        return size

    def _discard(self, partial: Path) -> None:
        try:
            partial.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove partial artifact {partial}: {e}")
