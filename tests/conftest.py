"""Test configuration and fixtures"""

import asyncio
import tempfile
import time
from pathlib import Path
from typing import List, Optional
from unittest.mock import Mock

import pytest

from ytaudio.downloaders.base import Downloader
from ytaudio.models.audio import DownloadOutcome, ProbeResult, RemuxResult
from ytaudio.services.audio_service import AudioService
from ytaudio.services.workspace import Workspace
from ytaudio.transcoders.base import Remuxer

SAMPLE_URL = "https://example.com/watch?v=abc"
SAMPLE_NAME = "audio - Unknown Channel - Unknown Title.mp3"


class FakeDownloader(Downloader):
    """Writes a small file into the job directory instead of calling yt-dlp"""

    def __init__(
        self,
        probe_result: Optional[ProbeResult] = None,
        filename: str = SAMPLE_NAME,
        content: bytes = b"ID3-fake-audio-payload",
        report_actual_path: bool = True,
        write_file: bool = True,
        error: Optional[str] = None,
        block_until_cancelled: bool = False,
    ):
        self.probe_result = probe_result
        self.filename = filename
        self.content = content
        self.report_actual_path = report_actual_path
        self.write_file = write_file
        self.error = error
        self.block_until_cancelled = block_until_cancelled
        self.probe_calls: List[tuple] = []
        self.download_calls: List[dict] = []

    def probe(self, url, cookie_file=None, cookie_header=None):
        self.probe_calls.append((url, cookie_file, cookie_header))
        if self.probe_result is not None:
            return self.probe_result
        return ProbeResult.placeholder(url, "metadata service unreachable")

    def download(self, url, audio_format, output_dir, cookie_file=None, cookie_header=None, cancel=None):
        self.download_calls.append(
            {"url": url, "format": audio_format, "output_dir": Path(output_dir), "cancel": cancel}
        )
        if self.block_until_cancelled:
            while cancel is not None and not cancel.cancelled:
                time.sleep(0.01)
            return DownloadOutcome(success=False, error="Download cancelled")
        if self.error:
            return DownloadOutcome(success=False, error=self.error)

        path = Path(output_dir) / self.filename
        if self.write_file:
            path.write_bytes(self.content)
        reported = path if self.report_actual_path else Path(output_dir) / "renamed-by-downloader.mp3"
        return DownloadOutcome(success=True, output_path=reported)


class FakeRemuxer(Remuxer):
    """Records the tags it was asked to write"""

    def __init__(self, error: Optional[str] = None, hang: bool = False):
        self.error = error
        self.hang = hang
        self.calls: List[tuple] = []

    async def remux(self, input_path, title, channel, url, cancel=None):
        self.calls.append((input_path, title, channel, url))
        if self.hang:
            await asyncio.sleep(3600)
        if self.error:
            return RemuxResult(success=False, error=self.error)
        return RemuxResult(success=True, new_path=input_path)


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def workspace(temp_dir):
    return Workspace(temp_dir / "yt-audio-api")


@pytest.fixture
def ready_binaries():
    binaries = Mock()
    binaries.ffmpeg_path = "ffmpeg"
    binaries.validate.return_value = (True, None)
    return binaries


@pytest.fixture
def fake_downloader():
    return FakeDownloader()


@pytest.fixture
def fake_remuxer():
    return FakeRemuxer()


@pytest.fixture
def service(fake_downloader, fake_remuxer, workspace, ready_binaries):
    return AudioService(
        downloader=fake_downloader,
        remuxer=fake_remuxer,
        workspace=workspace,
        binaries=ready_binaries,
        download_timeout=5,
    )
