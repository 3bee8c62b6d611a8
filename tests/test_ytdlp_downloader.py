"""Tests for ytaudio.downloaders.ytdlp_downloader"""

import os
from unittest.mock import MagicMock, patch

import pytest
from yt_dlp.utils import DownloadCancelled, DownloadError

from ytaudio.downloaders.ytdlp_downloader import (
    ANONYMOUS_EXTRACTOR_ARGS,
    YtdlpDownloader,
    _cancel_hook,
    flatten_error,
)
from ytaudio.models.audio import AudioFormat, CookieChoice
from ytaudio.services.cancel import CancelToken

URL = "https://example.com/watch?v=abc"


def fake_ytdl(info=None, exc=None, log_errors=()):
    """Build a YoutubeDL replacement; returns (factory, list of option dicts it was built with)"""
    created = []

    def factory(opts):
        created.append(opts)
        ydl = MagicMock()
        ydl.__enter__.return_value = ydl

        def extract_info(url, download=True):
            for line in log_errors:
                opts["logger"].error(line)
            if exc is not None:
                raise exc
            return info

        ydl.extract_info.side_effect = extract_info
        return ydl

    return factory, created


@pytest.fixture
def default_cookie(temp_dir):
    path = temp_dir / "youtube.txt"
    path.write_text("# Netscape HTTP Cookie File\n")
    return path


class TestCookiePrecedence:

    def test_file_wins_over_header(self, default_cookie):
        downloader = YtdlpDownloader(default_cookie_file=default_cookie)
        choice = downloader.resolve_cookies("/tmp/explicit.txt", "SID=abc")
        assert choice == CookieChoice(cookie_file="/tmp/explicit.txt")

    def test_header_used_when_no_file(self, default_cookie):
        downloader = YtdlpDownloader(default_cookie_file=default_cookie)
        choice = downloader.resolve_cookies(None, "SID=abc")
        assert choice == CookieChoice(cookie_header="SID=abc")

    def test_blank_values_are_ignored(self, default_cookie):
        downloader = YtdlpDownloader(default_cookie_file=default_cookie)
        choice = downloader.resolve_cookies("  ", "")
        assert choice == CookieChoice(cookie_file=str(default_cookie))

    def test_default_file_used_when_present(self, default_cookie):
        downloader = YtdlpDownloader(default_cookie_file=default_cookie)
        assert downloader.resolve_cookies().cookie_file == str(default_cookie)

    def test_missing_default_file_means_anonymous(self, temp_dir):
        downloader = YtdlpDownloader(default_cookie_file=temp_dir / "absent.txt")
        assert downloader.resolve_cookies().anonymous


class TestOptions:

    def test_anonymous_uses_android_client_and_no_cookies(self):
        opts = YtdlpDownloader._base_options(CookieChoice())
        assert opts["extractor_args"] == ANONYMOUS_EXTRACTOR_ARGS
        assert "cookiefile" not in opts
        assert "http_headers" not in opts

    def test_cookie_file_disables_impersonation(self):
        opts = YtdlpDownloader._base_options(CookieChoice(cookie_file="/tmp/c.txt"))
        assert opts["cookiefile"] == "/tmp/c.txt"
        assert "extractor_args" not in opts

    def test_cookie_header_sent_as_http_header(self):
        opts = YtdlpDownloader._base_options(CookieChoice(cookie_header="SID=abc"))
        assert opts["http_headers"] == {"Cookie": "SID=abc"}
        assert "extractor_args" not in opts

    @pytest.mark.parametrize("fmt", list(AudioFormat))
    def test_conversion_target_matches_format(self, fmt, temp_dir):
        downloader = YtdlpDownloader(ffmpeg_path="/opt/ffmpeg/bin/ffmpeg")
        opts = downloader.build_download_options(fmt, temp_dir, CookieChoice())

        (pp,) = opts["postprocessors"]
        assert pp["key"] == "FFmpegExtractAudio"
        assert pp["preferredcodec"] == fmt.value
        assert pp["preferredquality"] == "0"

    def test_download_options(self, temp_dir):
        downloader = YtdlpDownloader(ffmpeg_path="/opt/ffmpeg/bin/ffmpeg")
        opts = downloader.build_download_options(AudioFormat.MP3, temp_dir, CookieChoice())

        assert opts["outtmpl"] == os.path.join(
            str(temp_dir), "audio - %(channel,uploader)s - %(title)s.%(ext)s"
        )
        assert opts["restrictfilenames"] is True
        assert opts["nocheckcertificate"] is True
        assert opts["overwrites"] is True
        assert opts["writethumbnail"] is False
        assert opts["ffmpeg_location"] == "/opt/ffmpeg/bin/ffmpeg"
        assert opts["format"] == "bestaudio/best"


class TestProbe:

    @patch("ytaudio.downloaders.ytdlp_downloader.yt_dlp.YoutubeDL")
    def test_probe_success(self, mock_cls):
        factory, created = fake_ytdl(
            info={"title": "Song", "channel": "Band", "webpage_url": "https://example.com/canonical"}
        )
        mock_cls.side_effect = factory

        result = YtdlpDownloader().probe(URL)

        assert result.success
        assert (result.title, result.channel, result.canonical_url) == (
            "Song",
            "Band",
            "https://example.com/canonical",
        )
        assert created[0]["skip_download"] is True

    @patch("ytaudio.downloaders.ytdlp_downloader.yt_dlp.YoutubeDL")
    def test_probe_falls_back_field_by_field(self, mock_cls):
        factory, _ = fake_ytdl(info={"title": None, "uploader": "Uploader"})
        mock_cls.side_effect = factory

        result = YtdlpDownloader().probe(URL)

        assert result.success
        assert result.title == "Unknown Title"
        assert result.channel == "Uploader"
        assert result.canonical_url == URL

    @patch("ytaudio.downloaders.ytdlp_downloader.yt_dlp.YoutubeDL")
    def test_probe_failure_never_raises(self, mock_cls):
        factory, _ = fake_ytdl(exc=DownloadError("ERROR: unreachable"))
        mock_cls.side_effect = factory

        result = YtdlpDownloader().probe(URL)

        assert result.success is False
        assert result.title == "Unknown Title"
        assert result.channel == "Unknown Channel"
        assert result.canonical_url == URL
        assert "unreachable" in result.error

    @patch("ytaudio.downloaders.ytdlp_downloader.yt_dlp.YoutubeDL")
    def test_probe_non_dict_info(self, mock_cls):
        factory, _ = fake_ytdl(info=None)
        mock_cls.side_effect = factory

        assert YtdlpDownloader().probe(URL).success is False


class TestDownload:

    @patch("ytaudio.downloaders.ytdlp_downloader.yt_dlp.YoutubeDL")
    def test_reports_post_processed_path(self, mock_cls, temp_dir):
        final = temp_dir / "audio - Band - Song.mp3"
        factory, created = fake_ytdl(
            info={"requested_downloads": [{"filepath": str(final)}], "filepath": "ignored.webm"}
        )
        mock_cls.side_effect = factory

        outcome = YtdlpDownloader().download(URL, AudioFormat.MP3, temp_dir)

        assert outcome.success
        assert outcome.output_path == final
        assert created[0]["postprocessors"][0]["preferredcodec"] == "mp3"

    @patch("ytaudio.downloaders.ytdlp_downloader.yt_dlp.YoutubeDL")
    def test_failure_joins_collected_error_lines(self, mock_cls, temp_dir):
        factory, _ = fake_ytdl(
            exc=DownloadError("ERROR: second"),
            log_errors=["ERROR: first", "ERROR: second"],
        )
        mock_cls.side_effect = factory

        outcome = YtdlpDownloader().download(URL, AudioFormat.MP3, temp_dir)

        assert outcome.success is False
        assert outcome.output_path is None
        assert outcome.error == os.linesep.join(["ERROR: first", "ERROR: second"])

    @patch("ytaudio.downloaders.ytdlp_downloader.yt_dlp.YoutubeDL")
    def test_failure_without_collected_lines_uses_exception(self, mock_cls, temp_dir):
        factory, _ = fake_ytdl(exc=RuntimeError("launch failed"))
        mock_cls.side_effect = factory

        outcome = YtdlpDownloader().download(URL, AudioFormat.BEST, temp_dir)

        assert outcome.error == "launch failed"

    @patch("ytaudio.downloaders.ytdlp_downloader.yt_dlp.YoutubeDL")
    def test_empty_error_falls_back_to_generic_message(self, mock_cls, temp_dir):
        factory, _ = fake_ytdl(exc=RuntimeError(""))
        mock_cls.side_effect = factory

        outcome = YtdlpDownloader().download(URL, AudioFormat.BEST, temp_dir)

        assert outcome.error == "yt-dlp failed"

    @patch("ytaudio.downloaders.ytdlp_downloader.yt_dlp.YoutubeDL")
    def test_cancelled_download(self, mock_cls, temp_dir):
        factory, _ = fake_ytdl(exc=DownloadCancelled("client disconnected"))
        mock_cls.side_effect = factory

        outcome = YtdlpDownloader().download(URL, AudioFormat.MP3, temp_dir)

        assert outcome.success is False
        assert outcome.error == "Download cancelled"


class TestFlattenError:

    def test_none(self):
        assert flatten_error(None) is None

    def test_single_string_is_unchanged(self):
        assert flatten_error("ERROR: only line") == "ERROR: only line"

    def test_sequence_joined_with_line_separator(self):
        assert flatten_error(["a", "b", "c"]) == os.linesep.join(["a", "b", "c"])

    def test_bytes_are_decoded(self):
        assert flatten_error(b"ERROR: caf\xc3\xa9") == "ERROR: caf\u00e9"
        assert flatten_error(bytearray(b"ERROR: x")) == "ERROR: x"

    def test_generator(self):
        assert flatten_error(line for line in ("x", "y")) == f"x{os.linesep}y"

    def test_other_objects_use_str(self):
        assert flatten_error(42) == "42"


def test_cancel_hook_raises_only_after_cancel():
    token = CancelToken()
    hook = _cancel_hook(token)

    hook({"status": "downloading"})

    token.cancel("client disconnected")
    with pytest.raises(DownloadCancelled):
        hook({"status": "downloading"})
