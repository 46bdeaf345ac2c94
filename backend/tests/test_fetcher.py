from pathlib import Path

import pytest
import yt_dlp

from engine.cancellation import CancellationToken
from services.fetcher import MediaFetcher, classify_download_error, normalize_platform_name
from utils.exceptions import CancellationError, DownloadError


@pytest.fixture
def fetcher(tmp_path):
    return MediaFetcher(download_dir=tmp_path)


def fake_download(tmp_path, mock_ytdl, hooks_payload=()):
    """Make extract_info write an mp3 into tmp_path and fire progress hooks."""
    instance = mock_ytdl.return_value

    def extract_info(url, download=False):
        opts = mock_ytdl.call_args[0][0]
        for payload in hooks_payload:
            for hook in opts['progress_hooks']:
                hook(payload)
        prefix = Path(opts['outtmpl']).name.split("_%(title)s")[0]
        (tmp_path / f"{prefix}_Test Video Title.mp3").write_bytes(b"mp3 data")
        instance.prepare_filename.return_value = str(tmp_path / f"{prefix}_Test Video Title.webm")
        return {"title": "Test Video Title", "duration": 120, "extractor_key": "Youtube"}

    instance.extract_info.side_effect = extract_info
    return instance


def test_classify_unsupported_url():
    error = classify_download_error("ERROR: Unsupported URL: https://example.com")
    assert isinstance(error, DownloadError)
    assert error.message == "This website is not supported for video download."


def test_classify_unavailable_and_restricted():
    assert "private or unavailable" in classify_download_error("ERROR: Private video").message
    assert "Age-restricted" in classify_download_error("Sign in to confirm your age").message
    assert "region" in classify_download_error("The uploader has not made this video available in your country").message


def test_classify_passthrough():
    assert classify_download_error("HTTP Error 503").message == "HTTP Error 503"
    assert classify_download_error("   ").message == "Download failed"


def test_normalize_platform_name():
    assert normalize_platform_name("Youtube") == "YouTube"
    assert normalize_platform_name("twitter:spaces") == "Twitter"
    assert normalize_platform_name("bandcamp") == "Bandcamp"
    assert normalize_platform_name(None) is None


def test_get_info(fetcher, mock_ytdl):
    info = fetcher.get_info("https://www.youtube.com/watch?v=test_video_id")

    assert info["title"] == "Test Video Title"
    assert info["duration"] == 120
    assert info["platform"] == "YouTube"
    opts = mock_ytdl.call_args[0][0]
    assert opts["noplaylist"] is True


def test_get_info_maps_ytdlp_errors(fetcher, mock_ytdl):
    mock_ytdl.return_value.extract_info.side_effect = yt_dlp.utils.DownloadError("ERROR: Unsupported URL: x")
    with pytest.raises(DownloadError, match="not supported"):
        fetcher.get_info("https://example.com/x")


def test_download_audio_reports_progress(fetcher, mock_ytdl, tmp_path):
    fake_download(tmp_path, mock_ytdl, hooks_payload=[
        {"status": "downloading", "downloaded_bytes": 25, "total_bytes": 100},
        {"status": "downloading", "downloaded_bytes": 50, "total_bytes_estimate": 100},
        {"status": "finished"},
    ])
    progress = []

    media = fetcher.download_audio("https://youtu.be/x", progress.append)

    assert progress == [0.25, 0.5, 1.0]
    assert media.title == "Test Video Title"
    assert media.local_path.endswith("_Test Video Title.mp3")
    assert media.size_bytes == len(b"mp3 data")
    assert media.metadata["platform"] == "YouTube"
    assert media.metadata["source_url"] == "https://youtu.be/x"


def test_download_audio_cancelled_mid_download(fetcher, mock_ytdl, tmp_path):
    token = CancellationToken()
    token.cancel()
    fake_download(tmp_path, mock_ytdl, hooks_payload=[{"status": "downloading", "downloaded_bytes": 1}])

    with pytest.raises(CancellationError):
        fetcher.download_audio("https://youtu.be/x", None, token)
    assert list(tmp_path.iterdir()) == []


def test_download_error_cleans_partial_files(fetcher, mock_ytdl, tmp_path):
    instance = mock_ytdl.return_value

    def extract_info(url, download=False):
        prefix = Path(mock_ytdl.call_args[0][0]['outtmpl']).name.split("_%(title)s")[0]
        (tmp_path / f"{prefix}_partial.webm.part").write_bytes(b"x")
        raise yt_dlp.utils.DownloadError("ERROR: Private video")

    instance.extract_info.side_effect = extract_info

    with pytest.raises(DownloadError, match="private"):
        fetcher.download_audio("https://youtu.be/x")
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_fetch_runs_in_executor(fetcher, mock_ytdl, tmp_path):
    fake_download(tmp_path, mock_ytdl)
    media = await fetcher.fetch("https://youtu.be/x", lambda p: None, CancellationToken())
    assert media.title == "Test Video Title"
