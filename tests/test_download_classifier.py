import pytest

import podcast_download_counter
from podcast_download_counter import DownloadVerdict


@pytest.mark.parametrize(
    "coverage_in_bytes, expected_verdict",
    [
        (0, DownloadVerdict.NONE),
        (1, DownloadVerdict.PARTIAL),
        (50, DownloadVerdict.PARTIAL),
        (189, DownloadVerdict.PARTIAL),
        (190, DownloadVerdict.FULL),
        (200, DownloadVerdict.FULL),
    ],
)
def test_classify_download(coverage_in_bytes: int, expected_verdict: DownloadVerdict) -> None:
    verdict = podcast_download_counter.classify_download(coverage_in_bytes=coverage_in_bytes, size_in_bytes=200)

    assert verdict is expected_verdict


def test_classify_download_custom_threshold() -> None:
    assert (
        podcast_download_counter.classify_download(
            coverage_in_bytes=190, size_in_bytes=200, full_download_threshold=1.0
        )
        is DownloadVerdict.PARTIAL
    )
    assert (
        podcast_download_counter.classify_download(
            coverage_in_bytes=100, size_in_bytes=200, full_download_threshold=0.5
        )
        is DownloadVerdict.FULL
    )


def test_classify_download_negligible_coverage() -> None:
    """Players probing with 'bytes=0-1' can be excluded from the counts."""
    assert (
        podcast_download_counter.classify_download(
            coverage_in_bytes=2, size_in_bytes=200, negligible_coverage_in_bytes=2
        )
        is DownloadVerdict.NONE
    )
    assert (
        podcast_download_counter.classify_download(
            coverage_in_bytes=3, size_in_bytes=200, negligible_coverage_in_bytes=2
        )
        is DownloadVerdict.PARTIAL
    )


def test_classify_download_invalid_arguments() -> None:
    with pytest.raises(podcast_download_counter.MissingEpisodeMetadataError):
        podcast_download_counter.classify_download(coverage_in_bytes=10, size_in_bytes=0)
    with pytest.raises(ValueError):
        podcast_download_counter.classify_download(
            coverage_in_bytes=10, size_in_bytes=200, full_download_threshold=1.5
        )
    with pytest.raises(ValueError):
        podcast_download_counter.classify_download(coverage_in_bytes=10, size_in_bytes=200, full_download_threshold=0)
