import enum
import fractions

from ._config import FULL_DOWNLOAD_THRESHOLD, NEGLIGIBLE_COVERAGE_IN_BYTES
from ._exceptions import MissingEpisodeMetadataError


class DownloadVerdict(enum.Enum):
    FULL = "full"
    PARTIAL = "partial"
    NONE = "none"


def classify_download(
    *,
    coverage_in_bytes: int,
    size_in_bytes: int,
    full_download_threshold: float = FULL_DOWNLOAD_THRESHOLD,
    negligible_coverage_in_bytes: int = NEGLIGIBLE_COVERAGE_IN_BYTES,
) -> DownloadVerdict:
    """
    Decide whether the coverage of one episode by one client is a full download, a partial one, or nothing at all.

    Parameters
    ----------
    coverage_in_bytes : int
        The number of distinct bytes of the episode transferred to the client.
    size_in_bytes : int
        The total size of the episode file.
    full_download_threshold : float, default: 0.95
        The fraction of the file at or above which the download counts as full.
    negligible_coverage_in_bytes : int, default: 0
        Coverage at or below this number of bytes is not counted (for example, 2 byte 'bytes=0-1' requests).
    """
    if not 0 < full_download_threshold <= 1:
        raise ValueError(f"The full download threshold must be within (0, 1], received {full_download_threshold}!")
    if size_in_bytes <= 0:
        raise MissingEpisodeMetadataError(f"Cannot classify a download of a file of size {size_in_bytes}!")

    if coverage_in_bytes <= negligible_coverage_in_bytes:
        return DownloadVerdict.NONE

    # Exact comparison so that, for example, 190 out of 200 bytes at 0.95 is never lost to float rounding
    threshold = fractions.Fraction(str(full_download_threshold))
    if coverage_in_bytes * threshold.denominator >= size_in_bytes * threshold.numerator:
        return DownloadVerdict.FULL

    return DownloadVerdict.PARTIAL
