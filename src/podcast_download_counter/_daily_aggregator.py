import pandas

from ._byte_accumulator import ClientEpisodeCoverage, ClientEpisodeDateKey
from ._config import FULL_DOWNLOAD_THRESHOLD, NEGLIGIBLE_COVERAGE_IN_BYTES
from ._download_classifier import DownloadVerdict, classify_download

DAILY_EPISODE_COUNTER_COLUMNS = ["episode_id", "date", "full_count", "partial_count"]


def aggregate_daily_episode_counters(
    *,
    client_episode_coverages: dict[ClientEpisodeDateKey, ClientEpisodeCoverage],
    episode_size_by_id: dict[str, int],
    full_download_threshold: float = FULL_DOWNLOAD_THRESHOLD,
    negligible_coverage_in_bytes: int = NEGLIGIBLE_COVERAGE_IN_BYTES,
) -> pandas.DataFrame:
    """
    Collapse the per-client coverages into the number of full and partial downloads per episode and date.

    The coverages are consumed: each key (and with it the client IP address) is removed from the mapping as soon as
    it is classified, so nothing identifying a client is left once this returns.

    Every (episode, date) touched by at least one client appears in the result, even if none of its clients downloaded
    enough to count.

    Returns
    -------
    pandas.DataFrame
        One row per (episode, date), with columns 'episode_id', 'date' (ISO format), 'full_count' and 'partial_count'.
    """
    verdicts = []
    while len(client_episode_coverages) != 0:
        (_, episode_id, date), coverage = client_episode_coverages.popitem()

        size_in_bytes = episode_size_by_id[episode_id]
        verdict = classify_download(
            coverage_in_bytes=coverage.get_downloaded_bytes(size_in_bytes=size_in_bytes),
            size_in_bytes=size_in_bytes,
            full_download_threshold=full_download_threshold,
            negligible_coverage_in_bytes=negligible_coverage_in_bytes,
        )
        is_full = verdict is DownloadVerdict.FULL
        is_partial = verdict is DownloadVerdict.PARTIAL
        verdicts.append((episode_id, date.isoformat(), is_full, is_partial))

    if len(verdicts) == 0:
        return _get_empty_daily_episode_counters()

    verdicts_data_frame = pandas.DataFrame(data=verdicts, columns=DAILY_EPISODE_COUNTER_COLUMNS)
    daily_episode_counters = verdicts_data_frame.groupby(["episode_id", "date"], as_index=False)[
        ["full_count", "partial_count"]
    ].sum()
    daily_episode_counters = daily_episode_counters.astype({"full_count": "int64", "partial_count": "int64"})
    daily_episode_counters.index = range(len(daily_episode_counters))

    return daily_episode_counters


def _get_empty_daily_episode_counters() -> pandas.DataFrame:
    return pandas.DataFrame(columns=DAILY_EPISODE_COUNTER_COLUMNS).astype(
        {"episode_id": str, "date": str, "full_count": "int64", "partial_count": "int64"}
    )
