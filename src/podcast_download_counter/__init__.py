"""
Podcast download counter
========================

Anonymous daily download counts of podcast episodes from web server access logs.

Each listener (client IP address) is credited with the distinct bytes of an episode it actually received on a given
day, merging the many overlapping range requests streaming players make. Listeners who received nearly the whole file
count as a full download, everyone else who received anything as a partial one.

Only the resulting counters per episode and date are ever stored; IP addresses, timestamps and user agents are
discarded as soon as a run has classified them.
"""

from ._config import PODCAST_DOWNLOAD_COUNTER_BASE_FOLDER_PATH, FULL_DOWNLOAD_THRESHOLD
from ._globals import ACCESS_LOG_FORMAT_VERSION, RequestRecord
from ._exceptions import AccessLogLineParseError, CorruptStoreError, MissingEpisodeMetadataError, StoreWriteError
from ._buffered_text_reader import BufferedTextReader
from ._access_log_line_parser import parse_access_log_line
from ._episode_resolver import EpisodeAsset, EpisodeResolver, load_episode_assets, find_episode_assets_in_folder
from ._byte_accumulator import ClientEpisodeCoverage, accumulate_request_record, merge_coverages
from ._download_classifier import DownloadVerdict, classify_download
from ._daily_aggregator import aggregate_daily_episode_counters
from ._aggregate_store import (
    write_daily_episode_counters,
    read_daily_episode_counters,
    summarize_full_downloads_by_episode,
)
from ._access_log_file_counter import AccessLogShard, count_downloads_in_access_log
from ._podcast_download_counter import DownloadCountingReport, count_all_podcast_downloads

__all__ = [
    "PODCAST_DOWNLOAD_COUNTER_BASE_FOLDER_PATH",
    "FULL_DOWNLOAD_THRESHOLD",
    "ACCESS_LOG_FORMAT_VERSION",
    "RequestRecord",
    "AccessLogLineParseError",
    "MissingEpisodeMetadataError",
    "CorruptStoreError",
    "StoreWriteError",
    "BufferedTextReader",
    "parse_access_log_line",
    "EpisodeAsset",
    "EpisodeResolver",
    "load_episode_assets",
    "find_episode_assets_in_folder",
    "ClientEpisodeCoverage",
    "accumulate_request_record",
    "merge_coverages",
    "DownloadVerdict",
    "classify_download",
    "aggregate_daily_episode_counters",
    "write_daily_episode_counters",
    "read_daily_episode_counters",
    "summarize_full_downloads_by_episode",
    "AccessLogShard",
    "count_downloads_in_access_log",
    "DownloadCountingReport",
    "count_all_podcast_downloads",
]
