"""Primary functions for counting the podcast downloads in a batch of access log files."""

import collections
import datetime
import os
import pathlib
import traceback
from concurrent.futures import ProcessPoolExecutor, as_completed

import tqdm
from pydantic import BaseModel, DirectoryPath, Field, FilePath, validate_call

from ._access_log_file_counter import AccessLogShard, _get_empty_access_log_shard, count_downloads_in_access_log
from ._aggregate_store import write_daily_episode_counters
from ._byte_accumulator import ClientEpisodeCoverage, ClientEpisodeDateKey, merge_coverages
from ._config import ACCESS_LOG_FILE_PATTERN, FULL_DOWNLOAD_THRESHOLD, NEGLIGIBLE_COVERAGE_IN_BYTES
from ._daily_aggregator import aggregate_daily_episode_counters
from ._episode_resolver import EpisodeAsset, EpisodeResolver
from ._error_collection import _collect_error


class DownloadCountingReport(BaseModel):
    """What a run read, what it skipped, and what it wrote."""

    number_of_files: int = 0
    number_of_lines: int = 0
    number_of_malformed_lines: int = 0
    number_of_excluded_ip_lines: int = 0
    number_of_unresolved_lines: int = 0
    number_of_missing_metadata_lines: int = 0
    number_of_unclosed_date_lines: int = 0
    number_of_early_date_lines: int = 0
    skipped_earliest_date: datetime.date | None = None
    episode_ids_missing_metadata: list[str] = []
    number_of_counters_written: int = 0


@validate_call
def count_all_podcast_downloads(
    *,
    store_file_path: pathlib.Path,
    episode_assets: list[EpisodeAsset],
    access_logs_folder_path: DirectoryPath | None = None,
    access_log_file_paths: list[FilePath] | None = None,
    access_log_file_pattern: str = ACCESS_LOG_FILE_PATTERN,
    full_download_threshold: float = Field(gt=0.0, le=1.0, default=FULL_DOWNLOAD_THRESHOLD),
    negligible_coverage_in_bytes: int = Field(ge=0, default=NEGLIGIBLE_COVERAGE_IN_BYTES),
    latest_closed_date: datetime.date | None = None,
    earliest_closed_date: datetime.date | None = None,
    excluded_ips: collections.defaultdict[str, bool] | None = None,
    maximum_number_of_workers: int = Field(ge=1, default=1),
    maximum_buffer_size_in_bytes: int = 4 * 10**9,
    maximum_write_attempts: int = Field(ge=1, default=3),
) -> DownloadCountingReport:
    """
    Count the full and partial downloads of each episode per day in a batch of access logs and store the counters.

    Every date from the earliest to the latest closed date that appears in the logs is counted from scratch, and its
    counters replace whatever was stored for it before. The run must therefore be given every log file that covers
    those dates. Running again over the same files stores the same counters.

    Rotated logs are usually deleted after a fixed number of days, so the earliest date found in a batch has
    typically lost its first hours already. Unless `earliest_closed_date` is given, that date is skipped (and reported)
    rather than overwriting its stored counters with smaller ones.

    Nothing is written until all files have been read, so an interrupted run leaves the store as it was.

    Parameters
    ----------
    store_file_path : file path
        The path to the store of daily counters.
    episode_assets : list of EpisodeAsset
        The episodes to count.
    access_logs_folder_path : folder path, optional
        A folder searched recursively for access log files matching `access_log_file_pattern`.
    access_log_file_paths : list of file paths, optional
        Explicit access log files to read, in addition to any found in `access_logs_folder_path`.
    access_log_file_pattern : str, default: "access.log*"
        The glob pattern of access log file names, including rotated and compressed ones.
    full_download_threshold : float, default: 0.95
        The fraction of an episode at or above which a client's download counts as full.
    negligible_coverage_in_bytes : int, default: 0
        Clients that received at most this many distinct bytes of an episode are not counted.
    latest_closed_date : datetime.date, optional
        The last (UTC) date whose logs are complete. Defaults to yesterday.
    earliest_closed_date : datetime.date, optional
        The first (UTC) date whose logs are complete. Defaults to the day after the earliest date found in the logs.
    excluded_ips : collections.defaultdict(bool), optional
        A lookup table whose keys are IP addresses to exclude from counting.
    maximum_number_of_workers : int, default: 1
        The maximum number of workers to distribute files across.
    maximum_buffer_size_in_bytes : int, default: 4 GB
        The theoretical maximum amount of RAM (in bytes) to use on each buffer iteration when reading from the
        source text files.

        Actual total RAM usage will be higher due to overhead and caching.

        Automatically splits this total amount over the maximum number of workers if `maximum_number_of_workers` is
        greater than one.
    maximum_write_attempts : int, default: 3
        How many times to attempt the final write to the store.

    Raises
    ------
    ValueError
        If the earliest closed date is after the latest one.
    FileNotFoundError
        If no access log files were found.
    StoreWriteError
        If the counters could not be written to the store.
    """
    excluded_ips = excluded_ips or collections.defaultdict(bool)
    latest_closed_date = latest_closed_date or (
        datetime.datetime.now(tz=datetime.timezone.utc).date() - datetime.timedelta(days=1)
    )
    if earliest_closed_date is not None and earliest_closed_date > latest_closed_date:
        message = (
            f"The earliest closed date ({earliest_closed_date}) must not be after "
            f"the latest closed date ({latest_closed_date})!"
        )
        raise ValueError(message)

    all_access_log_file_paths = set(access_log_file_paths or [])
    if access_logs_folder_path is not None:
        all_access_log_file_paths.update(
            access_log_file_path
            for access_log_file_path in access_logs_folder_path.rglob(pattern=access_log_file_pattern)
            if access_log_file_path.is_file()
        )
    all_access_log_file_paths = sorted(all_access_log_file_paths)
    if len(all_access_log_file_paths) == 0:
        raise FileNotFoundError(
            f"No access log files matching '{access_log_file_pattern}' were found in '{access_logs_folder_path}'!"
        )

    episode_resolver = EpisodeResolver(episode_assets=episode_assets)

    reduced_access_log_shard = _get_empty_access_log_shard()
    if maximum_number_of_workers == 1:
        for access_log_file_path in tqdm.tqdm(
            iterable=all_access_log_file_paths,
            total=len(all_access_log_file_paths),
            desc="Counting downloads in access logs...",
            position=0,
            leave=True,
            smoothing=0,
        ):
            access_log_shard = count_downloads_in_access_log(
                access_log_file_path=access_log_file_path,
                episode_resolver=episode_resolver,
                latest_closed_date=latest_closed_date,
                earliest_closed_date=earliest_closed_date,
                excluded_ips=excluded_ips,
                maximum_buffer_size_in_bytes=maximum_buffer_size_in_bytes,
                line_buffer_tqdm_kwargs=dict(position=1, leave=False),
            )
            reduced_access_log_shard = _reduce_access_log_shard(
                access_log_shard=access_log_shard, reduced_access_log_shard=reduced_access_log_shard
            )
    else:
        maximum_buffer_size_in_bytes_per_worker = maximum_buffer_size_in_bytes // maximum_number_of_workers

        futures = []
        with ProcessPoolExecutor(max_workers=maximum_number_of_workers) as executor:
            for access_log_file_path in all_access_log_file_paths:
                futures.append(
                    executor.submit(
                        _multi_worker_count_downloads_in_access_log,
                        access_log_file_path=access_log_file_path,
                        episode_resolver=episode_resolver,
                        latest_closed_date=latest_closed_date,
                        earliest_closed_date=earliest_closed_date,
                        excluded_ips=excluded_ips,
                        maximum_number_of_workers=maximum_number_of_workers,
                        maximum_buffer_size_in_bytes=maximum_buffer_size_in_bytes_per_worker,
                    ),
                )

            progress_bar_iterable = tqdm.tqdm(
                iterable=as_completed(futures),
                total=len(futures),
                desc=f"Counting downloads in access logs using {maximum_number_of_workers} workers...",
                position=0,
                leave=True,
                mininterval=3.0,
                smoothing=0,
            )
            # Shards are only ever reduced here, on the main process
            for future in progress_bar_iterable:
                reduced_access_log_shard = _reduce_access_log_shard(
                    access_log_shard=future.result(), reduced_access_log_shard=reduced_access_log_shard
                )

    client_episode_coverages = reduced_access_log_shard.client_episode_coverages
    line_counts = reduced_access_log_shard.line_counts

    skipped_earliest_date = None
    earliest_line_date = reduced_access_log_shard.earliest_line_date
    if earliest_closed_date is None and earliest_line_date is not None and earliest_line_date <= latest_closed_date:
        skipped_earliest_date = earliest_line_date
        _drop_date(client_episode_coverages=client_episode_coverages, date=skipped_earliest_date)
        line_counts["number_of_early_date_lines"] += reduced_access_log_shard.accumulated_line_counts_by_date[
            skipped_earliest_date
        ]

    episode_size_by_id = {
        episode_asset.episode_id: episode_asset.size_in_bytes for episode_asset in episode_resolver.episode_assets
    }
    daily_episode_counters = aggregate_daily_episode_counters(
        client_episode_coverages=client_episode_coverages,
        episode_size_by_id=episode_size_by_id,
        full_download_threshold=full_download_threshold,
        negligible_coverage_in_bytes=negligible_coverage_in_bytes,
    )

    if len(daily_episode_counters) != 0:
        write_daily_episode_counters(
            daily_episode_counters=daily_episode_counters,
            store_file_path=store_file_path,
            maximum_write_attempts=maximum_write_attempts,
        )

    download_counting_report = DownloadCountingReport(
        number_of_files=len(all_access_log_file_paths),
        skipped_earliest_date=skipped_earliest_date,
        episode_ids_missing_metadata=sorted(reduced_access_log_shard.episode_ids_missing_metadata),
        number_of_counters_written=len(daily_episode_counters),
        **line_counts,
    )

    return download_counting_report


def _reduce_access_log_shard(
    *, access_log_shard: AccessLogShard, reduced_access_log_shard: AccessLogShard
) -> AccessLogShard:
    merge_coverages(
        client_episode_coverages=reduced_access_log_shard.client_episode_coverages,
        other_client_episode_coverages=access_log_shard.client_episode_coverages,
    )
    reduced_access_log_shard.line_counts.update(access_log_shard.line_counts)
    reduced_access_log_shard.episode_ids_missing_metadata.update(access_log_shard.episode_ids_missing_metadata)
    reduced_access_log_shard.accumulated_line_counts_by_date.update(access_log_shard.accumulated_line_counts_by_date)

    earliest_line_dates = [
        date
        for date in (reduced_access_log_shard.earliest_line_date, access_log_shard.earliest_line_date)
        if date is not None
    ]

    return reduced_access_log_shard._replace(earliest_line_date=min(earliest_line_dates, default=None))


def _drop_date(
    *, client_episode_coverages: dict[ClientEpisodeDateKey, ClientEpisodeCoverage], date: datetime.date
) -> None:
    for key in [key for key in client_episode_coverages if key[2] == date]:
        del client_episode_coverages[key]


# Function cannot be covered because the line calls occur on subprocesses
# pragma: no cover
def _multi_worker_count_downloads_in_access_log(
    *,
    access_log_file_path: pathlib.Path,
    episode_resolver: EpisodeResolver,
    latest_closed_date: datetime.date,
    earliest_closed_date: datetime.date | None,
    excluded_ips: collections.defaultdict[str, bool],
    maximum_number_of_workers: int,
    maximum_buffer_size_in_bytes: int,
) -> AccessLogShard:
    """
    A mostly pass-through function to calculate the worker index on the worker and position its progress bar.

    Also dumps error stack (which is only typically seen by the worker and not sent back to the main stdout pipe)
    to a log file before re-raising, since a file that could not be read would otherwise silently lower the counts.
    """
    worker_index = os.getpid() % maximum_number_of_workers
    try:
        line_buffer_tqdm_kwargs = dict(
            position=worker_index + 1, leave=False, desc=f"Parsing line buffers on worker {worker_index + 1}..."
        )

        return count_downloads_in_access_log(
            access_log_file_path=access_log_file_path,
            episode_resolver=episode_resolver,
            latest_closed_date=latest_closed_date,
            earliest_closed_date=earliest_closed_date,
            excluded_ips=excluded_ips,
            maximum_buffer_size_in_bytes=maximum_buffer_size_in_bytes,
            line_buffer_tqdm_kwargs=line_buffer_tqdm_kwargs,
        )
    except Exception as exception:
        message = (
            f"Worker index {worker_index}/{maximum_number_of_workers} counting {access_log_file_path} failed!\n\n"
            f"{type(exception)}: {exception}\n\n"
            f"{traceback.format_exc()}"
        )
        _collect_error(message=message, error_type="parallel", source_file_path=access_log_file_path)

        raise
