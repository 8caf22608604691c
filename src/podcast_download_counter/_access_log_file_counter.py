"""Primary functions for accumulating the episode downloads found in a single access log file."""

import collections
import datetime

import tqdm
from pydantic import FilePath, validate_call

from ._access_log_line_parser import parse_access_log_line
from ._buffered_text_reader import BufferedTextReader
from ._byte_accumulator import ClientEpisodeCoverage, accumulate_request_record
from ._episode_resolver import EpisodeResolver
from ._error_collection import _collect_error
from ._exceptions import AccessLogLineParseError, MissingEpisodeMetadataError

_ACCESS_LOG_SHARD_FIELDS = [
    "client_episode_coverages",
    "line_counts",
    "episode_ids_missing_metadata",
    "accumulated_line_counts_by_date",
    "earliest_line_date",
]
AccessLogShard = collections.namedtuple("AccessLogShard", _ACCESS_LOG_SHARD_FIELDS)


def _get_empty_access_log_shard() -> AccessLogShard:
    return AccessLogShard(
        client_episode_coverages=collections.defaultdict(ClientEpisodeCoverage),
        line_counts=collections.Counter(),
        episode_ids_missing_metadata=set(),
        accumulated_line_counts_by_date=collections.Counter(),
        earliest_line_date=None,
    )


@validate_call(config=dict(arbitrary_types_allowed=True))
def count_downloads_in_access_log(
    *,
    access_log_file_path: FilePath,
    episode_resolver: EpisodeResolver,
    latest_closed_date: datetime.date,
    earliest_closed_date: datetime.date | None = None,
    excluded_ips: collections.defaultdict[str, bool] | None = None,
    maximum_buffer_size_in_bytes: int = 4 * 10**9,
    line_buffer_tqdm_kwargs: dict | None = None,
) -> AccessLogShard:
    """
    Accumulate the byte coverage of every (client, episode, date) found in one access log file.

    'Accumulate' here means:
      - Skipping (and counting) any malformed lines; a corrupt line never stops the file from being read.
      - Skipping (and counting) requests from excluded IP addresses.
      - Skipping (and counting) requests dated after the latest closed date or before the earliest one.
      - Skipping (and counting) requests for anything that is not a known episode.
      - Merging the bytes delivered by every remaining request into the coverage of its client, episode and date.

    The returned shard still holds client IP addresses; it is only meant to be merged with the shards of the other
    files of the run and then handed to the daily aggregator.

    Parameters
    ----------
    access_log_file_path : file path
        The path to the access log file, optionally gzip-compressed.
    episode_resolver : EpisodeResolver
        Resolves request paths to the episodes being counted.
    latest_closed_date : datetime.date
        The last (UTC) date whose logs are complete; later requests are not counted yet.
    earliest_closed_date : datetime.date, optional
        The first (UTC) date to count; earlier requests are skipped. If not given, no lower bound is applied here and
        the earliest date of the whole batch is left to the caller to decide on.
    excluded_ips : collections.defaultdict of strings to booleans, optional
        A lookup table / hash map whose keys are IP addresses and values are True to exclude from counting.
    maximum_buffer_size_in_bytes : int, default: 4 GB
        The theoretical maximum amount of RAM (in bytes) to use on each buffer iteration when reading from the
        source text file.

        Actual RAM usage will be higher due to overhead and caching.
    line_buffer_tqdm_kwargs : dict, optional
        Keyword arguments to pass to the tqdm progress bar for line buffers.

    Returns
    -------
    AccessLogShard
        The coverages keyed by (client IP, episode ID, date), the counts of each kind of line, the IDs of any
        episodes whose size is missing from the metadata, the number of accumulated lines per date and the earliest
        date of any well-formed line in the file.
    """
    excluded_ips = excluded_ips or collections.defaultdict(bool)
    line_buffer_tqdm_kwargs = line_buffer_tqdm_kwargs or dict()

    default_tqdm_kwargs = {"desc": "Parsing line buffers...", "leave": False}
    resolved_tqdm_kwargs = {**default_tqdm_kwargs}
    resolved_tqdm_kwargs.update(line_buffer_tqdm_kwargs)

    buffered_text_reader = BufferedTextReader(
        file_path=access_log_file_path,
        maximum_buffer_size_in_bytes=maximum_buffer_size_in_bytes,
    )
    progress_bar_iterator = tqdm.tqdm(
        iterable=buffered_text_reader,
        total=len(buffered_text_reader),
        **resolved_tqdm_kwargs,
    )

    access_log_shard = _get_empty_access_log_shard()
    line_dates = set()
    for raw_access_log_lines_buffer in progress_bar_iterator:
        for raw_access_log_line in raw_access_log_lines_buffer:
            _accumulate_raw_access_log_line(
                raw_access_log_line=raw_access_log_line,
                access_log_shard=access_log_shard,
                line_dates=line_dates,
                access_log_file_path=access_log_file_path,
                episode_resolver=episode_resolver,
                latest_closed_date=latest_closed_date,
                earliest_closed_date=earliest_closed_date,
                excluded_ips=excluded_ips,
            )

    return access_log_shard._replace(earliest_line_date=min(line_dates, default=None))


def _accumulate_raw_access_log_line(
    *,
    raw_access_log_line: str,
    access_log_shard: AccessLogShard,
    line_dates: set[datetime.date],
    access_log_file_path: FilePath,
    episode_resolver: EpisodeResolver,
    latest_closed_date: datetime.date,
    earliest_closed_date: datetime.date | None,
    excluded_ips: collections.defaultdict[str, bool],
) -> None:
    if raw_access_log_line.strip() == "":
        return None

    line_counts = access_log_shard.line_counts
    line_counts["number_of_lines"] += 1

    # Deviant log entry; dump information to a log file in the base folder for easy sharing
    try:
        request_record = parse_access_log_line(raw_access_log_line=raw_access_log_line)
    except AccessLogLineParseError as exception:
        line_counts["number_of_malformed_lines"] += 1

        message = f"Error parsing line: {raw_access_log_line}\n\n{type(exception)}: {exception}"
        _collect_error(message=message, error_type="line", source_file_path=access_log_file_path)

        return None

    date = request_record.timestamp.astimezone(tz=datetime.timezone.utc).date()
    line_dates.add(date)

    if excluded_ips[request_record.ip_address] is True:
        line_counts["number_of_excluded_ip_lines"] += 1
        return None

    # Dates are checked first; nothing about the episode matters for a date that is not being counted
    if date > latest_closed_date:
        line_counts["number_of_unclosed_date_lines"] += 1
        return None
    if earliest_closed_date is not None and date < earliest_closed_date:
        line_counts["number_of_early_date_lines"] += 1
        return None

    try:
        episode_asset = episode_resolver.resolve(request_path=request_record.path)
    except MissingEpisodeMetadataError as exception:
        line_counts["number_of_missing_metadata_lines"] += 1

        # Only report each episode once per file
        if exception.episode_id not in access_log_shard.episode_ids_missing_metadata:
            access_log_shard.episode_ids_missing_metadata.add(exception.episode_id)
            _collect_error(message=str(exception), error_type="metadata", source_file_path=access_log_file_path)

        return None

    if episode_asset is None:
        line_counts["number_of_unresolved_lines"] += 1
        return None

    access_log_shard.accumulated_line_counts_by_date[date] += 1
    accumulate_request_record(
        client_episode_coverages=access_log_shard.client_episode_coverages,
        request_record=request_record,
        episode_asset=episode_asset,
    )

    return None
