"""
Accumulation of the bytes transferred to each client for each episode on each date.

Streaming players fetch an episode in many, possibly overlapping and possibly retried, range requests. Summing the
bytes sent would overcount those, so each request is instead translated into the byte intervals it actually delivered
and the union of those intervals is kept per client.

A 206 response whose Range header was not logged (the default nginx and Apache formats never log it) does not say
which part of the file it delivered. Once a key has seen such a response, its coverage falls back to the total bytes
sent, capped at the size of the file.

All intervals are half-open, [start, end), in byte offsets of the episode file.
"""

import bisect
import collections
import datetime

from ._episode_resolver import EpisodeAsset
from ._globals import RequestRecord

ClientEpisodeDateKey = tuple[str, str, datetime.date]


class ClientEpisodeCoverage:
    """The merged byte intervals and total bytes sent to one client for one episode on one date."""

    __slots__ = ("intervals", "bytes_sent", "has_unlocated_partial_content")

    def __init__(self):
        # Sorted, disjoint and never adjacent
        self.intervals: list[tuple[int, int]] = []
        self.bytes_sent = 0
        self.has_unlocated_partial_content = False

    @property
    def coverage_in_bytes(self) -> int:
        return sum(end - start for start, end in self.intervals)

    def get_downloaded_bytes(self, *, size_in_bytes: int) -> int:
        """The distinct bytes received, or the bytes sent (up to the file size) if some chunk could not be located."""
        if self.has_unlocated_partial_content:
            return min(self.bytes_sent, size_in_bytes)

        return self.coverage_in_bytes

    def add(
        self, *, intervals: list[tuple[int, int]], bytes_sent: int, has_unlocated_partial_content: bool = False
    ) -> None:
        for start, end in intervals:
            _insert_interval(intervals=self.intervals, start=start, end=end)
        self.bytes_sent += bytes_sent
        self.has_unlocated_partial_content = self.has_unlocated_partial_content or has_unlocated_partial_content

    def update(self, other: "ClientEpisodeCoverage") -> None:
        """Fold another partial coverage of the same key (for example from another worker) into this one."""
        self.add(
            intervals=other.intervals,
            bytes_sent=other.bytes_sent,
            has_unlocated_partial_content=other.has_unlocated_partial_content,
        )

    def __repr__(self) -> str:
        return (
            f"ClientEpisodeCoverage(intervals={self.intervals}, bytes_sent={self.bytes_sent}, "
            f"has_unlocated_partial_content={self.has_unlocated_partial_content})"
        )


def accumulate_request_record(
    *,
    client_episode_coverages: collections.defaultdict[ClientEpisodeDateKey, ClientEpisodeCoverage],
    request_record: RequestRecord,
    episode_asset: EpisodeAsset,
) -> None:
    """
    Merge a single request for an episode into the coverage of its (client, episode, date) key.

    The key is created even when the request contributes no bytes, so that its episode and date still get counters.
    Dates are UTC calendar dates.
    """
    date = request_record.timestamp.astimezone(tz=datetime.timezone.utc).date()
    key = (request_record.ip_address, episode_asset.episode_id, date)

    if not _is_contributing_request(request_record=request_record):
        client_episode_coverages[key].add(intervals=[], bytes_sent=0)
        return None

    if request_record.status_code == 206 and request_record.byte_ranges is None:
        client_episode_coverages[key].add(
            intervals=[], bytes_sent=request_record.bytes_sent, has_unlocated_partial_content=True
        )
        return None

    intervals = _get_transferred_intervals(request_record=request_record, size_in_bytes=episode_asset.size_in_bytes)
    client_episode_coverages[key].add(intervals=intervals, bytes_sent=request_record.bytes_sent)

    return None


def merge_coverages(
    *,
    client_episode_coverages: collections.defaultdict[ClientEpisodeDateKey, ClientEpisodeCoverage],
    other_client_episode_coverages: dict[ClientEpisodeDateKey, ClientEpisodeCoverage],
) -> None:
    """Reduce one shard of coverages into another; interval union is re-run for keys present in both."""
    for key, coverage in other_client_episode_coverages.items():
        client_episode_coverages[key].update(coverage)


def _is_contributing_request(*, request_record: RequestRecord) -> bool:
    # Only 200-block responses to GET requests carry any content
    if request_record.method != "GET":
        return False
    if not 200 <= request_record.status_code < 300:
        return False

    return request_record.bytes_sent > 0


def _get_transferred_intervals(*, request_record: RequestRecord, size_in_bytes: int) -> list[tuple[int, int]]:
    # Servers ignoring the Range header answer with a 200 and send the file from the start
    if request_record.status_code != 206:
        return [(0, min(request_record.bytes_sent, size_in_bytes))]

    remaining_bytes = request_record.bytes_sent
    intervals = []
    for first, last in request_record.byte_ranges:
        if first is None:
            start = max(size_in_bytes - last, 0)
            end = size_in_bytes
        else:
            start = first
            end = size_in_bytes if last is None else min(last + 1, size_in_bytes)

        # Unsatisfiable range
        if start >= end:
            continue

        # Aborted transfers only cover what was actually delivered
        end = min(end, start + remaining_bytes)
        intervals.append((start, end))

        remaining_bytes -= end - start
        if remaining_bytes <= 0:
            break

    return intervals


def _insert_interval(*, intervals: list[tuple[int, int]], start: int, end: int) -> None:
    """Insert [start, end) in place, joining only the neighbours it overlaps or touches."""
    if start >= end:
        return None

    index = bisect.bisect_left(intervals, (start, end))
    if index > 0 and intervals[index - 1][1] >= start:
        index -= 1
        start = intervals[index][0]
        end = max(end, intervals[index][1])

    last_index = index
    while last_index < len(intervals) and intervals[last_index][0] <= end:
        end = max(end, intervals[last_index][1])
        last_index += 1

    intervals[index:last_index] = [(start, end)]

    return None
