"""
The durable store of daily download counters.

The store is a single tab-separated table with one row per (episode, date)...

episode_id	date	full_count	partial_count
001	2023-05-08	12	3

Each run replaces the rows of every (episode, date) it counted and leaves all other rows alone. Since a run always
covers whole, closed dates, reprocessing the same logs rewrites the same values instead of adding to them.
"""

import os
import pathlib
import time
import traceback

import natsort
import pandas
from pydantic import Field, validate_call

from ._daily_aggregator import DAILY_EPISODE_COUNTER_COLUMNS, _get_empty_daily_episode_counters
from ._error_collection import _collect_error
from ._exceptions import CorruptStoreError, StoreWriteError


@validate_call(config=dict(arbitrary_types_allowed=True))
def write_daily_episode_counters(
    *,
    daily_episode_counters: pandas.DataFrame,
    store_file_path: pathlib.Path,
    maximum_write_attempts: int = Field(ge=1, default=3),
    seconds_between_attempts: float = Field(ge=0.0, default=1.0),
) -> None:
    """
    Upsert the counters of one run into the store, replacing any previous counters for the same (episode, date).

    The updated table is written to a temporary file next to the store and then renamed over it, so a failed attempt
    leaves the previous store untouched and the write can be safely retried.

    Parameters
    ----------
    daily_episode_counters : pandas.DataFrame
        The counters to write, with columns 'episode_id', 'date', 'full_count' and 'partial_count'.
    store_file_path : pathlib.Path
        The path to the store. Created along with its parent folders if it does not yet exist.
    maximum_write_attempts : int, default: 3
        How many times to try the write before giving up.
    seconds_between_attempts : float, default: 1.0
        How long to wait between attempts.

    Raises
    ------
    StoreWriteError
        If every attempt failed.
    """
    last_exception = None
    for attempt in range(1, maximum_write_attempts + 1):
        try:
            _upsert_daily_episode_counters(
                daily_episode_counters=daily_episode_counters, store_file_path=store_file_path
            )
            return None
        except CorruptStoreError as exception:
            message = f"Refusing to overwrite the store at '{store_file_path}', which could not be read: {exception}"
            _collect_error(message=message, error_type="store", source_file_path=store_file_path)

            raise StoreWriteError(message) from exception
        except OSError as exception:
            last_exception = exception
            message = (
                f"Attempt {attempt}/{maximum_write_attempts} to write to the store at '{store_file_path}' failed!\n\n"
                f"{type(exception)}: {exception}\n\n"
                f"{traceback.format_exc()}"
            )
            _collect_error(message=message, error_type="store", source_file_path=store_file_path)

            if attempt < maximum_write_attempts:
                time.sleep(seconds_between_attempts)

    raise StoreWriteError(
        f"Unable to write the daily episode counters to '{store_file_path}' after {maximum_write_attempts} attempts!"
    ) from last_exception


@validate_call
def read_daily_episode_counters(*, store_file_path: pathlib.Path) -> pandas.DataFrame:
    """
    Read all daily counters from the store, or an empty table if nothing has been stored yet.

    Raises
    ------
    CorruptStoreError
        If the store is not a table with exactly the expected columns and whole counters.
    """
    if not store_file_path.exists():
        return _get_empty_daily_episode_counters()

    # pandas.errors.ParserError and EmptyDataError are both ValueErrors, as is a failed conversion to integers
    try:
        daily_episode_counters = pandas.read_table(
            filepath_or_buffer=store_file_path,
            header=0,
            dtype={"episode_id": str, "date": str, "full_count": "int64", "partial_count": "int64"},
        )
    except ValueError as exception:
        raise CorruptStoreError(f"The store at '{store_file_path}' could not be parsed: {exception}") from exception

    if list(daily_episode_counters.columns) != DAILY_EPISODE_COUNTER_COLUMNS:
        message = (
            f"The store at '{store_file_path}' has the columns {list(daily_episode_counters.columns)} "
            f"instead of {DAILY_EPISODE_COUNTER_COLUMNS}!"
        )
        raise CorruptStoreError(message)

    return daily_episode_counters


@validate_call
def summarize_full_downloads_by_episode(*, store_file_path: pathlib.Path) -> pandas.DataFrame:
    """Total number of full downloads of each episode over all stored dates."""
    daily_episode_counters = read_daily_episode_counters(store_file_path=store_file_path)

    full_downloads_by_episode = daily_episode_counters.groupby("episode_id", as_index=False)["full_count"].sum()
    full_downloads_by_episode = full_downloads_by_episode.sort_values(by="episode_id", key=natsort.natsort_keygen())
    full_downloads_by_episode.index = range(len(full_downloads_by_episode))

    return full_downloads_by_episode


def _upsert_daily_episode_counters(*, daily_episode_counters: pandas.DataFrame, store_file_path: pathlib.Path) -> None:
    stored_daily_episode_counters = read_daily_episode_counters(store_file_path=store_file_path)

    keys_to_replace = set(zip(daily_episode_counters["episode_id"], daily_episode_counters["date"]))
    is_row_kept = pandas.Series(
        data=[
            (episode_id, date) not in keys_to_replace
            for episode_id, date in zip(
                stored_daily_episode_counters["episode_id"], stored_daily_episode_counters["date"]
            )
        ],
        index=stored_daily_episode_counters.index,
        dtype=bool,
    )

    all_daily_episode_counters = pandas.concat(
        objs=[
            stored_daily_episode_counters.loc[is_row_kept],
            daily_episode_counters.reindex(columns=DAILY_EPISODE_COUNTER_COLUMNS),
        ],
        ignore_index=True,
    )
    all_daily_episode_counters = all_daily_episode_counters.astype(
        {"episode_id": str, "date": str, "full_count": "int64", "partial_count": "int64"}
    )
    all_daily_episode_counters = all_daily_episode_counters.sort_values(
        by=["date", "episode_id"], key=natsort.natsort_keygen()
    )

    store_file_path.parent.mkdir(parents=True, exist_ok=True)
    temporary_store_file_path = store_file_path.with_name(f".{store_file_path.name}.tmp")
    try:
        all_daily_episode_counters.to_csv(path_or_buf=temporary_store_file_path, sep="\t", header=True, index=False)
        os.replace(src=temporary_store_file_path, dst=store_file_path)
    finally:
        temporary_store_file_path.unlink(missing_ok=True)

    return None
