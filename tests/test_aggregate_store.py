import pathlib

import pandas
import py
import pytest

import podcast_download_counter


def _make_daily_episode_counters(rows: list[tuple[str, str, int, int]]) -> pandas.DataFrame:
    return pandas.DataFrame(data=rows, columns=["episode_id", "date", "full_count", "partial_count"])


def test_write_daily_episode_counters_replaces_only_counted_keys(tmpdir: py.path.local) -> None:
    tmpdir = pathlib.Path(tmpdir)
    store_file_path = tmpdir / "store" / "daily_episode_counters.tsv"

    podcast_download_counter.write_daily_episode_counters(
        daily_episode_counters=_make_daily_episode_counters(
            [("001", "2023-05-08", 4, 2), ("002", "2023-05-08", 1, 0), ("001", "2023-05-09", 3, 3)]
        ),
        store_file_path=store_file_path,
    )
    podcast_download_counter.write_daily_episode_counters(
        daily_episode_counters=_make_daily_episode_counters([("001", "2023-05-08", 5, 0), ("010", "2023-05-08", 1, 1)]),
        store_file_path=store_file_path,
    )

    test_daily_episode_counters = podcast_download_counter.read_daily_episode_counters(store_file_path=store_file_path)

    expected_daily_episode_counters = _make_daily_episode_counters(
        [
            ("001", "2023-05-08", 5, 0),
            ("002", "2023-05-08", 1, 0),
            ("010", "2023-05-08", 1, 1),
            ("001", "2023-05-09", 3, 3),
        ]
    )
    pandas.testing.assert_frame_equal(left=test_daily_episode_counters, right=expected_daily_episode_counters)

    # No temporary files are left next to the store
    assert [path.name for path in store_file_path.parent.iterdir()] == ["daily_episode_counters.tsv"]


def test_write_daily_episode_counters_is_idempotent(tmpdir: py.path.local) -> None:
    tmpdir = pathlib.Path(tmpdir)
    store_file_path = tmpdir / "daily_episode_counters.tsv"

    daily_episode_counters = _make_daily_episode_counters([("001", "2023-05-08", 4, 2), ("002", "2023-05-08", 0, 0)])
    podcast_download_counter.write_daily_episode_counters(
        daily_episode_counters=daily_episode_counters, store_file_path=store_file_path
    )
    first_store_contents = store_file_path.read_text()

    podcast_download_counter.write_daily_episode_counters(
        daily_episode_counters=daily_episode_counters, store_file_path=store_file_path
    )

    assert store_file_path.read_text() == first_store_contents
    assert first_store_contents.splitlines()[0] == "episode_id\tdate\tfull_count\tpartial_count"


def test_read_daily_episode_counters_empty_store(tmpdir: py.path.local) -> None:
    tmpdir = pathlib.Path(tmpdir)

    daily_episode_counters = podcast_download_counter.read_daily_episode_counters(
        store_file_path=tmpdir / "does_not_exist.tsv"
    )

    assert len(daily_episode_counters) == 0
    assert list(daily_episode_counters.columns) == ["episode_id", "date", "full_count", "partial_count"]


def test_summarize_full_downloads_by_episode(tmpdir: py.path.local) -> None:
    tmpdir = pathlib.Path(tmpdir)
    store_file_path = tmpdir / "daily_episode_counters.tsv"

    podcast_download_counter.write_daily_episode_counters(
        daily_episode_counters=_make_daily_episode_counters(
            [
                ("10", "2023-05-08", 2, 7),
                ("2", "2023-05-08", 1, 0),
                ("10", "2023-05-09", 3, 1),
                ("2", "2023-05-10", 0, 4),
            ]
        ),
        store_file_path=store_file_path,
    )

    full_downloads_by_episode = podcast_download_counter.summarize_full_downloads_by_episode(
        store_file_path=store_file_path
    )

    expected_full_downloads_by_episode = pandas.DataFrame({"episode_id": ["2", "10"], "full_count": [1, 5]})
    pandas.testing.assert_frame_equal(left=full_downloads_by_episode, right=expected_full_downloads_by_episode)


def test_write_daily_episode_counters_failure(tmpdir: py.path.local) -> None:
    """A store whose parent is a regular file can never be written; the previous contents must be left alone."""
    tmpdir = pathlib.Path(tmpdir)
    not_a_folder_path = tmpdir / "not_a_folder"
    not_a_folder_path.write_text("previous contents")

    with pytest.raises(podcast_download_counter.StoreWriteError):
        podcast_download_counter.write_daily_episode_counters(
            daily_episode_counters=_make_daily_episode_counters([("001", "2023-05-08", 1, 0)]),
            store_file_path=not_a_folder_path / "daily_episode_counters.tsv",
            maximum_write_attempts=2,
            seconds_between_attempts=0,
        )

    assert not_a_folder_path.read_text() == "previous contents"


@pytest.mark.parametrize(
    "store_contents",
    [
        "episode_id\tdate\tfull_count\tpartial_count\n001\t2023-05-08\t1\t0\n001\t2023-05-09\t1\t0\t7\t7\n",
        "episode_id\tdate\tfull_count\tpartial_count\n001\t2023-05-08\tmany\t0\n",
        "episode_id\tdate\tfull_count\tpartial_count\n001\t2023-05-08\t\t0\n",
        "episode_id\tdate\tdownloads\n001\t2023-05-08\t1\n",
        "",
    ],
)
def test_corrupt_store(tmpdir: py.path.local, store_contents: str) -> None:
    """A store that cannot be read is reported as such and never replaced by a write."""
    tmpdir = pathlib.Path(tmpdir)
    store_file_path = tmpdir / "daily_episode_counters.tsv"
    store_file_path.write_text(store_contents)

    with pytest.raises(podcast_download_counter.CorruptStoreError):
        podcast_download_counter.read_daily_episode_counters(store_file_path=store_file_path)

    with pytest.raises(podcast_download_counter.StoreWriteError) as error_info:
        podcast_download_counter.write_daily_episode_counters(
            daily_episode_counters=_make_daily_episode_counters([("001", "2023-05-08", 1, 0)]),
            store_file_path=store_file_path,
            seconds_between_attempts=0,
        )

    assert isinstance(error_info.value.__cause__, podcast_download_counter.CorruptStoreError)
    assert store_file_path.read_text() == store_contents
