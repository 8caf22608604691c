import datetime
import pathlib

import py

import podcast_download_counter


def test_count_all_podcast_downloads_example_0_parallel(tmpdir: py.path.local) -> None:
    """The ranges of one listener are split across files, so the workers' shards must be merged before classifying."""
    tmpdir = pathlib.Path(tmpdir)

    examples_folder_path = pathlib.Path(__file__).parent.parent / "examples" / "counted_example_0"
    episode_assets = podcast_download_counter.load_episode_assets(
        episode_metadata_file_path=examples_folder_path / "episodes.yaml"
    )

    store_contents_by_number_of_workers = dict()
    for maximum_number_of_workers in (1, 2):
        test_store_file_path = tmpdir / f"daily_episode_counters_{maximum_number_of_workers}.tsv"
        download_counting_report = podcast_download_counter.count_all_podcast_downloads(
            access_logs_folder_path=examples_folder_path / "access_logs",
            store_file_path=test_store_file_path,
            episode_assets=episode_assets,
            latest_closed_date=datetime.date(2023, 5, 9),
            earliest_closed_date=datetime.date(2023, 5, 8),
            maximum_number_of_workers=maximum_number_of_workers,
        )
        assert download_counting_report.number_of_counters_written == 4

        store_contents_by_number_of_workers[maximum_number_of_workers] = test_store_file_path.read_text()

    expected_store_contents = (examples_folder_path / "expected_output" / "daily_episode_counters.tsv").read_text()
    assert store_contents_by_number_of_workers[1] == expected_store_contents
    assert store_contents_by_number_of_workers[2] == expected_store_contents
