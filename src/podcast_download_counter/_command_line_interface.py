"""Call the podcast download counter from the command line."""

import collections
import datetime
import pathlib

import click

from ._config import FULL_DOWNLOAD_THRESHOLD, NEGLIGIBLE_COVERAGE_IN_BYTES
from ._episode_resolver import find_episode_assets_in_folder, load_episode_assets
from ._podcast_download_counter import count_all_podcast_downloads


@click.command(name="count_podcast_downloads")
@click.option(
    "--access_logs_folder_path",
    help="The path to the folder containing the web server access logs (searched recursively for 'access.log*').",
    required=True,
    type=click.Path(exists=True, file_okay=False, writable=False),
)
@click.option(
    "--store_file_path",
    help="The path to the TSV file of daily counters per episode. Created if it does not yet exist.",
    required=True,
    type=click.Path(dir_okay=False, writable=True),
)
@click.option(
    "--episode_metadata_file_path",
    help="The path to a YAML file describing the path and size of each episode.",
    required=False,
    type=click.Path(exists=True, dir_okay=False),
    default=None,
)
@click.option(
    "--episodes_folder_path",
    help=(
        "The path to the folder of episode audio files ('episode-<ID>.m4a') being served. "
        "Used to derive the episode metadata when no metadata file is given."
    ),
    required=False,
    type=click.Path(exists=True, file_okay=False),
    default=None,
)
@click.option(
    "--full_download_threshold",
    help="The fraction of an episode a listener must have received for the download to count as full.",
    required=False,
    type=click.FloatRange(min=0.0, max=1.0, min_open=True),
    default=FULL_DOWNLOAD_THRESHOLD,
)
@click.option(
    "--negligible_coverage_in_bytes",
    help="Listeners who received at most this many bytes of an episode are not counted.",
    required=False,
    type=click.IntRange(min=0),
    default=NEGLIGIBLE_COVERAGE_IN_BYTES,
)
@click.option(
    "--latest_closed_date",
    help="The last (UTC) date whose logs are complete, as YYYY-MM-DD. Defaults to yesterday.",
    required=False,
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
)
@click.option(
    "--earliest_closed_date",
    help=(
        "The first (UTC) date whose logs are complete, as YYYY-MM-DD. "
        "Defaults to the day after the earliest date found in the logs, which rotation has usually cut short."
    ),
    required=False,
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
)
@click.option(
    "--excluded_ips",
    help="A comma-separated list of IP addresses to exclude from counting.",
    required=False,
    type=str,
    default=None,
)
@click.option(
    "--maximum_number_of_workers",
    help="The maximum number of workers to distribute tasks across.",
    required=False,
    type=click.IntRange(min=1),
    default=1,
)
@click.option(
    "--maximum_buffer_size_in_mb",
    help=(
        "The theoretical maximum amount of RAM (in MB) to use on each buffer iteration when reading from the "
        "source text files. "
        "Actual total RAM usage will be higher due to overhead and caching. "
        "Automatically splits this total amount over the maximum number of workers if `maximum_number_of_workers` is "
        "greater than one."
    ),
    required=False,
    type=click.IntRange(min=1),  # Bare minimum of 1 MB
    default=1_000,  # 1 GB recommended
)
def _count_podcast_downloads_cli(
    access_logs_folder_path: str,
    store_file_path: str,
    episode_metadata_file_path: str | None,
    episodes_folder_path: str | None,
    full_download_threshold: float,
    negligible_coverage_in_bytes: int,
    latest_closed_date: datetime.datetime | None,
    earliest_closed_date: datetime.datetime | None,
    excluded_ips: str | None,
    maximum_number_of_workers: int,
    maximum_buffer_size_in_mb: int,
) -> None:
    if (episode_metadata_file_path is None) == (episodes_folder_path is None):
        raise click.UsageError("Specify exactly one of `--episode_metadata_file_path` or `--episodes_folder_path`.")
    if (
        earliest_closed_date is not None
        and latest_closed_date is not None
        and earliest_closed_date > latest_closed_date
    ):
        raise click.UsageError("`--earliest_closed_date` must not be after `--latest_closed_date`.")

    if episode_metadata_file_path is not None:
        episode_assets = load_episode_assets(episode_metadata_file_path=episode_metadata_file_path)
    else:
        episode_assets = find_episode_assets_in_folder(episodes_folder_path=episodes_folder_path)

    split_excluded_ips = excluded_ips.split(",") if excluded_ips is not None else []
    handled_excluded_ips = collections.defaultdict(bool) if len(split_excluded_ips) != 0 else None
    for excluded_ip in split_excluded_ips:
        handled_excluded_ips[excluded_ip.strip()] = True
    maximum_buffer_size_in_bytes = maximum_buffer_size_in_mb * 10**6

    download_counting_report = count_all_podcast_downloads(
        access_logs_folder_path=access_logs_folder_path,
        store_file_path=pathlib.Path(store_file_path),
        episode_assets=episode_assets,
        full_download_threshold=full_download_threshold,
        negligible_coverage_in_bytes=negligible_coverage_in_bytes,
        latest_closed_date=latest_closed_date.date() if latest_closed_date is not None else None,
        earliest_closed_date=earliest_closed_date.date() if earliest_closed_date is not None else None,
        excluded_ips=handled_excluded_ips,
        maximum_number_of_workers=maximum_number_of_workers,
        maximum_buffer_size_in_bytes=maximum_buffer_size_in_bytes,
    )

    click.echo(
        f"Read {download_counting_report.number_of_lines} lines from {download_counting_report.number_of_files} files."
    )
    click.echo(f"Skipped {download_counting_report.number_of_malformed_lines} malformed lines.")
    click.echo(f"Skipped {download_counting_report.number_of_unresolved_lines} requests for anything but episodes.")
    click.echo(f"Skipped {download_counting_report.number_of_excluded_ip_lines} requests from excluded IP addresses.")
    click.echo(f"Skipped {download_counting_report.number_of_unclosed_date_lines} requests from dates not yet closed.")
    if download_counting_report.skipped_earliest_date is not None:
        click.echo(
            f"Skipped {download_counting_report.number_of_early_date_lines} requests from "
            f"{download_counting_report.skipped_earliest_date}, the earliest date in the logs, which may be incomplete."
        )
    else:
        click.echo(
            f"Skipped {download_counting_report.number_of_early_date_lines} requests from before "
            "the earliest closed date."
        )
    if len(download_counting_report.episode_ids_missing_metadata) != 0:
        click.echo(
            f"Skipped {download_counting_report.number_of_missing_metadata_lines} requests for episodes of unknown "
            f"size: {', '.join(download_counting_report.episode_ids_missing_metadata)}",
            err=True,
        )
    click.echo(f"Wrote {download_counting_report.number_of_counters_written} daily episode counters.")

    return None
