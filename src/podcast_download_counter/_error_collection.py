"""
Collection of the problems met while counting, as plain text files in the 'errors' folder of the base folder.

Each file gathers one kind of problem met in one source file on one (UTC) day, for example...

    ~/.podcast_download_counter/errors/2023-05-09_line_access_logs_access.log.1.gz.txt

so the malformed lines of a single rotated log can be reviewed, anonymized and shared together.
"""

import datetime
import importlib.metadata
import pathlib
import re

from ._config import PODCAST_DOWNLOAD_COUNTER_BASE_FOLDER_PATH
from ._globals import ACCESS_LOG_FORMAT_VERSION

_UNSAFE_FILE_NAME_CHARACTERS_REGEX = re.compile(pattern=r"[^A-Za-z0-9._-]+")


def _collect_error(*, message: str, error_type: str, source_file_path: pathlib.Path | None = None) -> pathlib.Path:
    """
    Append an error message to the collection file of its type and source.

    Parameters
    ----------
    message : str
        The error message to be collected.
    error_type : str
        The kind of problem, such as "line", "metadata", "store" or "parallel".
    source_file_path : pathlib.Path, optional
        The access log (or store) the problem was met in. Its folder and file name are part of the collection file
        name; problems with no single source file are collected under 'run'.

    Returns
    -------
    pathlib.Path
        The collection file the message was appended to.
    """
    errors_folder_path = PODCAST_DOWNLOAD_COUNTER_BASE_FOLDER_PATH / "errors"
    errors_folder_path.mkdir(exist_ok=True)

    error_collection_file_path = errors_folder_path / _get_error_collection_file_name(
        error_type=error_type, source_file_path=source_file_path
    )

    # Identify what produced the file, since line errors depend on the expected log format
    if not error_collection_file_path.exists():
        podcast_download_counter_version = importlib.metadata.version("podcast_download_counter")
        header = (
            f"# podcast_download_counter v{podcast_download_counter_version}, "
            f"access log format v{ACCESS_LOG_FORMAT_VERSION}, source: {source_file_path or 'run'}\n\n"
        )
    else:
        header = ""

    with open(file=error_collection_file_path, mode="a") as io:
        io.write(f"{header}{message}\n\n")

    return error_collection_file_path


def _get_error_collection_file_name(*, error_type: str, source_file_path: pathlib.Path | None) -> str:
    date = datetime.datetime.now(tz=datetime.timezone.utc).strftime("%Y-%m-%d")

    if source_file_path is None:
        source = "run"
    else:
        source_file_path = pathlib.Path(source_file_path)
        source = f"{source_file_path.parent.name}_{source_file_path.name}"
    source = _UNSAFE_FILE_NAME_CHARACTERS_REGEX.sub("-", source).strip("-_") or "run"

    return f"{date}_{error_type}_{source}.txt"
