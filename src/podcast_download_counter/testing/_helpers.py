"""Collection of helper functions related to testing and generating of example lines."""

import datetime

from .._globals import _MONTH_ABBREVIATIONS


def make_access_log_line(
    *,
    ip_address: str,
    timestamp: datetime.datetime,
    path: str,
    status_code: int = 200,
    bytes_sent: int = 0,
    byte_range: str | None = None,
    method: str = "GET",
    referrer: str = "-",
    user_agent: str = "AppleCoreMedia/1.0.0.20E252 (iPhone; U; CPU OS 16_4_1 like Mac OS X; en_us)",
) -> str:
    """
    Return one line of an access log in the expected format, including its line break.

    Parameters
    ----------
    timestamp : datetime.datetime
        Must be timezone aware.
    byte_range : str, optional
        The value of the Range header (for example, 'bytes=0-1023'); logged as '-' if not given.
    """
    return (
        f"{ip_address} - - [{format_access_log_timestamp(timestamp=timestamp)}] "
        f'"{method} {path} HTTP/1.1" {status_code} {bytes_sent} '
        f'"{referrer}" "{user_agent}" "{byte_range or "-"}"\n'
    )


def format_access_log_timestamp(*, timestamp: datetime.datetime) -> str:
    """Format a timezone aware timestamp as '08/May/2023:15:08:30 +0000', independently of the locale."""
    month = _MONTH_ABBREVIATIONS[timestamp.month - 1]

    return timestamp.strftime(f"%d/{month}/%Y:%H:%M:%S %z")


def anonymize_access_log_line(*, raw_access_log_line: str) -> str:
    """
    Replace the IP address of a real access log line with a documentation address.

    Useful for contributing lines that failed to parse to the collection of test cases without sharing who sent them.
    """
    _, separator, remainder = raw_access_log_line.partition(" ")

    return f"192.0.2.0{separator}{remainder}"
