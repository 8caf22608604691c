"""
Primary functions for parsing a single line of a web server access log.

The strategy is to...

1) Match the raw line against the versioned access log regex; any deviation from the format is a parse failure.
2) Validate and convert each captured field (IP address, timestamp, request line, status, bytes sent, byte range).
3) Construct a RequestRecord object from the converted fields. A collections.namedtuple object is used for performance.

Nothing in this module decides whether a request counts toward a download; non-success lines are still returned so
the caller can decide they contribute zero bytes.
"""

import datetime
import ipaddress

from ._exceptions import AccessLogLineParseError
from ._globals import (
    _ACCESS_LOG_REGEX,
    _BYTE_RANGE_SPECIFIER_REGEX,
    _MONTH_ABBREVIATION_TO_NUMBER,
    _TIMESTAMP_REGEX,
    ACCESS_LOG_FORMAT_VERSION,
    RequestRecord,
)


def parse_access_log_line(*, raw_access_log_line: str) -> RequestRecord:
    """
    Parse one line of an access log into a RequestRecord.

    Parameters
    ----------
    raw_access_log_line : str
        A single line of the access log, with or without its trailing line break.

    Raises
    ------
    AccessLogLineParseError
        If the line deviates in any way from the expected access log format.
    """
    match = _ACCESS_LOG_REGEX.match(string=raw_access_log_line.rstrip("\r\n"))
    if match is None:
        message = (
            f"Line does not match the access log format (version {ACCESS_LOG_FORMAT_VERSION}): "
            f"'{raw_access_log_line}'"
        )
        raise AccessLogLineParseError(message)

    status_code = _parse_status_code(raw_status_code=match["status_code"])
    method, path = _parse_request(raw_request=match["request"], status_code=status_code)

    request_record = RequestRecord(
        timestamp=_parse_timestamp(raw_timestamp=match["timestamp"]),
        ip_address=_parse_ip_address(raw_ip_address=match["ip_address"]),
        method=method,
        path=path,
        status_code=status_code,
        bytes_sent=_parse_bytes_sent(raw_bytes_sent=match["bytes_sent"]),
        byte_ranges=_parse_byte_ranges(raw_byte_range=match["byte_range"]),
        user_agent=match["user_agent"] or "-",
    )

    return request_record


def _parse_ip_address(*, raw_ip_address: str) -> str:
    try:
        return str(ipaddress.ip_address(address=raw_ip_address))
    except ValueError as exception:
        raise AccessLogLineParseError(f"Unexpected IP address: '{raw_ip_address}'.") from exception


def _parse_timestamp(*, raw_timestamp: str) -> datetime.datetime:
    # Not `strptime`, whose '%b' only matches month names of the current locale
    match = _TIMESTAMP_REGEX.match(string=raw_timestamp)
    if match is None or match["month"] not in _MONTH_ABBREVIATION_TO_NUMBER:
        raise AccessLogLineParseError(f"Unexpected timestamp: '{raw_timestamp}'.")

    offset = match["offset"]
    offset_in_minutes = int(offset[1:3]) * 60 + int(offset[3:5])
    sign = -1 if offset[0] == "-" else 1
    try:
        return datetime.datetime(
            year=int(match["year"]),
            month=_MONTH_ABBREVIATION_TO_NUMBER[match["month"]],
            day=int(match["day"]),
            hour=int(match["hour"]),
            minute=int(match["minute"]),
            second=int(match["second"]),
            tzinfo=datetime.timezone(datetime.timedelta(minutes=sign * offset_in_minutes)),
        )
    except ValueError as exception:
        raise AccessLogLineParseError(f"Unexpected timestamp: '{raw_timestamp}'.") from exception


def _parse_status_code(*, raw_status_code: str) -> int:
    if len(raw_status_code) != 3 or not raw_status_code.isdigit():
        raise AccessLogLineParseError(f"Unexpected status code: '{raw_status_code}'.")

    return int(raw_status_code)


def _parse_request(*, raw_request: str, status_code: int) -> tuple[str, str]:
    request_items = raw_request.split(" ")
    if len(request_items) == 3:
        method, path, _ = request_items
        return method, path

    # Garbage sent to the server is answered with a 400 and logged as-is (or as an empty request)
    if status_code == 400:
        return "", ""

    raise AccessLogLineParseError(f"Unexpected request line: '{raw_request}'.")


def _parse_bytes_sent(*, raw_bytes_sent: str) -> int:
    # Apache logs '-' rather than 0 for empty bodies
    if raw_bytes_sent == "-":
        return 0
    if not raw_bytes_sent.isdigit():
        raise AccessLogLineParseError(f"Unexpected number of bytes sent: '{raw_bytes_sent}'.")

    return int(raw_bytes_sent)


def _parse_byte_ranges(*, raw_byte_range: str | None) -> tuple[tuple[int | None, int | None], ...] | None:
    """
    Parse the value of a logged Range header.

    Returns None when no range was requested (the whole file), otherwise one (first, last) pair per requested range.
    Either end may be None for the open-ended ('500-') and suffix ('-500') forms.
    """
    if raw_byte_range is None or raw_byte_range in ("", "-"):
        return None

    unit, separator, raw_specifiers = raw_byte_range.partition("=")
    if separator == "" or unit.strip().lower() != "bytes":
        raise AccessLogLineParseError(f"Unexpected byte range: '{raw_byte_range}'.")

    byte_ranges = []
    for raw_specifier in raw_specifiers.split(","):
        match = _BYTE_RANGE_SPECIFIER_REGEX.match(string=raw_specifier.strip())
        if match is None:
            raise AccessLogLineParseError(f"Unexpected byte range: '{raw_byte_range}'.")

        first = int(match["first"]) if match["first"] != "" else None
        last = int(match["last"]) if match["last"] != "" else None
        if first is None and last is None:
            raise AccessLogLineParseError(f"Unexpected byte range: '{raw_byte_range}'.")
        if first is not None and last is not None and last < first:
            raise AccessLogLineParseError(f"Unexpected byte range: '{raw_byte_range}'.")

        byte_ranges.append((first, last))

    return tuple(byte_ranges)
