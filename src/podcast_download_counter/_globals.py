import collections
import re

# Bump whenever the expected web server log format changes
ACCESS_LOG_FORMAT_VERSION = 1

# $remote_addr - $remote_user [$time_local] "$request" $status $body_bytes_sent
#   "$http_referer" "$http_user_agent" "$http_range"
# The last three quoted fields are optional; nginx escapes embedded quotes as \x22 but Apache uses \"
_ACCESS_LOG_REGEX = re.compile(
    pattern=(
        r"^(?P<ip_address>\S+) \S+ \S+ "
        r"\[(?P<timestamp>[^\]]+)\] "
        r'"(?P<request>(?:[^"\\]|\\.)*)" '
        r"(?P<status_code>\S+) "
        r"(?P<bytes_sent>\S+)"
        r'(?: "(?P<referrer>(?:[^"\\]|\\.)*)"'
        r'(?: "(?P<user_agent>(?:[^"\\]|\\.)*)"'
        r'(?: "(?P<byte_range>(?:[^"\\]|\\.)*)")?)?)?'
        r"\s*$"
    )
)

_BYTE_RANGE_SPECIFIER_REGEX = re.compile(pattern=r"^(?P<first>\d*)-(?P<last>\d*)$")

# $time_local, e.g. '08/May/2023:15:08:30 +0000'; month names are always English, whatever the locale
_TIMESTAMP_REGEX = re.compile(
    pattern=(
        r"^(?P<day>\d{2})/(?P<month>[A-Z][a-z]{2})/(?P<year>\d{4}):"
        r"(?P<hour>\d{2}):(?P<minute>\d{2}):(?P<second>\d{2}) (?P<offset>[+-]\d{4})$"
    )
)

_MONTH_ABBREVIATIONS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
_MONTH_ABBREVIATION_TO_NUMBER = {abbreviation: index + 1 for index, abbreviation in enumerate(_MONTH_ABBREVIATIONS)}

_REQUEST_RECORD_FIELDS = [
    "timestamp",
    "ip_address",
    "method",
    "path",
    "status_code",
    "bytes_sent",
    "byte_ranges",
    "user_agent",
]
RequestRecord = collections.namedtuple("RequestRecord", _REQUEST_RECORD_FIELDS)

_MULTIPLE_SLASHES_REGEX = re.compile(pattern=r"/+")
