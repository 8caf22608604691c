import pathlib

PODCAST_DOWNLOAD_COUNTER_BASE_FOLDER_PATH = pathlib.Path.home() / ".podcast_download_counter"
PODCAST_DOWNLOAD_COUNTER_BASE_FOLDER_PATH.mkdir(exist_ok=True)

# Fraction of an episode's size a client must have received to count as a full download
# Tolerates the few trailing bytes some players never request
FULL_DOWNLOAD_THRESHOLD = 0.95

# Coverage at or below this many bytes is not counted at all
NEGLIGIBLE_COVERAGE_IN_BYTES = 0

ACCESS_LOG_FILE_PATTERN = "access.log*"
