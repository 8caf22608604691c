from ._helpers import anonymize_access_log_line, format_access_log_timestamp, make_access_log_line

__all__ = ["anonymize_access_log_line", "format_access_log_timestamp", "make_access_log_line"]
