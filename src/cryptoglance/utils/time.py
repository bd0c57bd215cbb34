from datetime import datetime, timezone


def unix_seconds_to_ms(timestamp: int | float) -> int:
    """Converts a Unix timestamp in seconds to integer milliseconds.

    Raises:
        TypeError: If the timestamp is not a number.
    """
    if isinstance(timestamp, bool) or not isinstance(timestamp, int | float):
        err_msg = f"Unsupported timestamp type: {type(timestamp).__name__}"
        raise TypeError(err_msg)
    return int(timestamp * 1000)


def ms_to_iso8601(timestamp_ms: int) -> str:
    """Formats epoch milliseconds as a UTC ISO-8601 string.

    The output has millisecond precision and a 'Z' suffix, matching what
    JavaScript's `Date.toISOString()` produces for the chart front-end.

    Example: 1700000000000 -> "2023-11-14T22:13:20.000Z"

    Raises:
        ValueError: If the timestamp is out of the platform's datetime range.
    """
    try:
        dt_obj = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    except (OSError, OverflowError, ValueError) as e:
        err_msg = f"Timestamp '{timestamp_ms}' ms is out of range."
        raise ValueError(err_msg) from e
    return dt_obj.isoformat(timespec="milliseconds").replace("+00:00", "Z")
