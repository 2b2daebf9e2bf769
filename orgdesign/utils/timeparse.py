import re

_UNITS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(time_str: str) -> float:
    """
    Parse a duration string like '300ms', '15s', '10m', '1h' into seconds.
    """
    if not isinstance(time_str, str):
        raise ValueError("Invalid time string format")

    match = re.fullmatch(r"\s*(\d+(?:\.\d+)?)(ms|s|m|h)\s*", time_str)
    if not match:
        raise ValueError("Invalid time string format")

    value, unit = match.groups()
    return float(value) * _UNITS[unit]
