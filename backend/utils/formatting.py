"""
Human-readable time formatting shared by the progress aggregator and exporters.
"""

from typing import Optional


def format_abbreviated(seconds: Optional[float], max_units: int = 2) -> Optional[str]:
    """
    Format a duration as e.g. "1h 5m", "2m 3s" or "45s".

    Only the `max_units` most significant non-zero units are shown.
    Returns None for a missing duration.
    """
    if seconds is None:
        return None

    total = max(0, int(seconds))
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)

    parts = []
    for value, unit in ((hours, "h"), (minutes, "m"), (secs, "s")):
        if value or parts:
            parts.append(f"{value}{unit}")
    if not parts:
        return "0s"

    parts = parts[:max_units]
    # Drop trailing zero units ("1h 0m" reads as "1h")
    while len(parts) > 1 and parts[-1].startswith("0"):
        parts.pop()
    return " ".join(parts)


def format_clock(seconds: float) -> str:
    """Format seconds as "0:05", "2:03" or "1:02:03"."""
    total = max(0, int(seconds))
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_timestamp(seconds: float, separator: str = ",") -> str:
    """Subtitle timestamp "HH:MM:SS,mmm" (SRT) or "HH:MM:SS.mmm" (WebVTT)."""
    seconds = max(0.0, seconds)
    hours = int(seconds) // 3600
    minutes = (int(seconds) % 3600) // 60
    secs = int(seconds) % 60
    millis = int(round((seconds - int(seconds)) * 1000))
    if millis == 1000:
        millis = 999
    return f"{hours:02d}:{minutes:02d}:{secs:02d}{separator}{millis:03d}"
