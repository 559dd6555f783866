"""Human-readable duration helpers shared by the API and the operator scripts."""
from __future__ import annotations


def _trim_fraction(whole: int, frac: int, digits: int) -> str:
    if frac == 0:
        return str(whole)
    text = str(frac).rjust(digits, "0").rstrip("0")
    return f"{whole}.{text}"


def format_uptime(seconds: float) -> str:
    """Render seconds the way Go's ``time.Duration.String`` does.

    ``format_uptime(174600)`` gives ``48h30m0s``; ``format_uptime(0.25)`` gives
    ``250ms``. Negative inputs keep their sign.
    """
    nanos = int(round(seconds * 1_000_000_000))
    if nanos == 0:
        return "0s"
    sign = "-" if nanos < 0 else ""
    nanos = abs(nanos)

    if nanos < 1_000:
        return f"{sign}{nanos}ns"
    if nanos < 1_000_000:
        return f"{sign}{_trim_fraction(nanos // 1_000, nanos % 1_000, 3)}µs"
    if nanos < 1_000_000_000:
        return f"{sign}{_trim_fraction(nanos // 1_000_000, nanos % 1_000_000, 6)}ms"

    total_seconds, frac = divmod(nanos, 1_000_000_000)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    text = f"{_trim_fraction(secs, frac, 9)}s"
    if hours or minutes:
        text = f"{minutes}m{text}"
    if hours:
        text = f"{hours}h{text}"
    return sign + text


def format_span(seconds: float) -> str:
    """Coarse ``3d 4h 5m`` style rendering used in reports."""
    total = max(int(seconds), 0)
    days, remainder = divmod(total, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes = remainder // 60
    if days > 0:
        return f"{days}d {hours}h {minutes}m"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


__all__ = ["format_span", "format_uptime"]
