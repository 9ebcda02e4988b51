import datetime as dt
import os
import pathlib

SECONDS_PER_DAY = 86400


def utc(d: dt.datetime) -> dt.datetime:
    if d.tzinfo is None:
        d = d.replace(tzinfo=dt.timezone.utc)
    return d.astimezone(dt.timezone.utc)


def iso_utc(d: dt.datetime) -> str:
    return utc(d).isoformat().replace("+00:00", "Z")


def local_date(d: dt.datetime) -> dt.date:
    # Calendar day on the host clock; naive values are taken as already local.
    if d.tzinfo is None:
        return d.date()
    return d.astimezone().date()


def days_between(expiry: dt.datetime, now: dt.datetime) -> int:
    # Truncates toward zero: an expiry 12 hours in the past is still day 0.
    delta = utc(expiry) - utc(now)
    return int(delta.total_seconds() / SECONDS_PER_DAY)


def now_utc() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def resolve_path(path_like: str | os.PathLike[str]) -> pathlib.Path:
    return pathlib.Path(path_like).expanduser().resolve(strict=False)
