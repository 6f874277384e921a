from datetime import datetime, timezone
from zoneinfo import ZoneInfo

STORED_FORMAT = "%Y-%m-%d %H:%M:%S"
DISPLAY_FORMAT = "%Y-%m-%d %H:%M:%S"


def utc_now_text() -> str:
    return datetime.now(timezone.utc).strftime(STORED_FORMAT)


def to_display(value, tz_name: str) -> str | None:
    """Render a stored timestamp in ``tz_name``.

    Stored values are UTC, either as ``YYYY-MM-DD HH:MM:SS`` text or as a
    datetime (naive datetimes coming back from the driver are UTC too).
    Text that does not parse is returned unchanged.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        moment = value
    else:
        try:
            moment = datetime.strptime(str(value), STORED_FORMAT)
        except ValueError:
            try:
                moment = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
            except ValueError:
                return str(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(tz_name)).strftime(DISPLAY_FORMAT)
