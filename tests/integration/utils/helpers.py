# tests/integration/utils/helpers.py
from datetime import datetime, timedelta, timezone


# ---------- timestamp helpers (wire format is ISO-8601 UTC) ----------
def iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def days_from_now(days: float) -> str:
    return iso(datetime.now(timezone.utc) + timedelta(days=days))
