"""
Utilidades de formateo de fechas en estilo colombiano (es-CO).
"""
from datetime import datetime, timedelta, timezone
from typing import Optional


def datetime_co(value: Optional[datetime]) -> str:
    """
    Formatea un datetime como lo hace el navegador con locale es-CO.

    Examples:
        datetime_co(datetime(2026, 1, 12, 15, 30, 5)) -> "12/1/2026, 3:30:05 p. m."
    """
    if value is None or not isinstance(value, datetime):
        return "-"

    hour = value.hour % 12 or 12
    suffix = "a. m." if value.hour < 12 else "p. m."
    return f"{value.day}/{value.month}/{value.year}, {hour}:{value.minute:02d}:{value.second:02d} {suffix}"


# Colombia has no daylight saving time
COLOMBIA_TZ = timezone(timedelta(hours=-5), 'COT')


def now_stamps(now: Optional[datetime] = None):
    """
    ISO timestamp (UTC) and its es-CO formatted local counterpart.

    Returns:
        (iso_string, formatted_string)
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.isoformat(), datetime_co(now.astimezone(COLOMBIA_TZ))
