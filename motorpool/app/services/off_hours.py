"""
Off-hours classification.

Regular office hours are Monday to Friday, start hour inclusive to end hour
exclusive (08:00-16:00 by default). The hour is read from the wall-clock
value as given; no timezone conversion is applied.
"""

from datetime import datetime
from typing import Optional, Union

from motorpool.app.core.config import settings


def _parse_local(value: str) -> Optional[datetime]:
    text = value.strip().replace(" ", "T", 1)
    if "T" not in text:
        # Date only, no time of day to classify
        return None
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def is_off_hours(
    value: Union[datetime, str, None],
    start_hour: Optional[int] = None,
    end_hour: Optional[int] = None,
) -> bool:
    """
    Return True when value falls outside business hours.
    
    Accepts a datetime or a "YYYY-MM-DDTHH:MM[:SS]" / "YYYY-MM-DD HH:MM[:SS]"
    string. Saturday and Sunday are always off-hours. Empty or date-only
    values are not flagged.
    """
    if start_hour is None:
        start_hour = settings.business_hours_start
    if end_hour is None:
        end_hour = settings.business_hours_end
    
    if not value:
        return False
    
    moment = _parse_local(value) if isinstance(value, str) else value
    if moment is None:
        return False
    
    # weekday(): Monday=0 ... Sunday=6
    if moment.weekday() >= 5:
        return True
    
    return moment.hour < start_hour or moment.hour >= end_hour
