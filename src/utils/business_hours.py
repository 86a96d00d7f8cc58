"""
Business Hours Policy

Pure function of the current instant: open Monday to Friday, 09:00-18:00
in the business timezone. Used by the scenario matcher, the pipeline's last
fallback and the reply wording.
"""
import datetime as dt
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from src.config import get_settings


class BusinessHoursPolicy:
    """
    Usage:
        policy = BusinessHoursPolicy()
        if policy.is_open():
            ...
        reopen_at = policy.next_business_day()
    """

    OPEN_MESSAGE = "Siamo online! Il nostro team ti risponderà a breve."
    CLOSED_MESSAGE = (
        "Grazie per il tuo messaggio! Il nostro orario di ufficio è Lun-Ven 9:00-18:00. "
        "Ti ricontatteremo appena possibile."
    )

    def __init__(
        self,
        timezone: Optional[str] = None,
        open_hour: Optional[int] = None,
        close_hour: Optional[int] = None,
        clock: Optional[Callable[[], dt.datetime]] = None,
    ):
        settings = get_settings()
        self.tz = ZoneInfo(timezone or settings.business_timezone)
        self.open_hour = settings.business_open_hour if open_hour is None else open_hour
        self.close_hour = settings.business_close_hour if close_hour is None else close_hour
        self._clock = clock or (lambda: dt.datetime.now(self.tz))

    def now(self) -> dt.datetime:
        return self._localize(self._clock())

    def _localize(self, moment: dt.datetime) -> dt.datetime:
        # Naive datetimes are taken to already be business-local wall time
        if moment.tzinfo is None:
            return moment.replace(tzinfo=self.tz)
        return moment.astimezone(self.tz)

    def is_open(self, now: Optional[dt.datetime] = None) -> bool:
        """Monday-Friday and open_hour <= hour < close_hour."""
        local = self._localize(now) if now is not None else self.now()
        return local.weekday() < 5 and self.open_hour <= local.hour < self.close_hour

    def next_business_day(self, now: Optional[dt.datetime] = None) -> dt.datetime:
        """
        When the office next opens, normalised to open_hour:00.

        Friday after closing -> Monday, Saturday -> Monday, Sunday -> Monday,
        any other day after closing -> tomorrow, otherwise today.
        """
        local = self._localize(now) if now is not None else self.now()
        weekday = local.weekday()

        if weekday == 4 and local.hour >= self.close_hour:
            days = 3
        elif weekday == 5:
            days = 2
        elif weekday == 6:
            days = 1
        elif local.hour >= self.close_hour:
            days = 1
        else:
            days = 0

        target = local + dt.timedelta(days=days)
        return target.replace(hour=self.open_hour, minute=0, second=0, microsecond=0)

    def status_message(self, now: Optional[dt.datetime] = None) -> str:
        return self.OPEN_MESSAGE if self.is_open(now) else self.CLOSED_MESSAGE
