"""Trading-session status for exchange-traded indices."""

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

OPEN = "open"
PREMARKET = "premarket"
AFTERHOURS = "afterhours"
CLOSED = "closed"


@dataclass(frozen=True)
class MarketSession:
    """Regular weekday trading hours of one exchange, in its local time."""

    name: str
    timezone: str
    premarket_start: time
    market_open: time
    market_close: time
    afterhours_end: time | None = None
    premarket_label: str = "장 전"


KRX_SESSION = MarketSession(
    name="KRX",
    timezone="Asia/Seoul",
    premarket_start=time(8, 0),
    market_open=time(9, 0),
    market_close=time(15, 30),
    premarket_label="장 전",
)

US_SESSION = MarketSession(
    name="NYSE",
    timezone="America/New_York",
    premarket_start=time(4, 0),
    market_open=time(9, 30),
    market_close=time(16, 0),
    afterhours_end=time(20, 0),
    premarket_label="프리마켓",
)

ASSET_SESSIONS = {
    "kospi": KRX_SESSION,
    "kosdaq": KRX_SESSION,
    "sp500": US_SESSION,
    "nasdaq": US_SESSION,
    "dowjones": US_SESSION,
}


@dataclass
class MarketStatusInfo:
    """Session state shown next to an index card."""

    status: str
    label: str
    next_open_in: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result = {"status": self.status, "label": self.label}
        if self.next_open_in:
            result["nextOpenIn"] = self.next_open_in
        return result


def format_time_remaining(delta: timedelta) -> str:
    """Render the wait until the next open, e.g. ``2시간 5분 후 개장``."""
    total_minutes = int(delta.total_seconds() // 60)
    if total_minutes <= 0:
        return ""
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        return f"{hours}시간 {minutes}분 후 개장"
    return f"{minutes}분 후 개장"


def _is_weekday(moment: datetime) -> bool:
    return moment.weekday() < 5


def next_open(session: MarketSession, now: datetime) -> datetime:
    """First regular open strictly after ``now``."""
    tz = ZoneInfo(session.timezone)
    local_now = now.astimezone(tz)
    day = local_now.date()
    while True:
        candidate = datetime.combine(day, session.market_open, tzinfo=tz)
        if candidate.weekday() < 5 and candidate > local_now:
            return candidate
        day += timedelta(days=1)


def _time_until_open(session: MarketSession, now: datetime) -> str:
    # Compare in UTC so DST transitions are accounted for
    remaining = next_open(session, now).astimezone(timezone.utc) - now.astimezone(timezone.utc)
    return format_time_remaining(remaining)


def get_session_status(session: MarketSession, now: datetime | None = None) -> MarketStatusInfo:
    """
    Classify ``now`` against an exchange's weekday session.

    Args:
        session: Exchange hours
        now: Moment to classify (timezone-aware; defaults to the current time)

    Returns:
        MarketStatusInfo with a Korean label and, before an open, the time left
    """
    now = now or datetime.now(timezone.utc)
    local_now = now.astimezone(ZoneInfo(session.timezone))
    current = local_now.time()

    if _is_weekday(local_now):
        if session.market_open <= current < session.market_close:
            return MarketStatusInfo(status=OPEN, label="장 중")

        if session.premarket_start <= current < session.market_open:
            return MarketStatusInfo(
                status=PREMARKET,
                label=session.premarket_label,
                next_open_in=_time_until_open(session, now),
            )

        if session.afterhours_end and session.market_close <= current < session.afterhours_end:
            return MarketStatusInfo(status=AFTERHOURS, label="애프터마켓")

    return MarketStatusInfo(
        status=CLOSED,
        label="장 마감",
        next_open_in=_time_until_open(session, now),
    )


def get_market_status(asset_id: str, now: datetime | None = None) -> Optional[MarketStatusInfo]:
    """Session status for an index, or None for assets without trading hours."""
    session = ASSET_SESSIONS.get(asset_id)
    if session is None:
        return None
    return get_session_status(session, now)
