"""
Constants and helpers shared by unit and API tests.
"""

from datetime import datetime, timedelta

from admin_auth.schemas.common import GeoLocation, SessionInfo


ADMIN_SECRET = "a" * 128
ADMIN_USER_ID = "admin-user-1"
ALLOWED_IP = "10.1.2.3"
OUTSIDE_IP = "203.0.113.9"

CHROME_UA = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36"
FIREFOX_UA = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"

# Tuesday, inside the 09:00-18:00 UTC window
BUSINESS_TIME = datetime(2026, 3, 10, 12, 0, 0)
# Tuesday, 03:00 UTC
NIGHT_TIME = datetime(2026, 3, 10, 3, 0, 0)

NEW_YORK = GeoLocation(lat=40.7128, lng=-74.0060, country="US", city="New York")
TOKYO = GeoLocation(lat=35.6762, lng=139.6503, country="JP", city="Tokyo")


class FakeClock:
    """Callable clock returning a settable naive UTC time"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def session_info(ip_address=ALLOWED_IP, user_agent=CHROME_UA, geo_location=None) -> SessionInfo:
    return SessionInfo(ip_address=ip_address, user_agent=user_agent, geo_location=geo_location)


API = "/v1/system-admin"


def headers(ip=ALLOWED_IP, user_agent=CHROME_UA, token=None, **extra):
    """Request headers as sent through the edge proxy"""
    values = {"X-Forwarded-For": ip, "User-Agent": user_agent}
    if token:
        values["X-Admin-Token"] = token
    values.update(extra)
    return values
