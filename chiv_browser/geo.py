import random
import traceback

from chiv_browser import config
from chiv_browser.errors import GeolocationUnavailable
from chiv_browser.models import GeoResult, Location

MIN_OFFSET = 0.0001


def format_location(geo: GeoResult, home_country: str = config.HOME_COUNTRY) -> str:
    """
    "City, State, Country" abroad, "City State, Country" for the home country.
    """
    city = geo.city or ""
    state = geo.state or ""
    if city:
        city += " " if geo.country_code == home_country else ", "
    if state:
        state += ", "
    return (city + state + (geo.country or "")).strip().rstrip(",")


def jitter(val: float, max_offset: float, rng: random.Random) -> float:
    offset = rng.uniform(MIN_OFFSET, max_offset)
    if rng.random() < 0.5:
        return val - offset
    return val + offset


class GeoResolver:
    """
    Best effort location for a server IP. Tries the primary provider, then the
    secondary provider, then coordinates of an already found server with the
    same label. Found coordinates are jittered so markers for servers in one
    datacenter don't stack.
    """

    def __init__(
        self,
        primary,
        secondary,
        sink,
        *,
        max_offset: float = config.JITTER_MAX,
        home_country: str = config.HOME_COUNTRY,
        rng: random.Random | None = None,
    ):
        self.primary = primary
        self.secondary = secondary
        self.sink = sink
        self.max_offset = max_offset
        self.home_country = home_country
        self.rng = rng or random.Random()

    async def _lookup(self, provider, ip: str) -> GeoResult | None:
        if provider is None:
            return None
        try:
            return await provider.resolve(ip)
        except GeolocationUnavailable:
            if config.DEBUG:
                print(f"{ip} not found by {type(provider).__name__}")
            return None
        except Exception:
            if config.DEBUG:
                traceback.print_exc()
            return None

    async def resolve(self, ip: str) -> Location:
        label = ""
        point = None
        for provider in (self.primary, self.secondary):
            geo = await self._lookup(provider, ip)
            if geo is None:
                continue
            if not label:
                label = format_location(geo, self.home_country)
            if geo.has_coordinates:
                point = (geo.latitude, geo.longitude)
                break
        if point is None and label:
            point = self.sink.find_location(label)
            if point is not None and config.DEBUG:
                print(f"Found location of {ip} from other servers at {label}")
        if point is None:
            return Location(label=label)
        lat, lon = point
        return Location(
            label=label,
            latitude=jitter(lat, self.max_offset, self.rng),
            longitude=jitter(lon, self.max_offset, self.rng),
            anchor=point,
        )
