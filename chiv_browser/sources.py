import asyncio
import tarfile
import time
import traceback
import urllib.request
from pathlib import Path

import a2s
import aiohttp
import cachetools
import geoip2.database
import geoip2.errors
import orjson

from chiv_browser import config
from chiv_browser.errors import (
    DirectoryUnavailable,
    GeolocationUnavailable,
    ServerUnreachable,
)
from chiv_browser.models import Candidate, GeoResult, Perspective, ServerInfo

STEAM_API_URL = "https://api.steampowered.com"
IP_API_URL = "http://ip-api.com"
IP_API_FIELDS = "status,message,country,countryCode,regionName,city,lat,lon"

# server rules carrying the rank limits and camera mode
RULE_MIN_RANK = "MinRank"
RULE_MAX_RANK = "MaxRank"
RULE_PERSPECTIVE = "Perspective"

A2S_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    a2s.BrokenMessageError,
    a2s.BufferExhaustedError,
)


def clean_name(name: str) -> str:
    return name.replace("\u0001", "").replace("\t", "").strip()


class SteamDirectory:
    """
    Master server list from the Steam Web API.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        api_key: str,
        *,
        query_filter: str = config.QUERY_FILTER,
        limit: str = config.QUERY_LIMIT,
    ):
        self.session = session
        self.params = {
            "key": api_key,
            "format": "json",
            "limit": limit,
            "filter": query_filter,
        }

    async def list_candidates(self) -> list[Candidate]:
        try:
            async with self.session.get(
                "/IGameServersService/GetServerList/v1/", params=self.params
            ) as resp:
                body = await resp.read()
                body = body.decode("utf-8", errors="replace")
                body = orjson.loads(body)
                servers = body["response"].get("servers", [])
        except (aiohttp.ClientError, asyncio.TimeoutError, orjson.JSONDecodeError) as e:
            raise DirectoryUnavailable(str(e)) from e
        except (KeyError, TypeError, AttributeError) as e:
            raise DirectoryUnavailable(f"Malformed server list: {e!r}") from e
        candidates = []
        seen = set()
        for server in servers:
            addr = server.get("addr")
            if not addr or addr in seen:
                continue
            seen.add(addr)
            name = server.get("name")
            candidates.append(
                Candidate(
                    name=clean_name(name) if name is not None else None,
                    address=addr,
                    map=server.get("map", ""),
                )
            )
        return candidates


def _rule_int(rules: dict, key: str, default: int = 0) -> int:
    try:
        return int(rules.get(key, default))
    except (TypeError, ValueError):
        return default


class A2SServerQuery:
    """
    Live server info over A2S_INFO, with rank limits and perspective from A2S_RULES.
    """

    def __init__(self, timeout: float = config.A2S_TIMEOUT):
        self.timeout = timeout

    async def fetch_info(self, address: str) -> ServerInfo:
        host, port = address.rsplit(":", 1)
        addr = (host, int(port))
        try:
            info = await a2s.ainfo(addr, timeout=self.timeout)
        except A2S_ERRORS as e:
            raise ServerUnreachable(f"{address}: {e!r}") from e
        try:
            rules = await a2s.arules(addr, timeout=self.timeout)
        except A2S_ERRORS:
            if config.DEBUG:
                print("ERROR IN A2S RULES QUERY FOR", address)
            rules = {}
        return ServerInfo(
            has_password=bool(info.password_protected),
            current_players=info.player_count,
            max_players=info.max_players,
            ping=round(info.ping * 1000),
            min_rank=_rule_int(rules, RULE_MIN_RANK),
            max_rank=_rule_int(rules, RULE_MAX_RANK),
            perspective=_rule_int(rules, RULE_PERSPECTIVE, Perspective.ANY),
            game_port=str(info.port) if info.port else "",
        )


class GeoIPProvider:
    """
    Local MaxMind City database.
    """

    def __init__(self, reader: geoip2.database.Reader):
        self.reader = reader

    async def resolve(self, ip: str) -> GeoResult | None:
        try:
            city = self.reader.city(ip)
        except (geoip2.errors.AddressNotFoundError, ValueError) as e:
            raise GeolocationUnavailable(ip) from e
        return GeoResult(
            city=city.city.name or "",
            state=city.subdivisions.most_specific.name or "",
            country=city.country.name or "",
            country_code=city.country.iso_code or "",
            latitude=city.location.latitude,
            longitude=city.location.longitude,
        )


class IPApiProvider:
    """
    ip-api.com lookups. The free endpoint is rate limited, so answers are kept
    for the life of the process.
    """

    def __init__(self, session: aiohttp.ClientSession, *, ttl: float = 60 * 60):
        self.session = session
        self.cache: cachetools.TTLCache = cachetools.TTLCache(maxsize=4000, ttl=ttl)

    async def resolve(self, ip: str) -> GeoResult | None:
        cached = self.cache.get(ip)
        if cached is not None:
            return cached
        try:
            async with self.session.get(
                f"/json/{ip}", params={"fields": IP_API_FIELDS}
            ) as resp:
                body = orjson.loads(await resp.read())
        except (aiohttp.ClientError, asyncio.TimeoutError, orjson.JSONDecodeError) as e:
            raise GeolocationUnavailable(ip) from e
        if body.get("status") != "success":
            raise GeolocationUnavailable(f"{ip}: {body.get('message')}")
        geo = GeoResult(
            city=body.get("city") or "",
            state=body.get("regionName") or "",
            country=body.get("country") or "",
            country_code=body.get("countryCode") or "",
            latitude=body.get("lat"),
            longitude=body.get("lon"),
        )
        self.cache[ip] = geo
        return geo


def handle_geoip(geoip_db: Path, edition: str = "GeoLite2-City", key=config.GEOIP_KEY):
    """
    Downloads the MaxMind database if it is missing or older than 30 days.
    """
    if geoip_db.exists():
        diff = time.time() - geoip_db.stat().st_mtime
        if diff / 24 / 3600 <= 30:
            return True
    if not key:
        print("Need to pass in GEOIP_KEY to download", edition)
        return geoip_db.exists()
    archive_name = f"./{edition}.tar.gz"
    try:
        urllib.request.urlretrieve(
            f"https://download.maxmind.com/app/geoip_download?edition_id={edition}&license_key={key}&suffix=tar.gz",
            archive_name,
        )
    except OSError:
        traceback.print_exc()
        return geoip_db.exists()
    with tarfile.open(archive_name) as tar:
        for member in tar.getmembers():
            if member.name.endswith(".mmdb"):
                with tar.extractfile(member) as db:
                    with open(geoip_db, "wb") as out:
                        out.write(db.read())
                break
    return True
