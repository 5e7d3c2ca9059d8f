import asyncio
from types import SimpleNamespace

import aiohttp
import geoip2.errors
import orjson
import pytest

from chiv_browser import sources
from chiv_browser.errors import (
    DirectoryUnavailable,
    GeolocationUnavailable,
    ServerUnreachable,
)
from chiv_browser.sources import (
    A2SServerQuery,
    GeoIPProvider,
    IPApiProvider,
    SteamDirectory,
)


class FakeResponse:
    def __init__(self, body: bytes):
        self.body = body

    async def read(self):
        return self.body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, body=None, error: Exception | None = None):
        self.body = body
        self.error = error
        self.calls = []

    def get(self, path, params=None):
        self.calls.append((path, params))
        if self.error is not None:
            raise self.error
        return FakeResponse(orjson.dumps(self.body))


@pytest.mark.asyncio
async def test_steam_directory_candidates():
    session = FakeSession(
        {
            "response": {
                "servers": [
                    {"addr": "1.2.3.4:27015", "name": "\u0001Duel Pit\t", "map": "aocduel-pit"},
                    {"addr": "1.2.3.4:27015", "name": "Duel Pit", "map": "aocduel-pit"},
                    {"addr": "5.6.7.8:27015", "map": "aocffa-moor"},
                ]
            }
        }
    )
    directory = SteamDirectory(session, "key")

    candidates = await directory.list_candidates()

    assert [(c.name, c.address, c.map) for c in candidates] == [
        ("Duel Pit", "1.2.3.4:27015", "aocduel-pit"),
        (None, "5.6.7.8:27015", "aocffa-moor"),
    ]
    path, params = session.calls[0]
    assert path == "/IGameServersService/GetServerList/v1/"
    assert params["filter"] == r"\gamedir\chivalrymedievalwarfare"
    assert params["key"] == "key"


@pytest.mark.asyncio
async def test_steam_directory_empty_response():
    directory = SteamDirectory(FakeSession({"response": {}}), "key")
    assert await directory.list_candidates() == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "session",
    [
        FakeSession(error=aiohttp.ClientConnectionError("refused")),
        FakeSession(error=asyncio.TimeoutError()),
        FakeSession({"error": "bad key"}),
        FakeSession([]),
        FakeSession({"response": []}),
    ],
)
async def test_steam_directory_failures(session):
    with pytest.raises(DirectoryUnavailable):
        await SteamDirectory(session, "key").list_candidates()


def a2s_info(**kwargs):
    values = {
        "password_protected": False,
        "player_count": 12,
        "max_players": 32,
        "ping": 0.0423,
        "port": 7777,
    }
    values.update(kwargs)
    return SimpleNamespace(**values)


@pytest.mark.asyncio
async def test_a2s_query(monkeypatch):
    async def ainfo(address, timeout):
        assert address == ("1.2.3.4", 27015)
        return a2s_info(password_protected=True)

    async def arules(address, timeout):
        return {"MinRank": "5", "MaxRank": "60", "Perspective": "1"}

    monkeypatch.setattr(sources.a2s, "ainfo", ainfo)
    monkeypatch.setattr(sources.a2s, "arules", arules)

    info = await A2SServerQuery().fetch_info("1.2.3.4:27015")

    assert info.has_password is True
    assert info.current_players == 12
    assert info.max_players == 32
    assert info.ping == 42
    assert info.min_rank == 5
    assert info.max_rank == 60
    assert info.perspective == 1
    assert info.game_port == "7777"


@pytest.mark.asyncio
async def test_a2s_query_without_rules_or_port(monkeypatch):
    async def ainfo(address, timeout):
        return a2s_info(port=None)

    async def arules(address, timeout):
        raise asyncio.TimeoutError()

    monkeypatch.setattr(sources.a2s, "ainfo", ainfo)
    monkeypatch.setattr(sources.a2s, "arules", arules)

    info = await A2SServerQuery().fetch_info("1.2.3.4:27015")

    assert info.min_rank == 0
    assert info.max_rank == 0
    assert info.perspective == 0
    assert info.game_port == ""


@pytest.mark.asyncio
async def test_a2s_query_unreachable(monkeypatch):
    async def ainfo(address, timeout):
        raise ConnectionRefusedError()

    monkeypatch.setattr(sources.a2s, "ainfo", ainfo)

    with pytest.raises(ServerUnreachable):
        await A2SServerQuery().fetch_info("1.2.3.4:27015")


class FakeReader:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error

    def city(self, ip):
        if self.error is not None:
            raise self.error
        return self.response


@pytest.mark.asyncio
async def test_geoip_provider():
    reader = FakeReader(
        SimpleNamespace(
            city=SimpleNamespace(name="Dallas"),
            subdivisions=SimpleNamespace(most_specific=SimpleNamespace(name="Texas")),
            country=SimpleNamespace(name="United States", iso_code="US"),
            location=SimpleNamespace(latitude=32.78, longitude=-96.8),
        )
    )

    geo = await GeoIPProvider(reader).resolve("1.2.3.4")

    assert geo.city == "Dallas"
    assert geo.state == "Texas"
    assert geo.country_code == "US"
    assert geo.has_coordinates


@pytest.mark.asyncio
async def test_geoip_provider_unknown_address():
    reader = FakeReader(error=geoip2.errors.AddressNotFoundError("not found"))
    with pytest.raises(GeolocationUnavailable):
        await GeoIPProvider(reader).resolve("10.0.0.1")


@pytest.mark.asyncio
async def test_ip_api_provider_caches():
    session = FakeSession(
        {
            "status": "success",
            "country": "Germany",
            "countryCode": "DE",
            "regionName": "Hesse",
            "city": "Frankfurt am Main",
            "lat": 50.11,
            "lon": 8.68,
        }
    )
    provider = IPApiProvider(session)

    first = await provider.resolve("1.2.3.4")
    second = await provider.resolve("1.2.3.4")

    assert first == second
    assert first.state == "Hesse"
    assert first.has_coordinates
    assert len(session.calls) == 1
    assert session.calls[0][0] == "/json/1.2.3.4"


@pytest.mark.asyncio
async def test_ip_api_provider_failure():
    provider = IPApiProvider(FakeSession({"status": "fail", "message": "private range"}))
    with pytest.raises(GeolocationUnavailable):
        await provider.resolve("10.0.0.1")
    provider = IPApiProvider(FakeSession(error=aiohttp.ClientConnectionError()))
    with pytest.raises(GeolocationUnavailable):
        await provider.resolve("1.2.3.4")
