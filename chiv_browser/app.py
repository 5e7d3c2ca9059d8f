import asyncio
import contextlib
import sys
import traceback
from pathlib import Path

import aiohttp
import geoip2.database
import orjson

from chiv_browser import config
from chiv_browser.errors import DirectoryUnavailable
from chiv_browser.geo import GeoResolver
from chiv_browser.models import FilterCriteria, ServerRecord
from chiv_browser.orchestrator import QueryOrchestrator
from chiv_browser.sink import ResultSink
from chiv_browser.sources import (
    IP_API_URL,
    STEAM_API_URL,
    A2SServerQuery,
    GeoIPProvider,
    IPApiProvider,
    SteamDirectory,
    handle_geoip,
)


def get_ping(server: ServerRecord):
    return server.ping


@contextlib.asynccontextmanager
async def open_orchestrator(sink: ResultSink | None = None):
    """
    Builds a QueryOrchestrator on the default Steam, A2S, MaxMind and ip-api
    collaborators. Sessions and the GeoIP reader are closed on exit.
    """
    sink = sink or ResultSink()
    async with contextlib.AsyncExitStack() as stack:
        primary = None
        if handle_geoip(config.GEOIP_DB):
            reader = stack.enter_context(geoip2.database.Reader(config.GEOIP_DB))
            primary = GeoIPProvider(reader)
        api_session = await stack.enter_async_context(
            aiohttp.ClientSession(base_url=STEAM_API_URL, raise_for_status=True)
        )
        geo_session = await stack.enter_async_context(
            aiohttp.ClientSession(base_url=IP_API_URL)
        )
        yield QueryOrchestrator(
            SteamDirectory(api_session, config.STEAM_API_KEY),
            A2SServerQuery(),
            GeoResolver(primary, IPApiProvider(geo_session), sink),
            sink,
        )


async def main(criteria: FilterCriteria, out: Path = Path("servers.json")):
    async with open_orchestrator() as orchestrator:
        try:
            servers = await orchestrator.run(criteria)
        except DirectoryUnavailable:
            traceback.print_exc()
            return 1
    servers.sort(key=get_ping)
    with open(out, "wb") as fp:
        fp.write(
            orjson.dumps(
                [server.to_dict() for server in servers], option=orjson.OPT_INDENT_2
            )
        )
    print(len(servers))
    return 0


def start():
    if not config.STEAM_API_KEY:
        print("Need to pass in STEAM_API_KEY")
        sys.exit(1)
    sys.exit(asyncio.run(main(config.criteria_from_env())))
