import asyncio
import traceback

from chiv_browser import config
from chiv_browser.errors import ServerUnreachable
from chiv_browser.models import (
    UNSET,
    Candidate,
    FilterCriteria,
    Perspective,
    ServerInfo,
    ServerRecord,
    get_game_type,
    is_official,
)


def prefilter(
    candidate: Candidate,
    criteria: FilterCriteria,
) -> bool:
    """
    Filters that only need the master list entry, checked before spending a
    worker on the server query.
    """
    name = candidate.name
    if name is None:
        return False
    if not criteria.matches_game_type(get_game_type(candidate.map)):
        return False
    if criteria.official_only:
        return is_official(name)
    return criteria.name.lower() in name.lower()


def passes_filters(info: ServerInfo, criteria: FilterCriteria) -> bool:
    if criteria.hide_passworded and info.has_password:
        return False
    if criteria.hide_empty and info.current_players <= 0:
        return False
    if criteria.hide_full and info.current_players >= info.max_players:
        return False
    if criteria.max_ping > UNSET and info.ping > criteria.max_ping:
        return False
    if criteria.min_rank > UNSET and info.min_rank <= criteria.min_rank:
        return False
    if criteria.max_rank > UNSET and info.max_rank >= criteria.max_rank:
        return False
    if (
        criteria.perspective != Perspective.ANY
        and info.perspective != criteria.perspective
    ):
        return False
    return True


class QueryTask:
    """
    Queries one candidate, filters it, locates it and publishes it.
    Any failure just means the candidate produces no record.
    """

    def __init__(
        self,
        candidate: Candidate,
        criteria: FilterCriteria,
        server_query,
        resolver,
        sink,
        stop: asyncio.Event,
    ):
        self.candidate = candidate
        self.criteria = criteria
        self.server_query = server_query
        self.resolver = resolver
        self.sink = sink
        self.stop = stop

    async def run(self) -> ServerRecord | None:
        try:
            return await self._run()
        except asyncio.CancelledError:
            raise
        except Exception:
            if config.DEBUG:
                print("ERROR IN QUERY FOR", self.candidate.address)
                traceback.print_exc()
            return None

    async def _run(self) -> ServerRecord | None:
        candidate = self.candidate
        try:
            info = await self.server_query.fetch_info(candidate.address)
        except ServerUnreachable:
            if config.DEBUG:
                print("SERVER UNREACHABLE", candidate.address)
            return None
        if self.stop.is_set():
            return None

        if not passes_filters(info, self.criteria):
            return None

        # no game port, the server is probably down
        if not info.game_port or info.game_port == "0":
            return None

        game_type = get_game_type(candidate.map)
        location = await self.resolver.resolve(candidate.host)

        record = ServerRecord(
            name=candidate.name,
            address=candidate.address,
            game_port=info.game_port,
            map=candidate.map,
            game_type=game_type,
            ping=info.ping,
            max_players=info.max_players,
            current_players=info.current_players,
            has_password=info.has_password,
            min_rank=info.min_rank,
            max_rank=info.max_rank,
            location=location.label,
            perspective=info.perspective,
            latitude=location.latitude,
            longitude=location.longitude,
            anchor=location.anchor,
        )

        # refresh was stopped while we were querying
        if self.stop.is_set():
            return None
        self.sink.publish(record)
        return record
