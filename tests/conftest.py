import asyncio
import random

import pytest

from chiv_browser.geo import GeoResolver
from chiv_browser.models import Candidate, GeoResult, ServerInfo
from chiv_browser.orchestrator import QueryOrchestrator
from chiv_browser.sink import ResultSink


def make_info(**kwargs) -> ServerInfo:
    values = {
        "current_players": 5,
        "max_players": 10,
        "ping": 50,
        "game_port": "7777",
    }
    values.update(kwargs)
    return ServerInfo(**values)


def make_candidate(i: int, name: str | None = None, map: str = "aocffa-moor"):
    return Candidate(
        name=name if name is not None else f"Server {i}",
        address=f"10.0.0.{i}:27015",
        map=map,
    )


class FakeDirectory:
    def __init__(self, candidates=(), error: Exception | None = None):
        self.candidates = list(candidates)
        self.error = error
        self.calls = 0

    async def list_candidates(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.candidates)


class FakeServerQuery:
    """
    Answers from a dict of address -> ServerInfo (or an exception to raise).
    Addresses in `gated` wait for `gate` to be set before answering.
    """

    def __init__(self, infos, *, gate: asyncio.Event | None = None, gated=None):
        self.infos = infos
        self.gate = gate
        self.gated = gated
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0

    async def fetch_info(self, address: str) -> ServerInfo:
        self.calls.append(address)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None and (self.gated is None or address in self.gated):
                await self.gate.wait()
            await asyncio.sleep(0)
            result = self.infos[address]
            if isinstance(result, Exception):
                raise result
            return result
        finally:
            self.active -= 1


class FakeGeoProvider:
    def __init__(self, results=None, error: Exception | None = None):
        self.results = results or {}
        self.error = error
        self.calls: list[str] = []

    async def resolve(self, ip: str) -> GeoResult | None:
        self.calls.append(ip)
        if self.error is not None:
            raise self.error
        return self.results.get(ip)


class SpySink(ResultSink):
    def __init__(self):
        super().__init__()
        self.lookups: list[str] = []

    def find_location(self, label):
        self.lookups.append(label)
        return super().find_location(label)


async def wait_until(predicate, timeout: float = 1.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(poll(), timeout)


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def sink():
    return ResultSink()


@pytest.fixture
def build(rng):
    """
    Wires an orchestrator from fakes: build(candidates, infos, ...) -> (orchestrator, query).
    """

    def _build(
        candidates,
        infos,
        *,
        sink=None,
        primary=None,
        secondary=None,
        gate=None,
        gated=None,
        directory_error=None,
    ):
        sink = sink if sink is not None else ResultSink()
        query = FakeServerQuery(infos, gate=gate, gated=gated)
        resolver = GeoResolver(
            primary or FakeGeoProvider(), secondary or FakeGeoProvider(), sink, rng=rng
        )
        orchestrator = QueryOrchestrator(
            FakeDirectory(candidates, directory_error),
            query,
            resolver,
            sink,
        )
        return orchestrator, query

    return _build
