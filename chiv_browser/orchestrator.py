import asyncio
import concurrent.futures
import contextlib
import threading
from collections.abc import Callable

from chiv_browser.models import FilterCriteria, ServerRecord
from chiv_browser.query import QueryTask, prefilter


class WorkerPool:
    """
    At most `size` submitted coroutines run at once. shutdown_now() drops
    everything queued and interrupts what is running at its next await.
    """

    def __init__(self, size: int):
        self.slots = asyncio.Semaphore(size)
        self.tasks: set[asyncio.Task] = set()
        self.is_shutdown = False

    def submit(self, fn: Callable, *args) -> asyncio.Task:
        task = asyncio.create_task(self._work(fn, *args))
        self.tasks.add(task)
        return task

    async def _work(self, fn, *args):
        async with self.slots:
            if self.is_shutdown:
                return None
            return await fn(*args)

    def shutdown_now(self):
        self.is_shutdown = True
        for task in self.tasks:
            task.cancel()


class QueryOrchestrator:
    def __init__(self, directory, server_query, resolver, sink):
        self.directory = directory
        self.server_query = server_query
        self.resolver = resolver
        self.sink = sink
        self.pool: WorkerPool | None = None
        self.stop: asyncio.Event | None = None
        self._cycle = asyncio.Lock()

    @property
    def is_refreshing(self) -> bool:
        return self._cycle.locked()

    async def run(self, criteria: FilterCriteria) -> list[ServerRecord]:
        """
        Runs one refresh. Raises DirectoryUnavailable if the master list can't
        be fetched; servers that fail on their own are just left out.
        Records come back in the order their queries finished.
        """
        if self._cycle.locked():
            print("Stopping previous refresh.")
            self.cancel()
        stop = self.stop = asyncio.Event()
        async with self._cycle:
            if stop.is_set():
                return []
            self.sink.reset()
            candidates = await self.directory.list_candidates()
            print("Retrieved servers from Master Server.")
            if stop.is_set():
                return []

            pool = self.pool = WorkerPool(criteria.worker_count)
            print("Querying individual servers...")
            for candidate in candidates:
                if not prefilter(candidate, criteria):
                    continue
                task = QueryTask(
                    candidate,
                    criteria,
                    self.server_query,
                    self.resolver,
                    self.sink,
                    stop,
                )
                pool.submit(task.run)

            records = []
            pending = set(pool.tasks)
            while pending:
                done, pending = await asyncio.wait(
                    pending, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    if task.cancelled():
                        continue
                    record = task.result()
                    if record is not None:
                        records.append(record)
                if stop.is_set() and not pool.is_shutdown:
                    pool.shutdown_now()
            print(f"Found {len(records)} of {len(pool.tasks)} queried servers.")
            return records

    def cancel(self):
        if self.stop is None or self.stop.is_set():
            return
        self.stop.set()
        if self.pool is not None:
            self.pool.shutdown_now()
        print("Refreshing stopped.")


class Refresher:
    """
    Runs refreshes on a background event loop so a UI thread can start,
    stop and poll them. `factory` is an async context manager yielding the
    QueryOrchestrator, entered on that loop.
    """

    def __init__(self, factory: Callable[[], contextlib.AbstractAsyncContextManager]):
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(
            target=self.loop.run_forever, name="refresher", daemon=True
        )
        self.thread.start()
        self._stack = contextlib.AsyncExitStack()
        self._future: concurrent.futures.Future | None = None
        self.orchestrator: QueryOrchestrator = self._call(
            self._stack.enter_async_context(factory())
        )

    def _call(self, coro):
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result()

    def start_refresh(self, criteria: FilterCriteria) -> concurrent.futures.Future:
        self._future = asyncio.run_coroutine_threadsafe(
            self.orchestrator.run(criteria), self.loop
        )
        return self._future

    def cancel_refresh(self):
        self.loop.call_soon_threadsafe(self.orchestrator.cancel)

    def is_refreshing(self) -> bool:
        return self._future is not None and not self._future.done()

    @property
    def sink(self):
        return self.orchestrator.sink

    def close(self):
        if self.is_refreshing():
            self.cancel_refresh()
            with contextlib.suppress(Exception):
                self._future.result()
        self._call(self._stack.aclose())
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join()
        self.loop.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
