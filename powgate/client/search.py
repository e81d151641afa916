"""Client-side nonce search.

``search`` is the brute-force loop: start at a random nonce, hash, test,
increment with wraparound at 2**32. Hashes are processed in batches and the
wall clock is only read between batches, which keeps progress reporting off
the hot path. Expected work is ``2**difficulty`` hashes; there is no shortcut.

``SearchTask`` runs the loop in a separate process so a CPU-bound search never
blocks the caller. The process talks back over a bounded queue: progress
events (dropped when the queue is full) and one terminal ``SearchFound``.
"""

from __future__ import annotations

import hashlib
import multiprocessing
import queue
import random
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from powgate.core import hashing
from powgate.exceptions import SearchAborted
from powgate.types import SearchEventKind, SearchMode

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

logger = structlog.get_logger(__name__)

DEFAULT_BATCH_SIZE = 50_000
DEFAULT_REPORT_INTERVAL = 0.25  # seconds
DEFAULT_SIM_HASH_RATE = 250_000  # hashes/sec
_POLL_SECONDS = 0.05


@dataclass(frozen=True)
class SearchProgress:
    total_hashes: int
    elapsed_ms: int
    hash_rate: int  # hashes/sec over the last reporting interval
    kind: SearchEventKind = field(default=SearchEventKind.PROGRESS, init=False)


@dataclass(frozen=True)
class SearchFound:
    nonce: int
    total_hashes: int
    elapsed_ms: int
    kind: SearchEventKind = field(default=SearchEventKind.FOUND, init=False)


SearchEvent = SearchProgress | SearchFound


def search(
    payload: bytes,
    difficulty_bits: int,
    *,
    start_nonce: int | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
    report_interval: float = DEFAULT_REPORT_INTERVAL,
    on_progress: Callable[[SearchProgress], None] | None = None,
    should_stop: Callable[[], bool] | None = None,
    max_attempts: int | None = None,
) -> SearchFound | None:
    """Search for a nonce whose digest meets ``difficulty_bits``.

    Returns the winning nonce with attempt count and elapsed time, or None if
    ``should_stop`` asked to stop or ``max_attempts`` (default: the whole
    nonce space) ran out.
    """
    hashing.validate_difficulty(difficulty_bits)
    if len(payload) != hashing.PAYLOAD_BYTES:
        msg = f"challenge payload must be {hashing.PAYLOAD_BYTES} bytes"
        raise ValueError(msg)
    if batch_size <= 0:
        msg = "batch_size must be positive"
        raise ValueError(msg)

    nonce = start_nonce if start_nonce is not None else random.getrandbits(32)
    hashing.encode_nonce(nonce)
    if max_attempts is not None and max_attempts < 0:
        msg = "max_attempts must not be negative"
        raise ValueError(msg)
    limit = hashing.NONCE_SPACE
    if max_attempts is not None:
        limit = min(max_attempts, hashing.NONCE_SPACE)

    prefix = hashlib.sha256(payload)
    meets = hashing.meets_difficulty
    started = last_report = time.monotonic()
    total = last_total = 0

    while total < limit:
        for _ in range(min(batch_size, limit - total)):
            h = prefix.copy()
            h.update(nonce.to_bytes(4, "big"))
            total += 1
            if meets(h.digest(), difficulty_bits):
                elapsed_ms = max(0, round((time.monotonic() - started) * 1000))
                return SearchFound(nonce=nonce, total_hashes=total, elapsed_ms=elapsed_ms)
            nonce = (nonce + 1) & 0xFFFFFFFF

        if should_stop is not None and should_stop():
            return None

        now = time.monotonic()
        if on_progress is not None and now - last_report >= report_interval:
            delta = now - last_report
            on_progress(
                SearchProgress(
                    total_hashes=total,
                    elapsed_ms=max(1, round((now - started) * 1000)),
                    hash_rate=round((total - last_total) / delta) if delta > 0 else 0,
                )
            )
            last_report, last_total = now, total

    return None


def simulate_progress(
    emit: Callable[[SearchProgress], None],
    *,
    hash_rate: int = DEFAULT_SIM_HASH_RATE,
    report_interval: float = DEFAULT_REPORT_INTERVAL,
    should_stop: Callable[[], bool] | None = None,
) -> None:
    """Emit synthetic progress at a fixed hash rate, forever, without hashing.

    Display-only: it never produces a ``SearchFound`` and must not be used
    to answer a challenge.
    """
    rate = max(1, hash_rate)
    started = time.monotonic()
    total = 0
    while should_stop is None or not should_stop():
        time.sleep(report_interval)
        total += round(rate * report_interval)
        emit(
            SearchProgress(
                total_hashes=total,
                elapsed_ms=max(1, round((time.monotonic() - started) * 1000)),
                hash_rate=rate,
            )
        )


def _run_worker(
    channel: Any,
    payload: bytes,
    difficulty_bits: int,
    mode: SearchMode,
    start_nonce: int | None,
    batch_size: int,
    report_interval: float,
    sim_hash_rate: int,
) -> None:
    """Process entry point: run the search and post events to ``channel``."""

    def post_progress(event: SearchProgress) -> None:
        try:
            channel.put_nowait(event)
        except queue.Full:
            pass  # progress is best-effort

    if mode is SearchMode.SIM:
        simulate_progress(post_progress, hash_rate=sim_hash_rate, report_interval=report_interval)
        return

    found = search(
        payload,
        difficulty_bits,
        start_nonce=start_nonce,
        batch_size=batch_size,
        report_interval=report_interval,
        on_progress=post_progress,
    )
    channel.put(found)  # None means the nonce space was exhausted


class SearchTask:
    """A cancellable nonce search running in its own process.

    Usage::

        with SearchTask(payload, bits) as task:
            for event in task.events():
                if isinstance(event, SearchFound):
                    submit(event.nonce)

    After ``cancel()`` no further events are delivered.
    """

    def __init__(
        self,
        payload: bytes,
        difficulty_bits: int,
        *,
        mode: SearchMode = SearchMode.NORMAL,
        start_nonce: int | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        report_interval: float = DEFAULT_REPORT_INTERVAL,
        sim_hash_rate: int = DEFAULT_SIM_HASH_RATE,
        channel_size: int = 16,
    ) -> None:
        hashing.validate_difficulty(difficulty_bits)
        if len(payload) != hashing.PAYLOAD_BYTES:
            msg = f"challenge payload must be {hashing.PAYLOAD_BYTES} bytes"
            raise ValueError(msg)
        self._args = (
            payload,
            difficulty_bits,
            mode,
            start_nonce,
            batch_size,
            report_interval,
            sim_hash_rate,
        )
        self._ctx = multiprocessing.get_context("spawn")
        self._channel = self._ctx.Queue(maxsize=max(2, channel_size))
        self._process: Any = None
        self._cancelled = False
        self._done = False
        self._result: SearchFound | None = None

    def start(self) -> SearchTask:
        if self._process is not None:
            msg = "search task already started"
            raise RuntimeError(msg)
        self._process = self._ctx.Process(
            target=_run_worker,
            args=(self._channel, *self._args),
            name="powgate-search",
            daemon=True,
        )
        self._process.start()
        logger.debug("search_started", pid=self._process.pid, difficulty=self._args[1])
        return self

    def events(self, timeout: float | None = None) -> Iterator[SearchEvent]:
        """Yield progress events, then the terminal ``SearchFound``.

        Stops silently after ``cancel()`` or when the nonce space is exhausted.
        Raises ``TimeoutError`` if ``timeout`` seconds pass without a result,
        ``SearchAborted`` if the search process dies.
        """
        if self._process is None:
            self.start()
        deadline = None if timeout is None else time.monotonic() + timeout

        while not self._cancelled and not self._done:
            if deadline is not None and time.monotonic() > deadline:
                self.cancel()
                raise TimeoutError("nonce search timed out")
            try:
                event = self._channel.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                if not self._process.is_alive() and self._channel.empty():
                    self._done = True
                    raise SearchAborted(
                        f"search process exited with {self._process.exitcode}"
                    ) from None
                continue

            if self._cancelled:
                return
            if event is None:
                self._done = True
                logger.warning("search_exhausted", difficulty=self._args[1])
                return
            if isinstance(event, SearchFound):
                self._done = True
                self._result = event
                self._process.join(timeout=1)
                logger.debug(
                    "search_found", total_hashes=event.total_hashes, elapsed_ms=event.elapsed_ms
                )
            yield event

    def wait(self, timeout: float | None = None) -> SearchFound | None:
        """Drain events and return the result (None if exhausted or cancelled)."""
        for _ in self.events(timeout=timeout):
            pass
        return self._result

    def cancel(self) -> None:
        """Terminate the search; safe to call repeatedly."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._process is not None and self._process.is_alive():
            self._process.terminate()
            self._process.join(timeout=1)
        self._channel.close()
        self._channel.cancel_join_thread()
        logger.debug("search_cancelled")

    @property
    def result(self) -> SearchFound | None:
        return self._result

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.is_alive() and not self._cancelled

    def __enter__(self) -> SearchTask:
        if self._process is None:
            self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cancel()
