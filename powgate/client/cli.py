"""CLI entry point for the gate solver: issue, search, submit, confirm."""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import TYPE_CHECKING

import structlog

from powgate.client.api import GateClient
from powgate.client.search import SearchFound, SearchProgress, SearchTask, search
from powgate.config.logging import setup_logging
from powgate.exceptions import GateApiError, SearchAborted
from powgate.models.domain import epoch_ms
from powgate.types import SearchMode

if TYPE_CHECKING:
    from collections.abc import Callable

    from powgate.client.api import IssuedChallenge

logger = structlog.get_logger(__name__)


def _log_progress(event: SearchProgress) -> None:
    logger.info(
        "search_progress",
        total_hashes=event.total_hashes,
        elapsed_ms=event.elapsed_ms,
        hash_rate=event.hash_rate,
    )


def run_search(
    challenge: IssuedChallenge,
    *,
    in_process: bool = False,
    on_progress: Callable[[SearchProgress], None] | None = _log_progress,
) -> SearchFound:
    """Find a nonce for ``challenge``, in a worker process unless ``in_process``."""
    timeout = max(0.0, (challenge.expires_at_ms - epoch_ms()) / 1000)
    if in_process:
        found = search(challenge.payload, challenge.difficulty_bits, on_progress=on_progress)
    else:
        found = None
        with SearchTask(challenge.payload, challenge.difficulty_bits) as task:
            for event in task.events(timeout=timeout):
                if isinstance(event, SearchFound):
                    found = event
                elif on_progress is not None:
                    on_progress(event)
    if found is None:
        raise SearchAborted("nonce space exhausted without a solution")
    return found


async def solve(client: GateClient, *, in_process: bool = False) -> SearchFound:
    """Run one full gate round trip and return the winning search result."""
    challenge = await client.issue()
    logger.info(
        "challenge_issued",
        challenge_id=str(challenge.id),
        difficulty=challenge.difficulty_bits,
        expires_at_ms=challenge.expires_at_ms,
    )
    found = await asyncio.to_thread(run_search, challenge, in_process=in_process)
    await client.submit(
        challenge.id,
        found.nonce,
        elapsed_ms=found.elapsed_ms,
        total_hashes=found.total_hashes,
    )
    logger.info(
        "challenge_solved",
        nonce=found.nonce,
        total_hashes=found.total_hashes,
        elapsed_ms=found.elapsed_ms,
    )
    return found


def simulate(seconds: float) -> None:
    """Print synthetic progress for ``seconds``; never contacts the gate."""
    with SearchTask(bytes(32), 32, mode=SearchMode.SIM) as task:
        try:
            for event in task.events(timeout=seconds):
                if isinstance(event, SearchProgress):
                    _log_progress(event)
        except TimeoutError:
            pass  # the simulation only ends by timing out


async def _run(args: argparse.Namespace) -> int:
    async with GateClient(args.base_url, user_agent=args.user_agent) as client:
        try:
            await solve(client, in_process=args.in_process)
        except GateApiError as exc:
            logger.error("gate_rejected", code=exc.code, status=exc.status, error=str(exc))
            return 1
        except (SearchAborted, TimeoutError) as exc:
            logger.error("search_failed", error=str(exc))
            return 1
        passed = await client.check_status()
        logger.info("gate_status", passed=passed)
        return 0 if passed else 1


def main(argv: list[str] | None = None) -> None:
    """Solve the gate at ``base_url`` and report whether the session is valid."""
    parser = argparse.ArgumentParser(prog="powgate-solve", description=__doc__)
    parser.add_argument("base_url", nargs="?", default="http://localhost:8000")
    parser.add_argument("--user-agent", default="powgate-solve/0.1")
    parser.add_argument("--in-process", action="store_true", help="search in this process")
    parser.add_argument(
        "--simulate",
        type=float,
        metavar="SECONDS",
        help="show synthetic progress only; nothing is solved or submitted",
    )
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    setup_logging(log_level=args.log_level, service="powgate-solve")
    if args.simulate is not None:
        simulate(args.simulate)
        return
    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
