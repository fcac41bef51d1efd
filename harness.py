import asyncio
import logging
import time
from typing import Optional, TextIO

import aiohttp

from config import (
    HarnessConfig, CLIENT_MAX_CONNECTIONS, CLIENT_KEEPALIVE_TIMEOUT_SECONDS
)
from filters import ResponseFilter, filter_for
from metrics import SampleRecord, RunSummary
from protocol import now_us, padding, parse_echo_body, derive_sample, MalformedEchoResponse
from sink import ResultSink
from uploader import ReportUploader

logger = logging.getLogger(__name__)


class TransportFailure(Exception):
    """A request could not be completed. The run is aborted, never retried."""


def new_session() -> aiohttp.ClientSession:
    connector = aiohttp.TCPConnector(
        limit=CLIENT_MAX_CONNECTIONS,
        keepalive_timeout=CLIENT_KEEPALIVE_TIMEOUT_SECONDS,
    )
    return aiohttp.ClientSession(
        connector=connector,
        auto_decompress=False,
        skip_auto_headers=("Accept-Encoding",),
    )


async def exchange(session: aiohttp.ClientSession, config: HarnessConfig,
                   response_filter: ResponseFilter) -> Optional[SampleRecord]:
    """Performs one timestamp exchange.

    Returns None when the filter rejects the response; its body is drained but
    never parsed, so a cache miss served by something other than the echo
    responder does not abort the run.
    """
    if config.sends_payload:
        method = "POST"
        form = {"payload": padding(config.req_size), "respSize": str(config.resp_size)}
    else:
        method = "GET"
        form = None

    try:
        sent_us = now_us()
        async with session.request(method, config.addr, data=form) as resp:
            received_us = now_us()
            # Read the whole body so a discarded sample still leaves the connection reusable
            raw = await resp.read()
            kept = response_filter.keep(resp.headers)
    except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
        raise TransportFailure(f"{method} {config.addr}: {e!r}") from e

    if not kept:
        return None
    try:
        echo = parse_echo_body(raw.decode("utf-8", "replace"))
    except MalformedEchoResponse as e:
        raise TransportFailure(f"{method} {config.addr}: HTTP {resp.status}, {e}") from e
    return derive_sample(sent_us, received_us, echo)


async def run_harness(config: HarnessConfig,
                      response_filter: Optional[ResponseFilter] = None,
                      console: Optional[TextIO] = None) -> RunSummary:
    """Issues `batch_count` x `batch_size` sequential requests and records every kept sample.

    The ledger is opened before the first request, so a bad output path fails
    the run without touching the target. Every batch runs on its own session,
    which closes all pooled connections in between and forces the first
    request of each batch onto a new connection.
    """
    response_filter = response_filter or filter_for(config)
    uploader = ReportUploader(config.addr) if config.report else None
    sink = ResultSink(config, uploader=uploader, console=console)
    sink.start()

    logger.info(f"Starting run against {config.addr}: {config.batch_count} batches x {config.batch_size} requests, "
                f"reqsize={config.req_size}, respsize={config.resp_size}, ledger={sink.path}")
    start_time = time.perf_counter()
    issued = 0
    discarded = 0
    completed = False
    try:
        for batch in range(config.batch_count):
            async with new_session() as session:
                for _ in range(config.batch_size):
                    sample = await exchange(session, config, response_filter)
                    issued += 1
                    if sample is None:
                        discarded += 1
                        continue
                    await sink.record(sample)
            logger.debug(f"Batch {batch + 1}/{config.batch_count} done, {issued} requests issued so far.")
        completed = True
    except TransportFailure as e:
        logger.error(f"Aborting run after {issued} requests: {e}")
        raise
    finally:
        # Drain the queue even on abort so every recorded sample reaches the disk
        await sink.close(upload=completed)

    elapsed_s = time.perf_counter() - start_time
    summary = RunSummary(
        ledger_path=sink.path,
        issued=issued,
        retained=issued - discarded,
        discarded=discarded,
        rows_written=sink.rows_written,
    )
    logger.info(f"Run finished in {elapsed_s:.2f}s: {summary.issued} issued, {summary.discarded} discarded, "
                f"{summary.rows_written} rows in {summary.ledger_path}")
    return summary
