import asyncio
import csv
import logging
import time
from typing import NamedTuple, Optional, TextIO

from config import HarnessConfig, LEDGER_HEADER, LEDGER_DEFAULT_NAME_FORMAT, RESULT_QUEUE_CAPACITY
from metrics import SampleRecord
from uploader import ReportUploader

logger = logging.getLogger(__name__)


class LedgerOpenError(Exception):
    def __init__(self, path: str, cause: OSError):
        super().__init__(f"cannot create ledger {path!r}: {cause}")
        self.path = path


class _Completion(NamedTuple):
    # Sent by the harness after its last sample; never written to the ledger
    upload: bool


def ledger_path(config: HarnessConfig) -> str:
    if config.output:
        return config.output
    return time.strftime(LEDGER_DEFAULT_NAME_FORMAT)


class ResultSink:
    """Single consumer that owns the ledger file for the whole run.

    Samples arrive through a bounded queue, so a slow disk throttles the
    harness instead of dropping samples. Console and disk I/O run in a worker
    thread so that the event loop timing the requests never waits on them.
    Every row is flushed as soon as it is written. On completion the ledger is
    closed, read back and optionally uploaded before `close()` returns.
    """

    def __init__(self, config: HarnessConfig,
                 uploader: Optional[ReportUploader] = None,
                 console: Optional[TextIO] = None):
        self.config = config
        self.path = ledger_path(config)
        self.uploader = uploader
        self.console = console  # None prints to sys.stdout
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=RESULT_QUEUE_CAPACITY)

        self.received = 0
        self.rows_written = 0
        self.contents: Optional[str] = None

        self._file: Optional[TextIO] = None
        self._writer = None
        self._task: Optional[asyncio.Task] = None

    def open(self):
        try:
            self._file = open(self.path, "w", newline="")
        except OSError as e:
            raise LedgerOpenError(self.path, e) from e
        # Dry runs still create the file but never write to it
        if not self.config.dry_run:
            self._writer = csv.writer(self._file, lineterminator="\n")
            self._writer.writerow(LEDGER_HEADER)
            self._file.flush()
        logger.info(f"Ledger opened at {self.path}{' (dry run)' if self.config.dry_run else ''}")

    def start(self):
        if self._file is None:
            self.open()
        self._task = asyncio.create_task(self._consume(), name="ResultSink")

    async def record(self, sample: SampleRecord):
        if self._task is None:
            raise RuntimeError("result sink not started")
        await self._put(sample)

    async def close(self, upload: bool = True) -> str:
        """Waits until every queued sample is on disk; returns the ledger contents."""
        if self._task is None:
            raise RuntimeError("result sink not started")
        if not self._task.done():
            await self._put(_Completion(upload=upload))
        return await self._task

    async def _put(self, item):
        if self._task.done():
            self._task.result()  # Re-raises the failure that stopped the sink
            raise RuntimeError("result sink already closed")
        if not self.queue.full():
            self.queue.put_nowait(item)
            return
        # Queue is full: block, unless the consumer dies while we wait
        put = asyncio.ensure_future(self.queue.put(item))
        done, _ = await asyncio.wait({put, self._task}, return_when=asyncio.FIRST_COMPLETED)
        if put in done:
            return
        put.cancel()
        self._task.result()
        raise RuntimeError("result sink stopped before draining the queue")

    def _write(self, sample: SampleRecord):
        # Runs in a worker thread, never on the loop that times the requests
        if self.config.verbose:
            print(sample.console_line(), file=self.console, flush=True)
        if self._writer is not None:
            self._writer.writerow(sample.to_row())
            self._file.flush()
            self.rows_written += 1
        self.received += 1

    def _finish(self) -> str:
        self._close_file()
        with open(self.path, newline="") as f:
            return f.read()

    async def _consume(self) -> str:
        try:
            while True:
                item = await self.queue.get()
                if isinstance(item, _Completion):
                    break
                await asyncio.to_thread(self._write, item)
        except Exception as e:
            logger.error(f"Result sink failed after {self.rows_written} rows: {e}", exc_info=True)
            self._close_file()
            raise

        self.contents = await asyncio.to_thread(self._finish)
        logger.info(f"Ledger {self.path} closed: {self.received} samples, {self.rows_written} rows written.")

        if item.upload and self.config.report and self.uploader is not None:
            await self.uploader.upload(self.contents, self.path)
        return self.contents

    def _close_file(self):
        if self._file is not None and not self._file.closed:
            self._file.close()
