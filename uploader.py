import asyncio
import logging

import aiohttp

logger = logging.getLogger(__name__)

REPORT_PATH = "/report"

def report_url(addr: str) -> str:
    return f"{addr.rstrip('/')}{REPORT_PATH}"

class ReportUploader:
    """Best-effort transfer of a finished ledger to the collector.

    Failures are logged and reported through the return value only; the
    measurement is already on local disk by the time this runs.
    """

    def __init__(self, addr: str):
        self.url = report_url(addr)

    async def upload(self, contents: str, filename: str) -> bool:
        form = {"csv": contents, "filename": filename}
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(self.url, data=form) as resp:
                    status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.warning(f"Report upload of {filename} to {self.url} failed: {e}")
            return False

        if status != 200:
            logger.warning(f"Collector at {self.url} answered HTTP {status} for {filename}")
            return False
        logger.info(f"Uploaded report {filename} ({len(contents)} chars) to {self.url}")
        return True
