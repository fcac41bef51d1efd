import logging
from abc import ABC, abstractmethod
from typing import Mapping

from config import CACHE_STATUS_HEADER, CACHE_MISS_MARKER, HarnessConfig

logger = logging.getLogger(__name__)

class ResponseFilter(ABC):
    """Decides from response metadata whether a sample is recorded."""

    @abstractmethod
    def keep(self, headers: Mapping[str, str]) -> bool:
        pass

class KeepAllFilter(ResponseFilter):
    def keep(self, headers: Mapping[str, str]) -> bool:
        return True

class CacheHitFilter(ResponseFilter):
    # Only the CDN in front of the responder sets this header.
    def __init__(self, header: str = CACHE_STATUS_HEADER, miss_marker: str = CACHE_MISS_MARKER):
        self.header = header
        self.miss_marker = miss_marker

    def keep(self, headers: Mapping[str, str]) -> bool:
        status = headers.get(self.header, "")
        if self.miss_marker in status:
            logger.debug(f"Discarding sample, {self.header}: {status}")
            return False
        return True

def filter_for(config: HarnessConfig) -> ResponseFilter:
    if config.only_hit:
        return CacheHitFilter()
    return KeepAllFilter()
