import pytest
import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from multidict import CIMultiDict

from config import HarnessConfig
from filters import KeepAllFilter, CacheHitFilter, filter_for


class TestKeepAllFilter:
    def test_keeps_everything(self):
        f = KeepAllFilter()
        assert f.keep({})
        assert f.keep({"X-Cache": "Miss from cloudfront"})


class TestCacheHitFilter:
    def test_discards_miss(self):
        assert not CacheHitFilter().keep({"X-Cache": "Miss from cloudfront"})

    def test_keeps_hit(self):
        assert CacheHitFilter().keep({"X-Cache": "Hit from cloudfront"})

    def test_keeps_when_header_absent(self):
        assert CacheHitFilter().keep({})

    def test_header_lookup_is_case_insensitive_on_aiohttp_headers(self):
        headers = CIMultiDict({"x-cache": "Miss from cloudfront"})
        assert not CacheHitFilter().keep(headers)

    def test_custom_header(self):
        f = CacheHitFilter(header="CF-Cache-Status", miss_marker="MISS")
        assert not f.keep({"CF-Cache-Status": "MISS"})
        assert f.keep({"CF-Cache-Status": "HIT"})


class TestFilterFor:
    def test_default_keeps_all(self):
        assert isinstance(filter_for(HarnessConfig()), KeepAllFilter)

    def test_only_hit(self):
        assert isinstance(filter_for(HarnessConfig(only_hit=True)), CacheHitFilter)
