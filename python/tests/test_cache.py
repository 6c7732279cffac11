"""Tests for ResponseCache."""

from concurrent.futures import ThreadPoolExecutor

from cubx_resolver.cache import ResponseCache


class TestResponseCache:
    """Tests for the manifest cache."""

    def test_get_missing_returns_none(self):
        assert ResponseCache().get('package1@1.0.0') is None

    def test_add_and_get(self):
        cache = ResponseCache()
        manifest = {'name': 'package1'}
        cache.add_item('package1@1.0.0', manifest)
        assert cache.get('package1@1.0.0') is manifest
        assert 'package1@1.0.0' in cache
        assert len(cache) == 1

    def test_add_keeps_first_entry(self):
        cache = ResponseCache()
        first = {'version': '1'}
        assert cache.add_item('package1@1.0.0', first) is first
        assert cache.add_item('package1@1.0.0', {'version': '2'}) is first
        assert cache.get('package1@1.0.0') is first
        assert len(cache) == 1

    def test_invalidate(self):
        cache = ResponseCache()
        cache.add_item('package1@1.0.0', {})
        cache.add_item('util1', {})
        cache.invalidate()
        assert len(cache) == 0
        assert cache.get('util1') is None

    def test_concurrent_access(self):
        cache = ResponseCache()
        with ThreadPoolExecutor(max_workers=8) as executor:
            list(executor.map(lambda i: cache.add_item(f'package{i}@1.0.0', {'name': f'package{i}'}), range(100)))
        assert len(cache) == 100
        assert cache.get('package42@1.0.0') == {'name': 'package42'}

    def test_concurrent_add_same_key(self):
        cache = ResponseCache()
        manifests = [{'name': 'package1', 'copy': i} for i in range(50)]
        with ThreadPoolExecutor(max_workers=8) as executor:
            stored = list(executor.map(lambda m: cache.add_item('package1@1.0.0', m), manifests))
        assert len(cache) == 1
        assert all(item is cache.get('package1@1.0.0') for item in stored)
