"""Shared fixtures for cubx_resolver tests."""

import json
from pathlib import Path
from unittest.mock import Mock

import pytest

from cubx_resolver.api_client import ManifestClient
from cubx_resolver.errors import ManifestFetchError

RESOURCES_PATH = Path(__file__).parent / "resources"
BASE_URL = "https://cubbles.world/sandbox/"


def load_resource(name):
    with open(RESOURCES_PATH / name) as f:
        return json.load(f)


@pytest.fixture
def manifests():
    """Manifests of the test webpackages by webpackage id."""
    return {
        f"package{i}@1.0.0": load_resource(f"dependencyPackage{i}.json")
        for i in range(1, 7)
    }


@pytest.fixture
def root_dependencies():
    return load_resource("rootDependencies.json")


def make_store_client(manifests):
    """ManifestClient stand-in serving manifests keyed by webpackage id from BASE_URL."""
    def fetch(url):
        for webpackage_id, manifest in manifests.items():
            if url == f"{BASE_URL}{webpackage_id}/manifest.webpackage":
                return json.loads(json.dumps(manifest))
        raise ManifestFetchError(url, "404 Client Error: Not Found")

    client = Mock(spec=ManifestClient)
    client.fetch_manifest.side_effect = fetch
    return client


@pytest.fixture
def store_client(manifests):
    return make_store_client(manifests)
