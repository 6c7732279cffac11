"""HTTP session setup for requesting manifest.webpackage documents.

Webpackage stores are frequently reached through corporate proxies doing SSL
inspection (e.g. Netskope). Their certificates often lack the key usage
extensions OpenSSL 3.x insists on, so a custom CA bundle can be loaded into
an SSL context with relaxed verification flags.
"""

import logging
import os
import ssl
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from urllib3.util.ssl_ import create_urllib3_context

from . import __version__

logger = logging.getLogger(__name__)

CA_BUNDLE_ENV_VAR = "CUBX_CA_BUNDLE"

# Known corporate SSL inspection cert bundle locations
CORPORATE_CERT_PATHS = [
    "/Library/Application Support/Netskope/STAgent/data/netskope-cert-bundle.pem",  # Netskope macOS
    "/etc/netskope/cert-bundle.pem",  # Netskope Linux
]

DEFAULT_RETRIES = 3


def find_ca_bundle(ca_bundle: Optional[str] = None) -> Optional[str]:
    """Return the CA bundle to use: explicit path, environment variable or a detected corporate bundle."""
    candidates = [ca_bundle, os.environ.get(CA_BUNDLE_ENV_VAR)] + CORPORATE_CERT_PATHS
    for path in candidates:
        if path and os.path.exists(path):
            return path
    if ca_bundle:
        logger.warning(f"CA bundle {ca_bundle} does not exist, using default certificates")
    return None


class ManifestStoreAdapter(HTTPAdapter):
    """Adapter with retries on transient errors and an optional custom CA bundle."""

    def __init__(self, cert_path: Optional[str] = None, retries: int = DEFAULT_RETRIES, **kwargs):
        self.cert_path = cert_path
        retry = Retry(
            total=retries,
            backoff_factor=0.3,
            status_forcelist=(502, 503, 504),
            allowed_methods=frozenset(["GET"]),
        )
        super().__init__(max_retries=retry, **kwargs)

    def init_poolmanager(self, *args, **kwargs):
        if self.cert_path:
            ctx = create_urllib3_context()
            ctx.load_verify_locations(self.cert_path)
            # accept certificates without key usage extensions (OpenSSL 3.x)
            ctx.verify_flags = ssl.VERIFY_DEFAULT
            kwargs['ssl_context'] = ctx
            logger.debug(f"Loaded CA bundle from {self.cert_path}")
        return super().init_poolmanager(*args, **kwargs)


def create_session(ca_bundle: Optional[str] = None, retries: int = DEFAULT_RETRIES) -> requests.Session:
    """Create a requests session for fetching manifests.

    Args:
        ca_bundle: Optional path to a PEM bundle; falls back to $CUBX_CA_BUNDLE
            and known corporate SSL inspection bundles
        retries: Number of retries for connection errors and 502/503/504 responses

    Returns:
        Configured requests.Session
    """
    session = requests.Session()
    session.headers.update({
        "Accept": "application/json",
        "User-Agent": f"cubx-dependency-resolver/{__version__}",
    })

    cert_path = find_ca_bundle(ca_bundle)
    if cert_path:
        logger.info(f"Using CA bundle {cert_path}")

    adapter = ManifestStoreAdapter(cert_path=cert_path, retries=retries)
    session.mount('https://', adapter)
    session.mount('http://', adapter)
    return session
