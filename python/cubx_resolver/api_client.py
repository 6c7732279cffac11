"""Client for requesting manifest.webpackage documents from a webpackage store."""

import logging
from typing import Any, Dict, Optional

import requests

from .errors import ManifestFetchError
from .http_session import create_session

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


class ManifestClient:
    """Fetches manifest documents via HTTP GET."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = DEFAULT_TIMEOUT):
        """
        Initialize the client.

        Args:
            session: Session to use, a new one from create_session() if omitted
            timeout: Timeout in seconds for each request
        """
        self.session = session if session is not None else create_session()
        self.timeout = timeout

    def fetch_manifest(self, url: str) -> Dict[str, Any]:
        """
        Fetch the JSON document at the given url.

        Args:
            url: Url of a manifest.webpackage document

        Returns:
            The parsed manifest

        Raises:
            ManifestFetchError: On connection errors, timeouts, non 2xx responses or invalid JSON
        """
        logger.debug(f"Requesting manifest {url}")
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            logger.error(f"Error fetching manifest {url}: {e}")
            raise ManifestFetchError(url, str(e)) from e
        except ValueError as e:
            logger.error(f"Manifest {url} is not valid JSON: {e}")
            raise ManifestFetchError(url, f"invalid JSON ({e})") from e

    def close(self):
        """Close the session and clean up resources."""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
