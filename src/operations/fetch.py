"""Remote manifest download."""

import logging

import requests

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Remote manifest could not be downloaded."""


def fetch_manifest(url: str, timeout: float = 30.0) -> str:
    """Download manifest text from a URL.

    Raises:
        FetchError: On transport failure or a non-200 response
    """
    logger.info(f"Fetching manifest from {url}")
    try:
        resp = requests.get(url, timeout=timeout)
    except requests.exceptions.RequestException as e:
        logger.error(f"Error getting data from {url}: {e}")
        raise FetchError(f"error getting data from {url}: {e}") from e

    if resp.status_code != 200:
        logger.error(f"Call to {url} failed with response status: {resp.status_code}")
        raise FetchError(f"call to {url} failed with response status: {resp.status_code}")
    return resp.text
