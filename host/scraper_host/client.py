"""HTTP client for the search server, used by UIs and scripts."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterator, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:9000"
REQUEST_TIMEOUT = 10


class ScraperClientError(RuntimeError):
    """Raised when the server answers with a non-successful status."""

    def __init__(self, status_code: int, payload: Dict[str, Any]) -> None:
        super().__init__(payload.get("message") or payload.get("error") or f"HTTP {status_code}")
        self.status_code = status_code
        self.payload = payload


def build_session() -> requests.Session:
    session = requests.Session()
    # Only idempotent reads are retried; a search must never be started twice.
    retries = Retry(
        total=3,
        backoff_factor=0.5,
        status_forcelist=(502, 503, 504),
        allowed_methods=("GET",),
    )
    session.mount("http://", HTTPAdapter(max_retries=retries))
    session.mount("https://", HTTPAdapter(max_retries=retries))
    return session


def _payload(response: requests.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        data = {"error": response.text[:500]}
    if not (200 <= response.status_code < 300):
        logger.error("Server returned %s: %s", response.status_code, data)
        raise ScraperClientError(response.status_code, data)
    return data


class ScraperClient:
    def __init__(self, base_url: str = DEFAULT_BASE_URL, session: Optional[requests.Session] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or build_session()

    def output_directories(self) -> Dict[str, str]:
        response = self.session.get(f"{self.base_url}/paths", timeout=REQUEST_TIMEOUT)
        return _payload(response)["data"]

    def load_config(self) -> Optional[str]:
        response = self.session.get(f"{self.base_url}/config", timeout=REQUEST_TIMEOUT)
        return _payload(response)["data"].get("api_key")

    def save_config(self, api_key: str) -> str:
        response = self.session.post(f"{self.base_url}/config", json={"api_key": api_key}, timeout=REQUEST_TIMEOUT)
        return _payload(response)["data"]["config_dir"]

    def read_result_file(self, path: str) -> List[Dict[str, str]]:
        response = self.session.post(f"{self.base_url}/results", json={"path": path}, timeout=REQUEST_TIMEOUT)
        return _payload(response)["data"]

    def run_search(self, search: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
        """Yield status lines as the server streams them; the last one has ``type == "outcome"``."""
        response = self.session.post(
            f"{self.base_url}/search",
            json=search,
            stream=True,
            timeout=(REQUEST_TIMEOUT, None),
        )
        with response:
            if not (200 <= response.status_code < 300):
                _payload(response)
            for line in response.iter_lines(decode_unicode=True):
                if line:
                    yield json.loads(line)
