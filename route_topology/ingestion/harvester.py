"""
Module E: Dataset Harvester
===========================
Downloads the IDFM open data exports (stops, line traces, line referential)
as decoded JSON arrays.

Every dataset is fetched in full; there is no incremental update. Transient
HTTP failures are retried by the session adapter with exponential backoff.
A dataset that cannot be fetched or decoded, or that decodes to zero
records fails the run.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import requests
import structlog
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from route_topology.core.errors import DatasetFetchError, EmptyInputError

logger = structlog.get_logger(__name__)

EXPLORE_API = "https://data.iledefrance-mobilites.fr/api/explore/v2.1/catalog/datasets"

STOPS_URL = f"{EXPLORE_API}/arrets-lignes/exports/json?limit=-1"
TRACES_URL = f"{EXPLORE_API}/traces-des-lignes-de-transport-en-commun-idfm/exports/json?limit=-1"
LINES_URL = f"{EXPLORE_API}/referentiel-des-lignes/exports/json?limit=-1"


class FeedStatus(Enum):
    """Outcome of a dataset fetch."""
    ACTIVE = "active"
    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    PARSE_ERROR = "parse_error"
    EMPTY = "empty"


@dataclass
class HarvestMetrics:
    """Metrics for a single dataset fetch."""

    dataset: str
    url: str
    timestamp: datetime
    status: FeedStatus
    records_count: int = 0
    response_time_ms: float = 0.0
    error_message: Optional[str] = None


def make_session(retries: int = 3, backoff_factor: float = 1.0) -> requests.Session:
    """Create a requests session that retries idempotent requests."""
    session = requests.Session()
    retry = Retry(
        total=retries,
        connect=retries,
        read=retries,
        backoff_factor=backoff_factor,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset(["GET", "HEAD"]),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update({"Accept": "application/json"})
    return session


class DatasetHarvester:
    """
    Synchronous harvester for JSON dataset exports.

    Usage:
        with DatasetHarvester(timeout=300) as harvester:
            stops = harvester.fetch("stops", STOPS_URL)
    """

    DEFAULT_TIMEOUT = 300  # seconds, full exports are large

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = 3,
        backoff_factor: float = 1.0,
        session: Optional[requests.Session] = None,
        on_metrics: Optional[Callable[[HarvestMetrics], None]] = None
    ) -> None:
        """
        Initialize the harvester.

        Args:
            timeout: Per-request timeout in seconds.
            retries: Retry budget of the session adapter.
            backoff_factor: Exponential backoff factor between retries.
            session: Optional pre-built session (tests inject mocks here).
            on_metrics: Optional callback receiving every HarvestMetrics.
        """
        self.timeout = timeout
        self._own_session = session is None
        self._session = session or make_session(retries, backoff_factor)
        self._on_metrics = on_metrics
        self.history: List[HarvestMetrics] = []

    def __enter__(self) -> "DatasetHarvester":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        if self._own_session:
            self._session.close()

    def _record(self, metrics: HarvestMetrics) -> None:
        self.history.append(metrics)
        if self._on_metrics:
            try:
                self._on_metrics(metrics)
            except Exception as e:
                logger.error("harvester_metrics_callback_error", error=str(e))

    def fetch(self, dataset: str, url: str) -> List[Dict[str, Any]]:
        """
        Fetch one dataset export.

        Args:
            dataset: Short dataset name used in logs and errors.
            url: Export URL returning a JSON array.

        Returns:
            The decoded records.

        Raises:
            DatasetFetchError: On network/HTTP failure or undecodable payload.
            EmptyInputError: If the payload is an empty array.
        """
        logger.info("harvester_fetch_started", dataset=dataset, url=url)

        metrics = HarvestMetrics(
            dataset=dataset,
            url=url,
            timestamp=datetime.now(),
            status=FeedStatus.ACTIVE
        )
        started = time.monotonic()

        try:
            response = self._session.get(url, timeout=self.timeout)
            metrics.response_time_ms = (time.monotonic() - started) * 1000
            response.raise_for_status()
        except requests.Timeout as e:
            metrics.status = FeedStatus.TIMEOUT
            metrics.error_message = "Request timeout"
            self._record(metrics)
            logger.error("harvester_timeout", dataset=dataset, url=url)
            raise DatasetFetchError(url, "timeout") from e
        except requests.RequestException as e:
            metrics.status = FeedStatus.HTTP_ERROR
            metrics.error_message = str(e)
            self._record(metrics)
            logger.error("harvester_http_error", dataset=dataset, url=url, error=str(e))
            raise DatasetFetchError(url, str(e)) from e

        try:
            records = response.json()
        except ValueError as e:
            metrics.status = FeedStatus.PARSE_ERROR
            metrics.error_message = f"Parse error: {e}"
            self._record(metrics)
            logger.error("harvester_parse_error", dataset=dataset, url=url, error=str(e))
            raise DatasetFetchError(url, f"invalid JSON: {e}") from e

        if not isinstance(records, list):
            metrics.status = FeedStatus.PARSE_ERROR
            metrics.error_message = "Payload is not a JSON array"
            self._record(metrics)
            raise DatasetFetchError(url, "payload is not a JSON array")

        metrics.records_count = len(records)
        if not records:
            metrics.status = FeedStatus.EMPTY
            self._record(metrics)
            logger.error("harvester_empty_dataset", dataset=dataset, url=url)
            raise EmptyInputError(dataset)

        self._record(metrics)
        logger.info(
            "harvester_fetch_completed",
            dataset=dataset,
            records=len(records),
            response_time_ms=round(metrics.response_time_ms, 1)
        )
        return records
