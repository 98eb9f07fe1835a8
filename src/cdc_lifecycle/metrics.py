"""Boolean metric lookups used to observe connector progress (e.g. snapshots).

Endpoints are addressed with JMX object names such as
``debezium.db2_server:type=connector-metrics,context=snapshot,server=testdb``.
The samples are read from Prometheus collectors, either an in-process
``CollectorRegistry`` or a scraped text exposition, so the object name is
matched loosely. The sanitised domain must prefix the sample name and the
sample name must end with the attribute. Each ``key=value`` pair must equal
the label of that name, or appear inside the sample name when the sample
carries no such label.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, Optional, Protocol, Tuple

import httpx
from prometheus_client import CollectorRegistry
from prometheus_client.metrics_core import Metric
from prometheus_client.parser import text_string_to_metric_families

from .errors import CaptureHarnessError

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^a-z0-9]+")


class EndpointNotFound(CaptureHarnessError):
    """Raised when the metrics endpoint has not been registered yet."""


class MetricsError(CaptureHarnessError):
    """Raised when metrics cannot be read for a reason other than absence."""


class MetricsEndpoint(Protocol):
    def get_boolean_attribute(self, endpoint_id: str, attribute_name: str) -> bool: ...


def _sanitize(value: str) -> str:
    return _UNSAFE.sub("_", value.lower()).strip("_")


def parse_endpoint_id(endpoint_id: str) -> Tuple[str, Dict[str, str]]:
    """Split ``domain:key=value,...`` into the domain and its key properties."""
    domain, _, properties = endpoint_id.partition(":")
    labels: Dict[str, str] = {}
    for item in properties.split(","):
        if not item.strip():
            continue
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"malformed endpoint id: {endpoint_id!r}")
        labels[key.strip()] = value.strip()
    return domain.strip(), labels


def find_boolean_sample(
    families: Iterable[Metric], endpoint_id: str, attribute_name: str
) -> bool:
    domain, labels = parse_endpoint_id(endpoint_id)
    prefix = _sanitize(domain)
    suffix = _sanitize(attribute_name)
    for family in families:
        for sample in family.samples:
            name = _sanitize(sample.name)
            if prefix and not name.startswith(prefix):
                continue
            if not name.endswith(suffix):
                continue
            # a name match only stands in for a label the sample does not carry
            if all(
                sample.labels[key] == value
                if key in sample.labels
                else _sanitize(value) in name
                for key, value in labels.items()
            ):
                return bool(sample.value)
    raise EndpointNotFound(f"{endpoint_id} has no attribute {attribute_name}")


class RegistryMetricsEndpoint:
    """Reads attributes from an in-process Prometheus collector registry."""

    def __init__(self, registry: CollectorRegistry) -> None:
        self._registry = registry

    def get_boolean_attribute(self, endpoint_id: str, attribute_name: str) -> bool:
        return find_boolean_sample(self._registry.collect(), endpoint_id, attribute_name)


class PrometheusHttpEndpoint:
    """Scrapes a Prometheus text exposition (e.g. a JMX exporter) over HTTP."""

    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = 5.0,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        if not url:
            raise ValueError("url must be provided")
        self._url = url
        self._client = http_client or httpx.Client(timeout=timeout_seconds)

    def get_boolean_attribute(self, endpoint_id: str, attribute_name: str) -> bool:
        logger.debug("scraping %s for %s.%s", self._url, endpoint_id, attribute_name)
        try:
            response = self._client.get(self._url)
        except httpx.ConnectError as exc:
            raise EndpointNotFound(f"metrics endpoint {self._url} not reachable") from exc
        except httpx.HTTPError as exc:
            raise MetricsError(f"metrics scrape of {self._url} failed") from exc
        if response.status_code == 404:
            raise EndpointNotFound(f"metrics endpoint {self._url} not registered")
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise MetricsError(
                f"metrics scrape of {self._url} returned {response.status_code}"
            ) from exc
        try:
            families = list(text_string_to_metric_families(response.text))
        except ValueError as exc:
            raise MetricsError(f"metrics exposition from {self._url} is malformed") from exc
        return find_boolean_sample(families, endpoint_id, attribute_name)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "PrometheusHttpEndpoint":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = [
    "EndpointNotFound",
    "MetricsEndpoint",
    "MetricsError",
    "PrometheusHttpEndpoint",
    "RegistryMetricsEndpoint",
    "find_boolean_sample",
    "parse_endpoint_id",
]
