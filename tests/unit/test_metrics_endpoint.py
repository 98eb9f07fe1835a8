from __future__ import annotations

import httpx
import pytest
from prometheus_client import CollectorRegistry, Gauge

from cdc_lifecycle.metrics import (
    EndpointNotFound,
    MetricsError,
    PrometheusHttpEndpoint,
    RegistryMetricsEndpoint,
    parse_endpoint_id,
)

SNAPSHOT_ENDPOINT = (
    "debezium.db2_server:type=connector-metrics,context=snapshot,server=testdb"
)

EXPOSITION = """\
# HELP debezium_db2_server_connector_metrics_SnapshotCompleted SnapshotCompleted
# TYPE debezium_db2_server_connector_metrics_SnapshotCompleted gauge
debezium_db2_server_connector_metrics_SnapshotCompleted{context="snapshot",server="testdb"} {value}
debezium_db2_server_connector_metrics_SnapshotCompleted{context="snapshot",server="otherdb"} 1.0
"""


def _exposition(value: float) -> str:
    return EXPOSITION.replace("{value}", str(value))


@pytest.mark.unit
def test_parse_endpoint_id():
    domain, labels = parse_endpoint_id(SNAPSHOT_ENDPOINT)

    assert domain == "debezium.db2_server"
    assert labels == {
        "type": "connector-metrics",
        "context": "snapshot",
        "server": "testdb",
    }
    assert parse_endpoint_id("plain") == ("plain", {})
    with pytest.raises(ValueError):
        parse_endpoint_id("domain:novalue")


@pytest.mark.unit
def test_registry_endpoint_reads_gauge_and_reports_missing():
    registry = CollectorRegistry()
    endpoint = RegistryMetricsEndpoint(registry)

    with pytest.raises(EndpointNotFound):
        endpoint.get_boolean_attribute(SNAPSHOT_ENDPOINT, "SnapshotCompleted")

    gauge = Gauge(
        "debezium_db2_server_SnapshotCompleted",
        "Whether the initial snapshot finished",
        ["type", "context", "server"],
        registry=registry,
    )
    child = gauge.labels(type="connector-metrics", context="snapshot", server="testdb")

    assert endpoint.get_boolean_attribute(SNAPSHOT_ENDPOINT, "SnapshotCompleted") is False
    child.set(1)
    assert endpoint.get_boolean_attribute(SNAPSHOT_ENDPOINT, "SnapshotCompleted") is True


@pytest.mark.unit
def test_registry_endpoint_ignores_other_servers():
    registry = CollectorRegistry()
    gauge = Gauge(
        "debezium_db2_server_SnapshotCompleted",
        "Whether the initial snapshot finished",
        ["context", "server"],
        registry=registry,
    )
    gauge.labels(context="snapshot", server="otherdb").set(1)
    endpoint = RegistryMetricsEndpoint(registry)

    with pytest.raises(EndpointNotFound):
        endpoint.get_boolean_attribute(SNAPSHOT_ENDPOINT, "SnapshotCompleted")


@pytest.mark.unit
def test_http_endpoint_parses_exposition():
    values = iter([0.0, 1.0])

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/metrics"
        return httpx.Response(200, text=_exposition(next(values)))

    client = httpx.Client(transport=httpx.MockTransport(handler))
    with PrometheusHttpEndpoint("http://exporter:8080/metrics", http_client=client) as endpoint:
        assert endpoint.get_boolean_attribute(SNAPSHOT_ENDPOINT, "SnapshotCompleted") is False
        assert endpoint.get_boolean_attribute(SNAPSHOT_ENDPOINT, "SnapshotCompleted") is True


@pytest.mark.unit
def test_http_endpoint_not_found_conditions():
    responses = iter(
        [
            httpx.Response(404, text="no such endpoint"),
            httpx.Response(200, text="# no samples yet\n"),
        ]
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return next(responses)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    endpoint = PrometheusHttpEndpoint("http://exporter:8080/metrics", http_client=client)

    for _ in range(2):
        with pytest.raises(EndpointNotFound):
            endpoint.get_boolean_attribute(SNAPSHOT_ENDPOINT, "SnapshotCompleted")
    endpoint.close()


@pytest.mark.unit
def test_http_endpoint_connection_refused_is_not_found():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    endpoint = PrometheusHttpEndpoint("http://exporter:8080/metrics", http_client=client)

    with pytest.raises(EndpointNotFound):
        endpoint.get_boolean_attribute(SNAPSHOT_ENDPOINT, "SnapshotCompleted")


@pytest.mark.unit
def test_http_endpoint_server_error_is_fatal():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    client = httpx.Client(transport=httpx.MockTransport(handler))
    endpoint = PrometheusHttpEndpoint("http://exporter:8080/metrics", http_client=client)

    with pytest.raises(MetricsError) as excinfo:
        endpoint.get_boolean_attribute(SNAPSHOT_ENDPOINT, "SnapshotCompleted")
    assert not isinstance(excinfo.value, EndpointNotFound)


@pytest.mark.unit
def test_http_endpoint_requires_url():
    with pytest.raises(ValueError):
        PrometheusHttpEndpoint("")


@pytest.mark.unit
def test_conflicting_label_is_not_matched_through_the_name():
    exposition = """\
# HELP debezium_db2_server_connector_metrics_SnapshotCompleted SnapshotCompleted
# TYPE debezium_db2_server_connector_metrics_SnapshotCompleted gauge
debezium_db2_server_connector_metrics_SnapshotCompleted{context="streaming",server="testdb"} 1.0
"""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=exposition)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    with PrometheusHttpEndpoint("http://exporter:8080/metrics", http_client=client) as endpoint:
        with pytest.raises(EndpointNotFound):
            endpoint.get_boolean_attribute(SNAPSHOT_ENDPOINT, "SnapshotCompleted")
