from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    write_to_textfile,
)

registry = CollectorRegistry()

units = Counter(
    name="revbuild_units_total",
    documentation="Revision build units by outcome",
    labelnames=["status"],
    registry=registry,
)

restore_failures = Counter(
    name="revbuild_restore_failures_total",
    documentation="Repositories that could not be restored to their original head",
    registry=registry,
)

publishes = Counter(
    name="revbuild_publish_total",
    documentation="Artifact publish attempts by outcome",
    labelnames=["status"],
    registry=registry,
)

run_time = Gauge(
    name="revbuild_last_run_seconds",
    documentation="Last run duration in seconds",
    registry=registry,
)


def write(path: str) -> None:
    write_to_textfile(path, registry)
