"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary


REQUEST_COUNTER = Counter(
	"swipeapi_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"swipeapi_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

RATE_LIMITED = Counter(
	"swipeapi_rate_limited_total",
	"Requests rejected by the per-user rate limiter",
	["kind"],
)

DISCOVERY_REQUESTS = Counter(
	"swipeapi_discovery_requests_total",
	"Swipe card requests by candidate query strategy",
	["strategy"],
)

DISCOVERY_PHASE_LATENCY = Histogram(
	"swipeapi_discovery_phase_seconds",
	"Latency of each discovery pipeline phase",
	["phase"],
	buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

DISCOVERY_EXCLUSIONS = Histogram(
	"swipeapi_discovery_exclusions",
	"Size of the exclusion set per swipe card request",
	buckets=(1, 5, 10, 25, 50, 80, 100, 250, 500, 1000, 5000),
)

DISCOVERY_FAILURES = Counter(
	"swipeapi_discovery_failures_total",
	"Discovery requests aborted by a collaborator failure",
	["phase"],
)

GEOHASH_DECODE_FAILURES = Counter(
	"swipeapi_geohash_decode_failures_total",
	"Geohash values that could not be decoded while computing distances",
)

REDIS_UP = Gauge("swipeapi_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("swipeapi_redis_latency_seconds", "Redis ping latency (seconds)")

POSTGRES_UP = Gauge("swipeapi_postgres_up", "Postgres availability (1=up,0=down)")
POSTGRES_LATENCY = Summary("swipeapi_postgres_latency_seconds", "Postgres ping latency (seconds)")


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_rate_limited(kind: str) -> None:
	RATE_LIMITED.labels(kind=kind).inc()


def inc_discovery_request(strategy: str) -> None:
	DISCOVERY_REQUESTS.labels(strategy=strategy).inc()


def observe_discovery_phase(phase: str, elapsed_seconds: float) -> None:
	DISCOVERY_PHASE_LATENCY.labels(phase=phase).observe(elapsed_seconds)


def observe_discovery_exclusions(count: int) -> None:
	DISCOVERY_EXCLUSIONS.observe(count)


def inc_discovery_failure(phase: str) -> None:
	DISCOVERY_FAILURES.labels(phase=phase).inc()


def inc_geohash_decode_failure() -> None:
	GEOHASH_DECODE_FAILURES.inc()


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)
