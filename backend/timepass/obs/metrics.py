"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


REQUEST_COUNTER = Counter(
	"timepass_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"timepass_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"timepass_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"timepass_socketio_events_total",
	"Socket.IO events emitted per namespace",
	["namespace", "event"],
)

CHAT_SEND = Counter(
	"timepass_chat_send_total",
	"Chat messages sent",
	["kind"],
)

CHAT_EDITS = Counter(
	"timepass_chat_edits_total",
	"Chat messages edited by their sender",
)

CHAT_DELETES = Counter(
	"timepass_chat_deletes_total",
	"Chat messages deleted by their sender",
)

CHAT_SEEN_UPDATES = Counter(
	"timepass_chat_seen_updates_total",
	"Messages newly marked seen by a viewer",
)

CHAT_LIVE_VIEWS = Gauge(
	"timepass_chat_live_views",
	"Open live conversation views",
)

CHAT_UNREAD_COUNTS = Counter(
	"timepass_chat_unread_counts_total",
	"Unread aggregate computations",
	["strategy"],
)

NOTIFICATIONS_WRITTEN = Counter(
	"timepass_notifications_written_total",
	"Notification records persisted",
	["type"],
)

NOTIFICATION_FAILURES = Counter(
	"timepass_notification_failures_total",
	"Notification writes that failed after the triggering action succeeded",
	["type"],
)

STORE_ERRORS = Counter(
	"timepass_store_errors_total",
	"Document store operations that failed",
	["operation"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def inc_chat_send(kind: str = "text") -> None:
	CHAT_SEND.labels(kind=kind).inc()


def inc_chat_edit() -> None:
	CHAT_EDITS.inc()


def inc_chat_delete() -> None:
	CHAT_DELETES.inc()


def inc_chat_seen(count: int = 1) -> None:
	if count <= 0:
		return
	CHAT_SEEN_UPDATES.inc(count)


def live_view_opened() -> None:
	CHAT_LIVE_VIEWS.inc()


def live_view_closed() -> None:
	CHAT_LIVE_VIEWS.dec()


def inc_unread_count(strategy: str) -> None:
	CHAT_UNREAD_COUNTS.labels(strategy=strategy).inc()


def inc_notification_written(kind: str) -> None:
	NOTIFICATIONS_WRITTEN.labels(type=kind).inc()


def inc_notification_failure(kind: str) -> None:
	NOTIFICATION_FAILURES.labels(type=kind).inc()


def inc_store_error(operation: str) -> None:
	STORE_ERRORS.labels(operation=operation).inc()
