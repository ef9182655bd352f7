from __future__ import annotations

import contextvars
import json
import logging
import threading
import time
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Dict

from flask import g, has_request_context, request


_REQUEST_ID: contextvars.ContextVar[str] = contextvars.ContextVar("marketplace_request_id", default="")

# Counted by the services; /health reports zero for anything not seen yet.
MARKETPLACE_EVENTS = (
    "quotes_created",
    "proposals_created",
    "proposals_updated",
    "orders_created",
    "orders_skipped",
    "orders_synced",
    "orders_late",
    "invoices_attached",
)

_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime", "taskName"}


def set_log_request_id(request_id: str | None) -> None:
    _REQUEST_ID.set(str(request_id or "").strip())


def current_request_id(default: str | None = None) -> str:
    if has_request_context():
        request_id = str(getattr(g, "request_id", "") or "").strip()
        if request_id:
            return request_id
    return _REQUEST_ID.get() or default or "n/a"


def ensure_request_id() -> str:
    request_id = str(getattr(g, "request_id", "") or "").strip()
    if not request_id:
        request_id = str(request.headers.get("X-Request-Id") or "").strip() or str(uuid.uuid4())
        g.request_id = request_id
    set_log_request_id(request_id)
    return request_id


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line; ``extra=`` fields (cotacao_id, pedido_id, ...) are copied as-is."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, object] = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if has_request_context():
            payload["request_id"] = current_request_id()
            payload["method"] = request.method
            payload["path"] = request.path
        else:
            payload["request_id"] = str(getattr(record, "request_id", "") or "").strip() or current_request_id()

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key.startswith("_") or key in payload or callable(value):
                continue
            payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, separators=(",", ":"), default=str)


def configure_json_logging(app) -> None:
    if not bool(app.config.get("LOG_JSON", True)):
        return
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).strip().upper(), logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter())
    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)
    app.logger.handlers = []
    app.logger.propagate = True


class MarketplaceMetrics:
    """In-process counters: HTTP traffic per route plus marketplace events."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._routes: Dict[str, Dict[str, float]] = {}
        self._events: Counter = Counter()
        self._order_statuses: Counter = Counter()

    def observe_http(self, method: str, route: str, status_code: int, duration_ms: float) -> None:
        key = f"{(method or 'GET').upper()} {route or 'unknown'}"
        duration_ms = max(0.0, float(duration_ms))
        with self._lock:
            bucket = self._routes.setdefault(key, {"requests": 0, "errors": 0, "latency_sum_ms": 0.0})
            bucket["requests"] += 1
            bucket["latency_sum_ms"] += duration_ms
            if int(status_code) >= 400:
                bucket["errors"] += 1

    def record_event(self, name: str, count: int = 1) -> None:
        if count <= 0:
            return
        with self._lock:
            self._events[name] += int(count)

    def record_order_status(self, status: str) -> None:
        with self._lock:
            self._order_statuses[str(status)] += 1

    def snapshot(self) -> dict:
        with self._lock:
            by_route = [
                {
                    "route": route,
                    "requests": int(bucket["requests"]),
                    "errors": int(bucket["errors"]),
                    "avg_latency_ms": round(bucket["latency_sum_ms"] / bucket["requests"], 2),
                }
                for route, bucket in self._routes.items()
            ]
            by_route.sort(key=lambda item: item["requests"], reverse=True)
            events = {name: int(self._events.get(name, 0)) for name in MARKETPLACE_EVENTS}
            events.update({name: int(count) for name, count in self._events.items() if name not in events})
            return {
                "http": {
                    "requests_total": sum(item["requests"] for item in by_route),
                    "errors_total": sum(item["errors"] for item in by_route),
                    "by_route": by_route,
                },
                "marketplace": {**events, "order_status_changes": dict(self._order_statuses)},
            }

    def reset(self) -> None:
        with self._lock:
            self._routes.clear()
            self._events.clear()
            self._order_statuses.clear()


_METRICS = MarketplaceMetrics()


def record_event(name: str, count: int = 1) -> None:
    _METRICS.record_event(name, count)


def record_order_status(status: str) -> None:
    _METRICS.record_order_status(status)


def mark_request_start() -> None:
    g._request_started_at = time.perf_counter()


def observe_response(response):
    started = getattr(g, "_request_started_at", None)
    elapsed_ms = (time.perf_counter() - started) * 1000.0 if started else 0.0
    route = request.url_rule.rule if request.url_rule is not None else request.path
    _METRICS.observe_http(request.method, route, int(response.status_code), elapsed_ms)
    response.headers["X-Response-Time-Ms"] = f"{elapsed_ms:.2f}"
    return response


def metrics_snapshot() -> dict:
    return _METRICS.snapshot()


def reset_metrics_for_tests() -> None:
    _METRICS.reset()
    set_log_request_id(None)
