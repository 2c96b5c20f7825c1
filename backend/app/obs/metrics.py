"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Histogram


REQUEST_COUNTER = Counter(
	"forum_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"forum_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

MOD_ITEMS_SUBMITTED_TOTAL = Counter(
	"mod_items_submitted_total",
	"Content items entering moderation",
	["content_type", "initial_status"],
)

MOD_DECISIONS_TOTAL = Counter(
	"mod_decisions_total",
	"Applied moderation status transitions",
	["transition"],
)

MOD_DECISION_CONFLICTS_TOTAL = Counter(
	"mod_decision_conflicts_total",
	"Decisions rejected because another decision won the race",
)

MOD_INVALID_TRANSITIONS_TOTAL = Counter(
	"mod_invalid_transitions_total",
	"Decisions rejected by the moderation state machine",
	["from_status", "to_status"],
)

MOD_BULK_DECISIONS_TOTAL = Counter(
	"mod_bulk_decisions_total",
	"Per-item outcomes of bulk decisions",
	["result"],
)

MOD_REPORTS_TOTAL = Counter(
	"mod_reports_total",
	"Member reports recorded against content, by normalised reason",
	["reason"],
)

MOD_REPORT_REVIEWS_TOTAL = Counter(
	"mod_report_reviews_total",
	"Member reports moved out of pending or closed by a reviewer",
	["status"],
)

MOD_VERDICT_CONFLICTS_TOTAL = Counter(
	"mod_verdict_conflicts_total",
	"Spam verdict writes skipped because new reports arrived meanwhile",
)

MOD_LEXICON_CHANGES_TOTAL = Counter(
	"mod_lexicon_changes_total",
	"Banned word lexicon edits",
	["action"],
)

MOD_SPAM_SCORE = Histogram(
	"mod_spam_score",
	"Distribution of spam scores produced by the evaluator",
	buckets=(0.05, 0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.85, 0.95, 1.0),
)

MOD_SPAM_EVALUATION_FAILURES_TOTAL = Counter(
	"mod_spam_evaluation_failures_total",
	"Spam evaluations degraded to a zero-score verdict",
	["reason"],
)

MOD_ADMIN_REQUESTS_TOTAL = Counter(
	"mod_admin_requests_total",
	"Moderation admin API requests",
	["route", "status"],
)

MOD_QUEUE_LIST_LATENCY_MS = Histogram(
	"mod_queue_list_latency_ms",
	"Moderation queue list latency (milliseconds)",
	buckets=(1.0, 5.0, 10.0, 25.0, 50.0, 100.0, 250.0, 500.0, 1000.0),
)

MOD_EVENT_PUBLISH_FAILURES_TOTAL = Counter(
	"mod_event_publish_failures_total",
	"Decision events that could not be appended to the stream",
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)
