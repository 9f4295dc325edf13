"""Prometheus metrics emitted by the trust engine."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

from railtrust.settings import settings

RATE_LIMIT_DECISIONS = Counter(
	"railtrust_rate_limit_decisions_total",
	"Rate limiter decisions by action and outcome",
	["action", "outcome"],
)

STORE_FAILURES = Counter(
	"railtrust_store_failures_total",
	"Counter or identity store calls that failed or timed out",
	["path", "policy"],
)

CONTENT_FINDINGS = Counter(
	"railtrust_content_findings_total",
	"Moderation rules triggered by submitted content",
	["rule", "severity"],
)

LOCKOUTS = Counter(
	"railtrust_lockouts_total",
	"Accounts moved into the locked phase",
)

VIOLATIONS = Counter(
	"railtrust_violations_total",
	"Confirmed violations recorded by kind",
	["kind"],
)

SERIAL_REPORTER_FLAGS = Counter(
	"railtrust_serial_reporter_flags_total",
	"Identities flagged for serial reporting",
	["window"],
)

LISTING_AUTO_FLAGS = Counter(
	"railtrust_listing_auto_flags_total",
	"Listings flagged after collecting enough user reports",
)

VISIBILITY_EXCLUSIONS = Counter(
	"railtrust_visibility_exclusions_total",
	"Entities excluded by the visibility gate, by failed condition",
	["condition"],
)

RANKING_DURATION = Histogram(
	"railtrust_ranking_duration_seconds",
	"Time spent composing a ranked result set",
	buckets=(0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25),
)


def inc_rate_limit(action: str, outcome: str) -> None:
	if settings.metrics_enabled:
		RATE_LIMIT_DECISIONS.labels(action=action, outcome=outcome).inc()


def inc_store_failure(path: str, policy: str) -> None:
	if settings.metrics_enabled:
		STORE_FAILURES.labels(path=path, policy=policy).inc()


def inc_content_finding(rule: str, severity: str) -> None:
	if settings.metrics_enabled:
		CONTENT_FINDINGS.labels(rule=rule, severity=severity).inc()


def inc_violation(kind: str) -> None:
	if settings.metrics_enabled:
		VIOLATIONS.labels(kind=kind).inc()


def inc_lockout() -> None:
	if settings.metrics_enabled:
		LOCKOUTS.inc()


def inc_serial_reporter_flag(window: str) -> None:
	if settings.metrics_enabled:
		SERIAL_REPORTER_FLAGS.labels(window=window).inc()


def inc_listing_auto_flag() -> None:
	if settings.metrics_enabled:
		LISTING_AUTO_FLAGS.inc()


def inc_visibility_exclusion(condition: str) -> None:
	if settings.metrics_enabled:
		VISIBILITY_EXCLUSIONS.labels(condition=condition).inc()


def observe_ranking(elapsed_seconds: float) -> None:
	if settings.metrics_enabled:
		RANKING_DURATION.observe(elapsed_seconds)
