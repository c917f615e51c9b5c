"""
Prometheus metrics: booking status transitions (previewed), rejected requests, saves and save failures.
"""
from prometheus_client import Counter, generate_latest

# Transitions applied to a working booking (not yet persisted)
booking_transitions_total = Counter(
    "booking_transitions_total",
    "Total booking status transitions applied",
    ["from_status", "to_status"],
)
booking_transitions_rejected_total = Counter(
    "booking_transitions_rejected_total",
    "Total transition requests rejected before reaching the state machine",
    ["reason"],
)

# Persistence
booking_saves_total = Counter(
    "booking_saves_total",
    "Total booking lifecycle saves written to the document store",
)
booking_save_failures_total = Counter(
    "booking_save_failures_total",
    "Total booking saves that failed in the document store",
)


def get_metrics_content_type():
    return "text/plain; charset=utf-8; version=0.0.4"


def get_metrics_bytes():
    return generate_latest()
