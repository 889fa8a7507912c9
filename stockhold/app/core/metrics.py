"""
Prometheus metrics for reservation monitoring.
"""
from prometheus_client import Counter, Gauge, Histogram


reservations_created_total = Counter(
    'stockhold_reservations_created_total',
    'Total number of reservations created',
)

reservations_rejected_total = Counter(
    'stockhold_reservations_rejected_total',
    'Total number of reservation attempts rejected for insufficient availability',
)

reservation_transitions_total = Counter(
    'stockhold_reservation_transitions_total',
    'Total number of reservation status transitions',
    ['status']
)

reservations_expired_total = Counter(
    'stockhold_reservations_expired_total',
    'Total number of reservations expired by the sweep',
)

sweep_duration_seconds = Histogram(
    'stockhold_sweep_duration_seconds',
    'Expiry sweep duration in seconds',
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

sweep_failures_total = Counter(
    'stockhold_sweep_failures_total',
    'Total number of expiry sweeps that raised',
)

reservation_locks_held = Gauge(
    'stockhold_reservation_locks_held',
    'Number of per-tuple reservation locks currently held',
)
