from prometheus_client import Counter, Gauge, Histogram

# --- Prometheus Metrics Definitions ---
CALLS_TOTAL = Counter(
    'exbridge_calls_total',
    'Bridge calls by wire function and outcome',
    ['function', 'outcome']
)
CALL_DURATION_SECONDS = Histogram(
    'exbridge_call_duration_seconds',
    'Time from dispatch to reply (or failure) of a bridge call',
    ['function'],
    buckets=[0.05 * 2 ** i for i in range(10)]  # 0.05s to ~25s
)
WORKER_RESTARTS_TOTAL = Counter(
    'exbridge_worker_restarts_total',
    'Worker processes restarted after a crash or an abandoned call'
)
WORKERS_GAUGE = Gauge(
    'exbridge_workers',
    'Worker processes by state',
    ['state']
)
# --- End Prometheus Metrics Definitions ---
