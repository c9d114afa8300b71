"""Monitoring configuration for the tracker."""
from prometheus_client import Counter, start_http_server

# Scheduling metrics
transitions = Counter(
    "algotrack_transitions_total",
    "Scheduler operations applied to progress records",
    ["operation", "outcome"],
)

# Catalog metrics
catalog_fetches = Counter(
    "algotrack_catalog_fetches_total",
    "Catalog fetches by result",
    ["result"],
)

# Store metrics
store_errors = Counter(
    "algotrack_store_errors_total",
    "Progress store operations that failed and were rolled back",
    ["operation"],
)

# Backup metrics
backups = Counter(
    "algotrack_backups_total",
    "Bulk exports and imports",
    ["direction", "scope"],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
