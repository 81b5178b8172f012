"""Prometheus metrics shared by the resolution, recording and stats layers."""

from prometheus_client import Counter, Histogram

__all__ = [
    "RESOLUTION_REQUESTS_TOTAL",
    "RESOLUTION_DURATION",
    "VISITS_RECORDED_TOTAL",
    "VISIT_RECORD_FAILURES_TOTAL",
    "PROFILE_VISITS_TOTAL",
    "LINK_CREATION_REQUESTS_TOTAL",
    "STATS_CACHE_LOOKUPS_TOTAL",
    "DATABASE_READS_TOTAL",
    "DATABASE_WRITES_TOTAL",
]

# Resolution
RESOLUTION_REQUESTS_TOTAL = Counter(
    "biolink_resolution_requests_total",
    "Identifier resolutions by outcome and matching step",
    ["outcome", "source"],
)
RESOLUTION_DURATION = Histogram(
    "biolink_resolution_duration_seconds",
    "Time taken to walk the resolution chain",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5],
)

# Visit recording
VISITS_RECORDED_TOTAL = Counter(
    "biolink_visits_recorded_total",
    "Link visit rows inserted",
)
VISIT_RECORD_FAILURES_TOTAL = Counter(
    "biolink_visit_record_failures_total",
    "Best-effort analytics writes that failed",
    ["step"],
)
PROFILE_VISITS_TOTAL = Counter(
    "biolink_profile_visits_total",
    "Profile and settings-slug visits counted",
)

# Links
LINK_CREATION_REQUESTS_TOTAL = Counter(
    "biolink_link_creation_requests_total",
    "Link creation requests",
    ["status"],
)

# Stats cache
STATS_CACHE_LOOKUPS_TOTAL = Counter(
    "biolink_stats_cache_lookups_total",
    "Stats cache lookups",
    ["result"],
)

# Database
DATABASE_READS_TOTAL = Counter(
    "biolink_database_reads_total",
    "Total database read operations",
)
DATABASE_WRITES_TOTAL = Counter(
    "biolink_database_writes_total",
    "Total database write operations",
)
