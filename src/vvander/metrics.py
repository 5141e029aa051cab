"""
Prometheus metrics for monitoring fog computation, the grid cache and the API.
"""
from prometheus_client import Counter, Histogram, Gauge

# Request metrics
location_requests_total = Counter(
    'location_requests_total',
    'Total number of location recording requests',
    ['status']
)

fog_requests_total = Counter(
    'fog_requests_total',
    'Total number of fog computations',
    ['status']
)

# Latency metrics
request_duration_seconds = Histogram(
    'request_duration_seconds',
    'Request latency in seconds',
    ['endpoint']
)

fog_build_duration_seconds = Histogram(
    'fog_build_duration_seconds',
    'Wall-clock time of one fog pass in seconds',
    buckets=(0.001, 0.0025, 0.005, 0.01, 0.02, 0.05, 0.1, 0.25, 0.5, 1.0)
)

slow_fog_passes_total = Counter(
    'slow_fog_passes_total',
    'Fog passes that exceeded the slow-pass budget',
    ['resolution']
)

# Grid cache metrics
grid_cache_lookups_total = Counter(
    'grid_cache_lookups_total',
    'Grid cache lookups',
    ['result']
)

grid_cache_cells = Gauge(
    'grid_cache_cells',
    'Number of grid cells held in the cache'
)

prefetch_runs_total = Counter(
    'prefetch_runs_total',
    'Prefetch passes executed',
    ['kind']
)

# Business metrics
visited_hexes = Gauge(
    'visited_hexes',
    'Number of visited hexes at storage resolution'
)

# Redis metrics
redis_operations_total = Counter(
    'redis_operations_total',
    'Total Redis operations',
    ['operation', 'status']
)
