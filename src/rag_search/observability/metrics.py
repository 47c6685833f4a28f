from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

# Search Metrics
SEARCH_REQUESTS = Counter(
    "rag_search_requests_total",
    "Total number of search requests",
    ["status", "mode"]
)

SEARCH_LATENCY = Histogram(
    "rag_search_latency_seconds",
    "Search request latency in seconds",
    ["mode"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0]
)

DEGRADED_SEARCHES = Counter(
    "rag_search_degraded_total",
    "Searches that fell back to keyword scoring",
    ["requested_mode"]
)

# Embedding Metrics
EMBEDDING_CACHE_HITS = Counter(
    "rag_search_embedding_cache_hits_total",
    "Embeddings served from the content-hash or query cache",
    ["kind"]
)

EMBEDDING_CACHE_MISSES = Counter(
    "rag_search_embedding_cache_misses_total",
    "Embeddings that required a provider call",
    ["kind"]
)

PROVIDER_CALLS = Counter(
    "rag_search_provider_calls_total",
    "Embedding provider calls by outcome",
    ["outcome"]
)

# Indexing Metrics
INDEXED_DOCUMENTS = Counter(
    "rag_search_indexed_documents_total",
    "Documents processed by the index writer",
    ["status"]
)

SNAPSHOT_REFRESHES = Counter(
    "rag_search_snapshot_refreshes_total",
    "Snapshot reload attempts",
    ["status"]
)

SNAPSHOT_REFRESH_TIME = Histogram(
    "rag_search_snapshot_refresh_seconds",
    "Time taken to load and build a snapshot"
)

SNAPSHOT_GENERATION = Gauge(
    "rag_search_snapshot_generation",
    "Generation of the snapshot currently serving reads"
)


def get_metrics():
    """Return latest metrics in Prometheus format."""
    return generate_latest(), CONTENT_TYPE_LATEST
