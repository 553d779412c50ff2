"""
Prometheus metrics for the legacy import engine.
"""

from prometheus_client import Counter, Histogram, Gauge


# ── Batch Allocation ────────────────────────────────────────
batches_reassigned_total = Counter(
    "legacy_import_batches_reassigned_total",
    "Batches whose owner changed through reassignment or allocation",
    ["mode"],
)

batch_reassignment_conflicts_total = Counter(
    "legacy_import_batch_reassignment_conflicts_total",
    "Reassignment writes rejected because the batch changed concurrently",
)

stalled_batches = Gauge(
    "legacy_import_stalled_batches",
    "Stalled batches seen by the most recent reassignment query",
)

# ── Categorization ──────────────────────────────────────────
documents_categorized_total = Counter(
    "legacy_import_documents_categorized_total",
    "Categorization actions on extracted documents",
    ["status"],
)

batches_completed_total = Counter(
    "legacy_import_batches_completed_total",
    "Batches that reached completion",
)

# ── Clustering & Validation ─────────────────────────────────
clusters_created_total = Counter(
    "legacy_import_clusters_created_total",
    "Document clusters created",
    ["source"],
)

cluster_actions_total = Counter(
    "legacy_import_cluster_actions_total",
    "Cluster validation actions",
    ["action"],
)

document_validation_actions_total = Counter(
    "legacy_import_document_validation_actions_total",
    "Per-document validation actions",
    ["action"],
)

clustering_duration_seconds = Histogram(
    "legacy_import_clustering_duration_seconds",
    "Time to cluster a session's documents",
    buckets=[0.5, 1, 5, 10, 30, 60, 120, 300],
)

# ── Template Extraction ─────────────────────────────────────
template_extractions_total = Counter(
    "legacy_import_template_extractions_total",
    "Template extraction jobs by outcome",
    ["status"],
)

template_extraction_duration_seconds = Histogram(
    "legacy_import_template_extraction_duration_seconds",
    "Time to extract templates for a session",
    buckets=[1, 5, 10, 30, 60, 120, 300, 600],
)

# ── Worker ───────────────────────────────────────────────────
worker_jobs_active = Gauge(
    "legacy_import_worker_jobs_active",
    "Number of currently active worker jobs",
)
