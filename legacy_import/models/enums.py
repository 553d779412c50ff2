"""
Python enums for the status columns.
Values are stored verbatim in the database.
"""

from enum import Enum


class SessionStatus(str, Enum):
    UPLOADING = "Uploading"
    EXTRACTING = "Extracting"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    EXPORTED = "Exported"


# Forward-only lifecycle order
SESSION_STATUS_ORDER = [
    SessionStatus.UPLOADING,
    SessionStatus.EXTRACTING,
    SessionStatus.IN_PROGRESS,
    SessionStatus.COMPLETED,
    SessionStatus.EXPORTED,
]


class PipelineStatus(str, Enum):
    """Clustering / template extraction pipeline state of a session."""
    NOT_STARTED = "NotStarted"
    CLUSTERING = "Clustering"
    READY_FOR_VALIDATION = "ReadyForValidation"
    RECLUSTERING = "ReClustering"
    EXTRACTING = "Extracting"
    COMPLETED = "Completed"
    FAILED = "Failed"


class CategorizationStatus(str, Enum):
    UNCATEGORIZED = "Uncategorized"
    CATEGORIZED = "Categorized"
    SKIPPED = "Skipped"


class ValidationStatus(str, Enum):
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    DELETED = "Deleted"
    RECLASSIFIED = "Reclassified"


class ClusterStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class ClusterAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    DELETE = "delete"


class DocumentAction(str, Enum):
    ACCEPT = "accept"
    DELETE = "delete"
    RECLASSIFY = "reclassify"


class AuditAction(str, Enum):
    BATCH_REASSIGNED = "batch_reassigned"
    BATCHES_ALLOCATED = "batches_allocated"
    CLUSTERS_MERGED = "clusters_merged"
    CLUSTER_DELETED = "cluster_deleted"
    CATEGORIES_MERGED = "categories_merged"
