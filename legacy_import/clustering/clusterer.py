"""
Text clustering primitives.

TF-IDF vectors grouped with DBSCAN over cosine distance; cluster naming
from top terms, representative samples nearest the centroid, note-to-name
matching for re-clustering and line-based template building.
Everything here is pure: no database access.
"""

from collections import Counter
from dataclasses import dataclass
from typing import Optional

import numpy as np
from sklearn.cluster import DBSCAN
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import cosine_similarity

NOISE = -1
NEEDS_REVIEW_NAME = "De revizuit"
NEEDS_REVIEW_NAME_EN = "Needs Review"
TEMPLATE_PLACEHOLDER = "{{...}}"


@dataclass
class Vectorized:
    matrix: object  # scipy sparse matrix, one row per text
    feature_names: np.ndarray


def vectorize(texts: list[str], max_features: int = 5000) -> Optional[Vectorized]:
    """TF-IDF vectors for `texts`, or None when nothing usable remains."""
    if not texts:
        return None
    vectorizer = TfidfVectorizer(
        max_features=max_features,
        strip_accents="unicode",
        lowercase=True,
        min_df=1,
    )
    try:
        matrix = vectorizer.fit_transform(texts)
    except ValueError:
        # Empty vocabulary: every text was blank or stop words only
        return None
    return Vectorized(matrix=matrix, feature_names=vectorizer.get_feature_names_out())


def cluster_labels(vectors: Optional[Vectorized], eps: float, min_samples: int) -> list[int]:
    """
    DBSCAN labels per row. Rows labelled NOISE belong to no cluster.
    Fewer rows than `min_samples` means everything is noise.
    """
    if vectors is None:
        return []
    n_rows = vectors.matrix.shape[0]
    if n_rows < min_samples:
        return [NOISE] * n_rows
    model = DBSCAN(eps=eps, min_samples=min_samples, metric="cosine")
    return [int(label) for label in model.fit_predict(vectors.matrix)]


def group_by_label(labels: list[int]) -> dict[int, list[int]]:
    """Row indices per label, in first-seen order."""
    groups: dict[int, list[int]] = {}
    for index, label in enumerate(labels):
        groups.setdefault(label, []).append(index)
    return groups


def _centroid(matrix, rows: list[int]) -> np.ndarray:
    return np.asarray(matrix[rows].mean(axis=0)).ravel()


def suggest_cluster_name(vectors: Vectorized, rows: list[int], top_n: int = 3) -> str:
    """Name a cluster after its heaviest TF-IDF terms."""
    centroid = _centroid(vectors.matrix, rows)
    if not centroid.any():
        return NEEDS_REVIEW_NAME
    top = np.argsort(centroid)[::-1][:top_n]
    terms = [str(vectors.feature_names[i]) for i in top if centroid[i] > 0]
    return " / ".join(term.capitalize() for term in terms)


def nearest_to_centroid(vectors: Vectorized, rows: list[int], k: int = 5) -> list[int]:
    """Up to `k` row indices closest to the cluster centroid, closest first."""
    centroid = _centroid(vectors.matrix, rows)
    scores = np.asarray(vectors.matrix[rows] @ centroid).ravel()
    order = np.argsort(-scores, kind="stable")[:k]
    return [rows[i] for i in order]


def match_to_names(
    queries: list[str], names: list[str], threshold: float
) -> list[Optional[int]]:
    """
    For each query, the index of the most similar name, or None when no
    name reaches `threshold` cosine similarity.
    """
    if not queries:
        return []
    if not names:
        return [None] * len(queries)

    vectorizer = TfidfVectorizer(strip_accents="unicode", lowercase=True, analyzer="char_wb", ngram_range=(3, 4))
    try:
        vectorizer.fit(names + queries)
    except ValueError:
        return [None] * len(queries)

    similarity = cosine_similarity(vectorizer.transform(queries), vectorizer.transform(names))
    best = similarity.argmax(axis=1)
    return [
        int(best[i]) if similarity[i, best[i]] >= threshold else None
        for i in range(len(queries))
    ]


def _lines(text: str) -> list[str]:
    return [line.strip() for line in (text or "").splitlines() if line.strip()]


def build_template(texts: list[str], min_support: float = 0.6) -> str:
    """
    Common skeleton of a set of documents.

    A line is kept when it appears in at least `min_support` of the texts.
    Kept lines follow the order of the text that contains the most of them;
    each run of other lines becomes a single placeholder.
    """
    documents = [_lines(t) for t in texts if t and t.strip()]
    if not documents:
        return ""

    support = Counter()
    for lines in documents:
        support.update(set(lines))
    needed = max(1, int(np.ceil(min_support * len(documents))))
    common = {line for line, count in support.items() if count >= needed}

    reference = max(documents, key=lambda lines: sum(1 for line in lines if line in common))

    body: list[str] = []
    for line in reference:
        if line in common:
            body.append(line)
        elif not body or body[-1] != TEMPLATE_PLACEHOLDER:
            body.append(TEMPLATE_PLACEHOLDER)
    return "\n".join(body)
