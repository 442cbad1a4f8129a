"""Plan a sweep: place ungrouped tabs into existing groups or new clusters.

Everything here is pure computation over term vectors. Input order is the
tie-break contract: entries and group vectors are processed in the order
given, and the first group or seed wins among equals.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from tabtopics.colors import ColorPolicy, RandomColors
from tabtopics.text import domain_root
from tabtopics.vectorize import STOP_WORDS, TermVector, cosine_similarity, merge_vectors

SIMILARITY_THRESHOLD = 0.25
MIN_GROUP_SIZE = 2
FALLBACK_LABEL = "Research"

Entry = Tuple[int, TermVector]


@dataclass
class Assignment:
    tab_id: int
    group_id: int
    score: float


@dataclass
class Cluster:
    tab_ids: List[int]
    pool: TermVector


@dataclass
class PlannedGroup:
    tab_ids: List[int]
    label: str
    color: str
    shared_terms: TermVector = field(default_factory=dict)


@dataclass
class SweepPlan:
    assignments: List[Assignment] = field(default_factory=list)
    groups: List[PlannedGroup] = field(default_factory=list)
    leftovers: List[int] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.assignments and not self.groups


def build_group_vectors(members: Iterable[Tuple[int, List[TermVector]]]) -> Dict[int, TermVector]:
    """Sum member vectors per group; groups without members are left out."""
    group_vectors: Dict[int, TermVector] = {}
    for group_id, vectors in members:
        if vectors:
            group_vectors[group_id] = merge_vectors(vectors)
    return group_vectors


def best_group(
    vector: TermVector,
    group_vectors: Dict[int, TermVector],
    threshold: float,
) -> Optional[Tuple[int, float]]:
    best: Optional[Tuple[int, float]] = None
    for group_id, group_vector in group_vectors.items():
        score = cosine_similarity(vector, group_vector)
        if score > threshold and (best is None or score > best[1]):
            best = (group_id, score)
    return best


def assign_to_groups(
    entries: List[Entry],
    group_vectors: Dict[int, TermVector],
    threshold: float = SIMILARITY_THRESHOLD,
) -> Tuple[List[Assignment], List[Entry]]:
    assignments: List[Assignment] = []
    remaining: List[Entry] = []
    for tab_id, vector in entries:
        match = best_group(vector, group_vectors, threshold)
        if match is None:
            remaining.append((tab_id, vector))
        else:
            assignments.append(Assignment(tab_id, match[0], match[1]))
    return assignments, remaining


def greedy_clusters(entries: List[Entry], threshold: float = SIMILARITY_THRESHOLD) -> List[Cluster]:
    """Partition entries into clusters around the first unclustered tab.

    Candidates are compared with the seed only. The pool keeps the seed's
    weights and loses every term a joining tab lacks.
    """
    clustered = set()
    clusters: List[Cluster] = []
    for i, (seed_id, seed_vector) in enumerate(entries):
        if seed_id in clustered:
            continue
        clustered.add(seed_id)
        cluster = Cluster([seed_id], dict(seed_vector))
        for tab_id, vector in entries[i + 1:]:
            if tab_id in clustered:
                continue
            if cosine_similarity(seed_vector, vector) > threshold:
                cluster.tab_ids.append(tab_id)
                clustered.add(tab_id)
                cluster.pool = {t: w for t, w in cluster.pool.items() if vector.get(t)}
        clusters.append(cluster)
    return clusters


def cluster_label(pool: TermVector) -> str:
    candidates = [term for term in pool if term not in STOP_WORDS]
    if not candidates:
        return FALLBACK_LABEL
    best = max(candidates, key=lambda term: pool[term] * len(term))
    if len(best) <= 2:
        return FALLBACK_LABEL
    return best[0].upper() + best[1:]


def plan_by_domain(
    tabs: Iterable,
    min_group_size: int = MIN_GROUP_SIZE,
    color_policy: Optional[ColorPolicy] = None,
) -> SweepPlan:
    """Group tabs sharing a domain root; no text similarity involved."""
    color_policy = color_policy or RandomColors()
    by_domain: Dict[str, List[int]] = {}
    plan = SweepPlan()
    for tab in tabs:
        root = domain_root(tab.url or "")
        if root:
            by_domain.setdefault(root, []).append(tab.id)
        else:
            plan.leftovers.append(tab.id)
    for root, tab_ids in by_domain.items():
        if len(tab_ids) < max(2, min_group_size):
            plan.leftovers.extend(tab_ids)
            continue
        label = root[0].upper() + root[1:]
        plan.groups.append(PlannedGroup(tab_ids, label, color_policy(label)))
    return plan


def plan_sweep(
    entries: List[Entry],
    group_vectors: Dict[int, TermVector],
    threshold: float = SIMILARITY_THRESHOLD,
    min_group_size: int = MIN_GROUP_SIZE,
    color_policy: Optional[ColorPolicy] = None,
) -> SweepPlan:
    if min_group_size < 1:
        raise ValueError(f"min_group_size must be at least 1, got {min_group_size}")
    color_policy = color_policy or RandomColors()
    assignments, remaining = assign_to_groups(entries, group_vectors, threshold)
    plan = SweepPlan(assignments=assignments)
    for cluster in greedy_clusters(remaining, threshold):
        if len(cluster.tab_ids) < min_group_size:
            plan.leftovers.extend(cluster.tab_ids)
            continue
        label = cluster_label(cluster.pool)
        plan.groups.append(PlannedGroup(cluster.tab_ids, label, color_policy(label), cluster.pool))
    return plan
