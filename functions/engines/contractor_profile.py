"""Contractor profile view over project patterns.

The profile is a pure aggregation of the pattern history. It is stored
in the knowledge base and refreshed when stale or on request.
"""

from collections import Counter, defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Sequence

from models.knowledge_base import ContractorProfile, ProjectPattern

TOP_N = 3


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def compute_contractor_profile(
    patterns: Sequence[ProjectPattern],
    now: datetime,
    top_n: int = TOP_N
) -> ContractorProfile:
    """Aggregate patterns into a contractor profile.

    Args:
        patterns: Full pattern history.
        now: Timestamp stored as the profile's last update.
        top_n: How many specialties and materials per type to keep.

    Returns:
        Profile with specialties and preferred materials ordered by
        frequency (ties keep first-seen order) and the mean markup per
        project type.
    """
    type_counts: Counter = Counter()
    material_counts: Dict[str, Counter] = defaultdict(Counter)
    markups: Dict[str, List[float]] = defaultdict(list)

    for pattern in patterns:
        if not pattern.project_type:
            continue
        type_counts[pattern.project_type] += 1
        if pattern.project_subtype:
            material_counts[pattern.project_type][pattern.project_subtype] += 1
        if pattern.markup is not None:
            markups[pattern.project_type].append(pattern.markup)

    return ContractorProfile(
        specialties=[project_type for project_type, _ in type_counts.most_common(top_n)],
        preferred_materials={
            project_type: [material for material, _ in counts.most_common(top_n)]
            for project_type, counts in material_counts.items()
        },
        typical_markups={
            project_type: sum(values) / len(values)
            for project_type, values in markups.items()
            if values
        },
        last_updated=now,
    )


def is_profile_stale(profile: ContractorProfile, now: datetime, refresh_days: int) -> bool:
    """Check if the profile is at least refresh_days old."""
    age = _as_aware(now) - _as_aware(profile.last_updated)
    return age >= timedelta(days=refresh_days)
