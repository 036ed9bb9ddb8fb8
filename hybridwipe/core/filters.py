"""Tag model and the keep/delete decision shared by every cleaner."""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, List, Mapping, Optional

from hybridwipe.constants import DEFAULT_INSTANCE_AGE_THRESHOLD, TEST_CLUSTER_TAG_KEY


@dataclass(frozen=True)
class Tag:
    key: str
    value: str


@dataclass
class ResourceWithTags:
    """Resource-type agnostic view of a candidate for deletion.

    creation_time is None when the resource type does not expose one (VPCs).
    Such resources always count as old enough.
    """
    id: str
    creation_time: Optional[datetime] = None
    tags: List[Tag] = field(default_factory=list)


@dataclass(frozen=True)
class FilterInput:
    """Which tagged resources a cleanup run may delete."""
    cluster_name: str = ""
    cluster_name_prefix: str = ""
    all_clusters: bool = False
    instance_age_threshold: timedelta = DEFAULT_INSTANCE_AGE_THRESHOLD
    dry_run: bool = False


def convert_tags(raw: Any) -> List[Tag]:
    """Normalize any SDK tag shape into a list of Tag.

    Accepts lists of {"Key", "Value"} dicts (EC2, IAM, SSM, CloudFormation,
    tagging API), lists of {"key", "value"} dicts (Roles Anywhere) and plain
    mappings (EKS).
    """
    if not raw:
        return []
    if isinstance(raw, Mapping):
        return [Tag(str(k), "" if v is None else str(v)) for k, v in raw.items()]
    tags = []
    for item in raw:
        key = item.get("Key", item.get("key"))
        if key is None:
            continue
        value = item.get("Value", item.get("value"))
        tags.append(Tag(key, "" if value is None else value))
    return tags


def get_cluster_tag_value(tags: List[Tag]) -> str:
    for tag in tags:
        if tag.key == TEST_CLUSTER_TAG_KEY:
            return tag.value
    return ""


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def resource_old_enough(creation_time: Optional[datetime], filter_input: FilterInput,
                        now: Optional[datetime] = None) -> bool:
    """Age pre-check for callers about to spend an API call on fetching tags.

    Not authoritative: should_delete_resource makes the final decision.
    """
    if filter_input.cluster_name:
        return True
    if creation_time is None:
        return True
    now = _as_utc(now) if now else datetime.now(timezone.utc)
    return now - _as_utc(creation_time) > filter_input.instance_age_threshold


def should_delete_resource(resource: ResourceWithTags, filter_input: FilterInput,
                           now: Optional[datetime] = None) -> bool:
    cluster = get_cluster_tag_value(resource.tags)
    if not cluster:
        return False

    # Exact cluster match deletes regardless of age
    if filter_input.cluster_name:
        return cluster == filter_input.cluster_name

    if filter_input.all_clusters or (
        filter_input.cluster_name_prefix and cluster.startswith(filter_input.cluster_name_prefix)
    ):
        return resource_old_enough(resource.creation_time, filter_input, now)

    return False
