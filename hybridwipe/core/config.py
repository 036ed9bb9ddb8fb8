"""YAML resources-file loader with validation."""
import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import List, Dict, Optional, Any

import yaml

from hybridwipe.constants import DEFAULT_INSTANCE_AGE_THRESHOLD
from hybridwipe.core.filters import FilterInput

_DURATION_PART = re.compile(r'(\d+(?:\.\d+)?)(ms|h|m|s)')
_DURATION_UNITS = {
    'h': timedelta(hours=1),
    'm': timedelta(minutes=1),
    's': timedelta(seconds=1),
    'ms': timedelta(milliseconds=1),
}


class ConfigError(ValueError):
    pass


def parse_duration(value: Any) -> timedelta:
    """Parse durations written like 24h, 1h30m, 90s or a plain number of seconds."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ConfigError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    text = str(value).strip()
    if not text:
        raise ConfigError("empty duration")
    if re.fullmatch(r'\d+(\.\d+)?', text):
        return timedelta(seconds=float(text))
    pos = 0
    total = timedelta()
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text) or pos == 0:
        raise ConfigError(f"invalid duration: {value!r}")
    return total


@dataclass
class SweeperInput:
    """Scope of a sweeper pass."""
    all_clusters: bool = False
    dry_run: bool = False
    cluster_name: str = ""
    cluster_name_prefix: str = ""
    instance_age_threshold: timedelta = DEFAULT_INSTANCE_AGE_THRESHOLD

    def filter_input(self) -> FilterInput:
        return FilterInput(
            cluster_name=self.cluster_name,
            cluster_name_prefix=self.cluster_name_prefix,
            all_clusters=self.all_clusters,
            instance_age_threshold=self.instance_age_threshold,
            dry_run=self.dry_run,
        )


@dataclass
class Config:
    """hybridwipe configuration."""
    cluster_name: str = ""
    cluster_name_prefix: str = ""
    all_clusters: bool = False
    instance_age_threshold: timedelta = DEFAULT_INSTANCE_AGE_THRESHOLD
    region: Optional[str] = None
    resource_types: List[str] = field(default_factory=lambda: ["all"])
    dry_run: bool = True
    json_logs: bool = False
    verbosity: int = 0

    def should_include_resource(self, resource_type: str) -> bool:
        """Check if resource type should be processed."""
        if "all" in self.resource_types:
            return True
        return resource_type in self.resource_types

    def validate(self) -> None:
        if not (self.cluster_name or self.cluster_name_prefix or self.all_clusters):
            raise ConfigError("one of clusterName, clusterNamePrefix or allClusters is required")
        if self.instance_age_threshold < timedelta(0):
            raise ConfigError("instanceAgeThreshold must not be negative")

    def filter_input(self) -> FilterInput:
        return self.sweeper_input().filter_input()

    def sweeper_input(self) -> SweeperInput:
        return SweeperInput(
            all_clusters=self.all_clusters,
            dry_run=self.dry_run,
            cluster_name=self.cluster_name,
            cluster_name_prefix=self.cluster_name_prefix,
            instance_age_threshold=self.instance_age_threshold,
        )


def load_config(path: Optional[str] = None) -> Config:
    """Load config from a YAML resources file or return defaults.

    Args:
        path: Path to YAML file. If None, returns default config.

    Returns:
        Config instance

    Raises:
        FileNotFoundError: If specified path doesn't exist
        ConfigError: If a value has the wrong shape
        yaml.YAMLError: If YAML is invalid
    """
    if path is None:
        return Config()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")
    return _parse_config(data)


def _parse_config(data: Dict[str, Any]) -> Config:
    """Parse the camelCase resources-file mapping into Config."""
    resource_types = data.get("resourceTypes", ["all"])
    if isinstance(resource_types, str):
        resource_types = [resource_types]

    threshold = data.get("instanceAgeThreshold")
    return Config(
        cluster_name=data.get("clusterName") or "",
        cluster_name_prefix=data.get("clusterNamePrefix") or "",
        all_clusters=bool(data.get("allClusters", False)),
        instance_age_threshold=(DEFAULT_INSTANCE_AGE_THRESHOLD if threshold is None
                                else parse_duration(threshold)),
        region=data.get("clusterRegion"),
        resource_types=list(resource_types),
        dry_run=bool(data.get("dryRun", True)),
        json_logs=bool(data.get("jsonLogs", False)),
        verbosity=int(data.get("verbosity", 0)),
    )
