import argparse
import json
import os
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, List, Optional

import yaml

from .aggregation import DEFAULT_PERCENTILES
from .errors import ConfigError
from .models import DEFAULT_SUCCESS_POLICY, SUCCESS_POLICIES
from .trends import DEFAULT_BUCKET_MS

DEFAULT_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


@dataclass
class ReportConfig:
    input: Optional[str] = None
    output: Optional[str] = None
    excel_export: Optional[str] = None
    test_name: str = "k6 Load Test"
    environment: str = "Unknown"
    success_policy: str = DEFAULT_SUCCESS_POLICY
    percentiles: List[float] = field(default_factory=lambda: list(DEFAULT_PERCENTILES))
    bucket_ms: int = DEFAULT_BUCKET_MS
    include_samples: bool = False
    timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT
    thresholds: Dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        if self.success_policy not in SUCCESS_POLICIES:
            known = ", ".join(sorted(SUCCESS_POLICIES))
            raise ConfigError(f"Unknown success policy {self.success_policy!r} (expected one of: {known})")
        if self.bucket_ms <= 0:
            raise ConfigError(f"bucket_ms must be > 0, got {self.bucket_ms}")
        for p in self.percentiles:
            if not 0 <= p <= 100:
                raise ConfigError(f"Percentiles must be within 0-100, got {p}")
        if not isinstance(self.thresholds, dict):
            raise ConfigError("thresholds must be a mapping of metric to expressions")


# =========================
# CONFIGURATION FILE SUPPORT
# =========================

def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load configuration from a JSON or YAML file."""
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            if config_path.endswith(".json"):
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Failed to load config file {config_path}: {e}") from e
    except (ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to parse config file {config_path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")
    return data


# Maps "section.key" in config files onto ReportConfig fields.
CONFIG_MAPPING = {
    "test": {
        "name": "test_name",
        "environment": "environment",
    },
    "input": {
        "file": "input",
    },
    "output": {
        "json": "output",
        "excel": "excel_export",
        "include_samples": "include_samples",
        "timestamp_format": "timestamp_format",
    },
    "report": {
        "success_policy": "success_policy",
        "percentiles": "percentiles",
        "bucket_ms": "bucket_ms",
    },
}


def config_from_dict(data: Dict[str, Any]) -> ReportConfig:
    values: Dict[str, Any] = {}
    for section, mapping in CONFIG_MAPPING.items():
        section_data = data.get(section) or {}
        if not isinstance(section_data, dict):
            raise ConfigError(f"Config section {section!r} must be a mapping")
        for config_key, attr in mapping.items():
            if config_key in section_data:
                values[attr] = section_data[config_key]
    if "thresholds" in data:
        values["thresholds"] = data["thresholds"] or {}
    try:
        config = ReportConfig(**values)
        config.bucket_ms = int(config.bucket_ms)
        config.percentiles = [float(p) for p in config.percentiles]
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
    return config


def merge_config_with_args(config: ReportConfig, args: argparse.Namespace) -> ReportConfig:
    """Command line values take precedence over the config file."""
    args_dict = vars(args)
    for f in fields(ReportConfig):
        value = args_dict.get(f.name)
        if value is None or value == [] or value == "":
            continue
        if value is False and f.type is bool:
            continue
        setattr(config, f.name, value)
    return config


def resolve_output_path(path: Optional[str], timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
                        now: Optional[datetime] = None) -> Optional[str]:
    """Substitute ``${TIMESTAMP}`` and make sure the parent directory exists."""
    if not path:
        return path
    if "${TIMESTAMP}" in path:
        stamp = (now or datetime.now()).strftime(timestamp_format)
        path = path.replace("${TIMESTAMP}", stamp)
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    return path
