import argparse
import json
from datetime import datetime

import pytest

from k6report.config import ReportConfig, config_from_dict, load_config_file, merge_config_with_args, resolve_output_path
from k6report.errors import ConfigError

YAML_CONFIG = """
test:
  name: Case Journeys
  environment: UAT
input:
  file: results.json
output:
  json: out/report.json
  include_samples: true
report:
  success_policy: 2xx
  percentiles: [50, 95]
  bucket_ms: 2000
thresholds:
  http_req_duration: ["p(95)<800"]
  http_req_failed: ["rate<0.01"]
"""


def _args(**values) -> argparse.Namespace:
    defaults = {"input": None, "output": None, "excel_export": None, "test_name": None,
                "environment": None, "success_policy": None, "percentiles": None,
                "bucket_ms": None, "include_samples": False, "thresholds": None}
    defaults.update(values)
    return argparse.Namespace(**defaults)


def test_yaml_config_maps_sections(tmp_path) -> None:
    path = tmp_path / "report.yaml"
    path.write_text(YAML_CONFIG, encoding="utf-8")
    config = config_from_dict(load_config_file(str(path)))

    assert config.test_name == "Case Journeys"
    assert config.environment == "UAT"
    assert config.input == "results.json"
    assert config.output == "out/report.json"
    assert config.include_samples is True
    assert config.success_policy == "2xx"
    assert config.percentiles == [50.0, 95.0]
    assert config.bucket_ms == 2000
    assert config.thresholds["http_req_failed"] == ["rate<0.01"]
    config.validate()


def test_json_config(tmp_path) -> None:
    path = tmp_path / "report.json"
    path.write_text(json.dumps({"input": {"file": "a.json"}}), encoding="utf-8")
    config = config_from_dict(load_config_file(str(path)))
    assert config.input == "a.json"
    assert config.test_name == "k6 Load Test"


def test_empty_config_file(tmp_path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config_file(str(path)) == {}


@pytest.mark.parametrize("content", ["test: [unclosed", "- just\n- a list\n"])
def test_bad_config_file(tmp_path, content) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config_file(str(path))


def test_missing_config_file(tmp_path) -> None:
    with pytest.raises(ConfigError):
        load_config_file(str(tmp_path / "missing.yaml"))


def test_bad_section_type() -> None:
    with pytest.raises(ConfigError):
        config_from_dict({"report": "2xx"})
    with pytest.raises(ConfigError):
        config_from_dict({"report": {"bucket_ms": "soon"}})


def test_command_line_takes_precedence() -> None:
    config = ReportConfig(input="from-file.json", test_name="File", include_samples=True)
    merged = merge_config_with_args(config, _args(input="cli.json", percentiles=[99.0]))

    assert merged.input == "cli.json"
    assert merged.test_name == "File"
    assert merged.percentiles == [99.0]
    assert merged.include_samples is True


@pytest.mark.parametrize("overrides", [
    {"success_policy": "3xx"},
    {"bucket_ms": 0},
    {"percentiles": [101]},
    {"thresholds": ["p(95)<800"]},
])
def test_validate_rejects(overrides) -> None:
    with pytest.raises(ConfigError):
        ReportConfig(**overrides).validate()


def test_resolve_output_path(tmp_path) -> None:
    target = tmp_path / "nested" / "report_${TIMESTAMP}.json"
    resolved = resolve_output_path(str(target), now=datetime(2024, 1, 2, 3, 4, 5))

    assert resolved.endswith("report_20240102_030405.json")
    assert (tmp_path / "nested").is_dir()
    assert resolve_output_path(None) is None
