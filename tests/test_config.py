from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from nearow.config import (
    DEFAULT_CONFIG,
    ConfigurationError,
    GPSConfig,
    IngestConfig,
    ProcessingConfig,
    PublisherConfig,
    build_config,
    documented_default_config,
    load_config,
)

_EXAMPLE = Path(__file__).resolve().parents[1] / "config.example.yaml"


def test_defaults() -> None:
    cfg = build_config()
    proc = cfg.processing
    assert proc.window_capacity == 200
    assert proc.lag_range() == (60, 200)
    assert proc.refractory_s == pytest.approx(1.2)
    assert proc.smoothing_factor == 0.5
    assert cfg.gps.enabled is True
    assert cfg.gps.accuracy_threshold_m == 20.0
    assert cfg.config_path is None
    proc.validate()


def test_example_file_matches_defaults() -> None:
    with _EXAMPLE.open("r", encoding="utf-8") as f:
        documented = yaml.safe_load(f)
    assert documented == documented_default_config()


def test_documented_defaults_are_a_copy() -> None:
    documented = documented_default_config()
    documented["processing"]["window_seconds"] = 99
    assert DEFAULT_CONFIG["processing"]["window_seconds"] == 4


def test_load_config_merges_user_file(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        "processing:\n  window_seconds: 6\n  max_stroke_rate: 45\ngps:\n  enabled: false\n",
        encoding="utf-8",
    )
    cfg = load_config(path)
    assert cfg.processing.window_seconds == 6
    assert cfg.processing.max_stroke_rate == 45.0
    assert cfg.processing.sampling_rate_hz == 50
    assert cfg.gps.enabled is False
    assert cfg.gps.accuracy_threshold_m == 20.0
    assert cfg.config_path == path.resolve()


def test_load_config_missing_file_uses_defaults(tmp_path: Path) -> None:
    cfg = load_config(tmp_path / "absent.yaml")
    assert cfg.processing.window_seconds == 4


def test_load_config_empty_file_uses_defaults(tmp_path: Path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(path).processing.window_capacity == 200


def test_load_config_rejects_non_mapping(tmp_path: Path) -> None:
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ValueError, match="YAML object"):
        load_config(path)


def test_out_of_range_values_are_clamped(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level("WARNING", logger="nearow.config"):
        proc = ProcessingConfig(
            sampling_rate_hz=0,
            smoothing_factor=1.5,
            peak_threshold_multiplier=-1.0,
            analysis_interval_samples=0,
        )
    assert proc.sampling_rate_hz == 1
    assert proc.smoothing_factor == 1.0
    assert proc.peak_threshold_multiplier == 0.0
    assert proc.analysis_interval_samples == 1
    assert "clamped" in caplog.text


def test_non_positive_gps_accuracy_falls_back() -> None:
    assert GPSConfig(accuracy_threshold_m=0).accuracy_threshold_m == 20.0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"min_stroke_rate": 0.0},
        {"max_stroke_rate": -5.0},
        {"min_stroke_rate": 40.0, "max_stroke_rate": 40.0},
        {"min_correlation_confidence": 1.5},
        {"window_seconds": 1},
        {"min_overlap_samples": 150},
    ],
)
def test_validate_rejects_unusable_settings(kwargs) -> None:
    with pytest.raises(ConfigurationError):
        ProcessingConfig(**kwargs).validate()


def test_configuration_error_is_a_value_error() -> None:
    assert issubclass(ConfigurationError, ValueError)


def test_queue_sizes_must_be_positive() -> None:
    with pytest.raises(ValueError):
        PublisherConfig(queue_maxsize=0)
    with pytest.raises(ValueError):
        IngestConfig(gps_queue_maxsize=0)


def test_min_overlap_is_clamped(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level("WARNING", logger="nearow.config"):
        proc = ProcessingConfig(min_overlap_samples=0)
    assert proc.min_overlap_samples == 2
    assert "min_overlap_samples" in caplog.text


def test_resolvable_min_rate_depends_on_window() -> None:
    # 200 samples leave lags up to 190 scorable; 250 samples cover the whole band.
    assert ProcessingConfig().resolvable_min_rate() == pytest.approx(3000.0 / 190)
    assert ProcessingConfig(window_seconds=5).resolvable_min_rate() == pytest.approx(15.0)


def test_publisher_and_ingest_sections_are_loaded(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        "publisher:\n  threaded: true\n  queue_maxsize: 16\n"
        "ingest:\n  accel_queue_maxsize: 8\n  gps_queue_maxsize: 4\n",
        encoding="utf-8",
    )
    cfg = load_config(path)
    assert cfg.publisher == PublisherConfig(threaded=True, queue_maxsize=16, drop_log_interval_s=10.0)
    assert cfg.ingest == IngestConfig(accel_queue_maxsize=8, gps_queue_maxsize=4)
