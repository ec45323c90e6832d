import os
from pathlib import Path

import pytest

from core import metrics
from core.config import ConfigError, as_dict, get_config


def _use_config(tmp_path: Path, yaml_text: str) -> None:
    (tmp_path / "base.yaml").write_text(yaml_text, encoding="utf-8")
    os.environ["BOOKBAG_CONFIG_DIR"] = str(tmp_path)


def test_defaults_when_no_files(tmp_path):
    os.environ["BOOKBAG_CONFIG_DIR"] = str(tmp_path / "missing")
    cfg = get_config()
    assert cfg.thinking.tail_window_chars == 128
    assert cfg.tps.chars_per_token == 4
    assert cfg.logging.format == "text"
    assert as_dict()["schema_version"] == 1


def test_overrides_layer_on_base(tmp_path):
    _use_config(
        tmp_path,
        "schema_version: 1\n"
        "thinking:\n  tail_window_chars: 64\n  persist_workers: 3\n",
    )
    (tmp_path / "overrides.local.yaml").write_text(
        "thinking:\n  persist_workers: 4\n", encoding="utf-8"
    )
    cfg = get_config()
    assert cfg.thinking.tail_window_chars == 64
    assert cfg.thinking.persist_workers == 4


def test_env_override_wins_and_is_counted(tmp_path, monkeypatch):
    _use_config(tmp_path, "schema_version: 1\nllm:\n  max_output_tokens: 256\n")
    monkeypatch.setenv("BOOKBAG__LLM__MAX_OUTPUT_TOKENS", "512")
    assert get_config().llm.max_output_tokens == 512
    counters = metrics.snapshot()["counters"]
    assert counters["env_override_total{path=llm.max_output_tokens}"] == 1


def test_tail_window_out_of_range(tmp_path, monkeypatch):
    _use_config(tmp_path, "schema_version: 1\n")
    monkeypatch.setenv("BOOKBAG__THINKING__TAIL_WINDOW_CHARS", "200")
    with pytest.raises(ConfigError):
        get_config()
    counters = metrics.snapshot()["counters"]
    key = (
        "config_validation_errors_total{code=config-out-of-range,"
        "path=thinking.tail_window_chars}"
    )
    assert counters[key] == 1


def test_max_output_tokens_zero(tmp_path):
    _use_config(tmp_path, "llm:\n  max_output_tokens: 0\n")
    with pytest.raises(ConfigError):
        get_config()


def test_unknown_keys_rejected(tmp_path):
    _use_config(tmp_path, "thinking:\n  bogus: 1\n")
    with pytest.raises(ConfigError):
        get_config()
    counters = metrics.snapshot()["counters"]
    assert counters[
        "config_validation_errors_total{code=config-invalid,path=thinking}"
    ] == 1


def test_unknown_section_rejected(tmp_path):
    _use_config(tmp_path, "schema_version: 1\nrag: {}\n")
    with pytest.raises(ConfigError):
        get_config()


def test_bad_logging_format(tmp_path):
    _use_config(tmp_path, "logging:\n  format: xml\n")
    with pytest.raises(ConfigError):
        get_config()
