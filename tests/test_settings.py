"""Tests for configuration loading and validation."""

import pytest

from workflow_fsm.config.settings import (
    GenerationConfig,
    LoggingConfig,
    UpliftMode,
    load_config,
)


def test_defaults():
    config = GenerationConfig()

    assert config.max_retries == 3
    assert config.uplift_mode is UpliftMode.LENIENT
    assert not config.debug_mode
    assert config.credential_aliases == {}
    assert config.validate().is_ok()


def test_from_dict():
    result = GenerationConfig.from_dict({
        "max_retries": "2",
        "uplift_mode": "STRICT",
        "debug_mode": True,
        "credential_aliases": {"AIRTABLE_API_KEY": ["AIRTABLE_TOKEN"]},
        "logging": {"level": "debug", "format": "text"},
    })

    config = result.unwrap()
    assert config.max_retries == 2
    assert config.uplift_mode is UpliftMode.STRICT
    assert config.debug_mode
    assert config.credential_aliases == {"AIRTABLE_API_KEY": ["AIRTABLE_TOKEN"]}
    assert config.logging == LoggingConfig(level="debug", format="text")


@pytest.mark.parametrize(
    "data,field",
    [
        ({"uplift_mode": "optimistic"}, "uplift_mode"),
        ({"max_retries": "many"}, "max_retries"),
        ({"max_retries": -1}, "max_retries"),
        ({"max_retries": 10}, "max_retries"),
        ({"max_retries": "4"}, "max_retries"),
        ({"credential_aliases": ["SLACK_TOKEN"]}, "credential_aliases"),
        ({"logging": {"level": "verbose"}}, "logging.level"),
        ({"logging": {"format": "xml"}}, "logging.format"),
    ],
)
def test_invalid_values(data, field):
    result = GenerationConfig.from_dict(data)

    assert result.is_err()
    assert result.unwrap_err().field == field


def test_from_yaml(tmp_path):
    path = tmp_path / "workflow_fsm.yaml"
    path.write_text(
        "max_retries: 2\n"
        "uplift_mode: strict\n"
        "credential_aliases:\n"
        "  NOTION_TOKEN: [NOTION_API_KEY]\n"
    )

    config = GenerationConfig.from_yaml(path).unwrap()

    assert config.max_retries == 2
    assert config.uplift_mode is UpliftMode.STRICT
    assert config.credential_aliases == {"NOTION_TOKEN": ["NOTION_API_KEY"]}


def test_from_yaml_missing_file(tmp_path):
    result = GenerationConfig.from_yaml(tmp_path / "absent.yaml")
    assert result.unwrap_err().field == "path"


def test_from_yaml_invalid_yaml(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("max_retries: [1, 2\n")

    assert GenerationConfig.from_yaml(path).unwrap_err().field == "yaml"


def test_from_yaml_requires_mapping(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n")

    assert GenerationConfig.from_yaml(path).unwrap_err().field == "yaml"


def test_empty_yaml_uses_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")

    assert GenerationConfig.from_yaml(path).unwrap() == GenerationConfig()


def test_load_config_without_default_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert load_config().unwrap() == GenerationConfig()


def test_load_config_picks_up_default_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "workflow_fsm.yaml").write_text("max_retries: 1\n")

    assert load_config().unwrap().max_retries == 1


def test_to_dict_round_trip():
    config = GenerationConfig(max_retries=1, uplift_mode=UpliftMode.STRICT)
    assert GenerationConfig.from_dict(config.to_dict()).unwrap() == config
