#!/usr/bin/env python3
"""
Configuration validation and YAML loading tests.
"""

import pytest

from conftest import make_settings
from core.config import (
    ConfigurationError,
    IntervalSchedule,
    ScheduleSpec,
    build_config,
    load_pipelines_config,
)


@pytest.mark.parametrize("missing", ["host", "principal", "secret"])
def test_required_settings(missing):
    settings = make_settings()
    del settings[missing]
    with pytest.raises(ConfigurationError, match=missing):
        build_config(settings)


def test_empty_secret_rejected():
    with pytest.raises(ConfigurationError):
        build_config(make_settings(secret="  "))


def test_defaults():
    settings = make_settings()
    del settings["namespace"]
    config = build_config(settings)

    assert config.namespace == "_"
    assert config.metadata_target == "@metadata"
    assert config.target is None
    assert config.codec == "json"
    assert config.request_timeout == 60
    assert config.max_retries == 0
    assert config.sinks == []


def test_null_namespace_uses_default():
    assert build_config(make_settings(namespace=None)).namespace == "_"


def test_namespace_with_slash_rejected():
    with pytest.raises(ConfigurationError):
        build_config(make_settings(namespace="a/b"))


def test_invalid_host_rejected():
    with pytest.raises(ConfigurationError):
        build_config(make_settings(host="ftp://example.com"))


def test_aliases():
    settings = make_settings(metadataTarget="_openwhisk_metadata", target="activation")
    settings["hostname"] = settings.pop("host")
    settings["username"] = settings.pop("principal")
    settings["password"] = settings.pop("secret")
    config = build_config(settings)

    assert config.host == "localhost"
    assert config.principal == "user@email.com"
    assert config.secret == "my_password"
    assert config.metadata_target == "_openwhisk_metadata"
    assert config.target == "activation"


def test_metadata_can_be_disabled():
    assert build_config(make_settings(metadata_target=None)).metadata_target is None


def test_secret_not_in_repr(config):
    assert "my_password" not in repr(config)


def test_config_is_immutable(config):
    with pytest.raises(Exception):
        config.host = "elsewhere"


def test_unknown_setting_rejected():
    with pytest.raises(ConfigurationError, match="colour"):
        build_config(make_settings(colour="blue"))


# --------------------------------------------------------------------- #
# interval / schedule

def test_schedule_only():
    config = build_config(make_settings(schedule={"every": "1m"}))
    assert config.trigger == ScheduleSpec(kind="every", value="1m")


def test_interval_only(caplog):
    settings = make_settings(interval=60)
    del settings["schedule"]
    with caplog.at_level("WARNING"):
        config = build_config(settings)

    assert config.trigger == IntervalSchedule(seconds=60)
    assert "deprecated" in caplog.text


def test_interval_and_schedule_rejected():
    with pytest.raises(ConfigurationError, match="Not both"):
        build_config(make_settings(interval=60))


def test_neither_interval_nor_schedule_rejected():
    settings = make_settings()
    del settings["schedule"]
    with pytest.raises(ConfigurationError, match="Neither"):
        build_config(settings)


@pytest.mark.parametrize("schedule", [
    {},
    {"cron": "* * * * * UTC", "every": "2s"},
    {"invalid_key": "* * * * * UTC"},
    "* * * * *",
])
def test_invalid_schedule_rejected(schedule):
    with pytest.raises(ConfigurationError, match="exactly one"):
        build_config(make_settings(schedule=schedule))


@pytest.mark.parametrize("kind", ["cron", "every", "at", "in"])
def test_each_schedule_kind_accepted(kind):
    config = build_config(make_settings(schedule={kind: "2s"}))
    assert config.trigger.kind == kind


def test_schedule_value_required():
    with pytest.raises(ConfigurationError):
        build_config(make_settings(schedule={"every": ""}))


@pytest.mark.parametrize("interval", [0, -5, "60", True])
def test_interval_must_be_positive_number(interval):
    settings = make_settings(interval=interval)
    del settings["schedule"]
    with pytest.raises(ConfigurationError):
        build_config(settings)


def test_sink_shorthand():
    config = build_config(make_settings(sinks=["stdout_sink.StdoutSink", {"class": "queue_sink.QueueSink"}]))
    assert [s.class_path for s in config.sinks] == ["stdout_sink.StdoutSink", "queue_sink.QueueSink"]


# --------------------------------------------------------------------- #
# YAML loading

PIPELINES_YAML = """
pipelines:
  ow_prod:
    host: openwhisk.example.com
    principal: ${OW_TEST_PRINCIPAL}
    secret: ${OW_TEST_SECRET}
    schedule:
      every: 30s
  ow_dev:
    host: localhost
    principal: dev
    secret: dev
    interval: 10
"""


def test_load_pipelines_config(tmp_path, monkeypatch):
    monkeypatch.setenv("OW_TEST_PRINCIPAL", "alice")
    monkeypatch.setenv("OW_TEST_SECRET", "s3cret")
    path = tmp_path / "pipelines.yml"
    path.write_text(PIPELINES_YAML)

    pipelines = load_pipelines_config(str(path))

    assert [p["name"] for p in pipelines] == ["ow_prod", "ow_dev"]
    assert pipelines[0]["principal"] == "alice"
    assert pipelines[0]["secret"] == "s3cret"

    configs = [build_config(p) for p in pipelines]
    assert configs[0].trigger == ScheduleSpec(kind="every", value="30s")
    assert configs[1].trigger == IntervalSchedule(seconds=10)


def test_load_list_form(tmp_path):
    path = tmp_path / "pipelines.yml"
    path.write_text("pipelines:\n  - name: one\n    host: localhost\n")

    assert load_pipelines_config(str(path)) == [{"name": "one", "host": "localhost"}]


def test_missing_file_yields_nothing(tmp_path):
    assert load_pipelines_config(str(tmp_path / "absent.yml")) == []


def test_missing_pipelines_key(tmp_path):
    path = tmp_path / "pipelines.yml"
    path.write_text("other: 1\n")
    assert load_pipelines_config(str(path)) == []
