"""Tests for saver settings loading."""

import pytest

from dynamo_checkpointer.checkpointers import DynamoDBSaver, MemoryStore
from dynamo_checkpointer.config import SaverSettings, find_pyproject, load_settings


@pytest.fixture
def project(tmp_path):
    (tmp_path / "pyproject.toml").write_text(
        '[project]\nname = "app"\n\n'
        "[tool.dynamo_checkpointer]\n"
        'checkpoints_table = "app-checkpoints"\n'
        'writes_table = "app-writes"\n'
        "ttl_seconds = 86400\n"
        "page_size = 50\n"
        'unknown_key = "ignored"\n'
    )
    nested = tmp_path / "src" / "app"
    nested.mkdir(parents=True)
    return tmp_path


class TestFindPyproject:
    def test_walks_up(self, project):
        assert find_pyproject(project / "src" / "app") == project / "pyproject.toml"


class TestLoadSettings:
    def test_defaults_without_sources(self, tmp_path):
        if find_pyproject(tmp_path) is not None:
            pytest.skip("a pyproject.toml exists above the temp directory")
        assert load_settings(tmp_path, environ={}) == SaverSettings()

    def test_reads_tool_section(self, project):
        settings = load_settings(project / "src" / "app", environ={})
        assert settings.checkpoints_table == "app-checkpoints"
        assert settings.writes_table == "app-writes"
        assert settings.ttl_seconds == 86400
        assert settings.page_size == 50
        assert settings.max_batch_size == 25

    def test_env_overrides(self, project):
        environ = {
            "DYNAMO_CHECKPOINTER_CHECKPOINTS_TABLE": "env-checkpoints",
            "DYNAMO_CHECKPOINTER_TTL": "60",
            "AWS_DYNAMODB_ENDPOINT": "http://localhost:8000",
            "AWS_REGION": "eu-west-1",
        }
        settings = load_settings(project, environ=environ)
        assert settings.checkpoints_table == "env-checkpoints"
        assert settings.writes_table == "app-writes"
        assert settings.ttl_seconds == 60
        assert settings.endpoint_url == "http://localhost:8000"
        assert settings.region_name == "eu-west-1"

    def test_empty_env_values_ignored(self, project):
        settings = load_settings(project, environ={"DYNAMO_CHECKPOINTER_WRITES_TABLE": ""})
        assert settings.writes_table == "app-writes"

    def test_invalid_ttl_rejected(self, project):
        with pytest.raises(ValueError, match="ttl_seconds"):
            load_settings(project, environ={"DYNAMO_CHECKPOINTER_TTL": "0"})


class TestSaverSettings:
    @pytest.mark.parametrize(
        "kwargs, field",
        [
            ({"ttl_seconds": -1}, "ttl_seconds"),
            ({"max_batch_size": 0}, "max_batch_size"),
            ({"max_batch_size": 26}, "max_batch_size"),
            ({"max_batch_retries": -1}, "max_batch_retries"),
            ({"page_size": 0}, "page_size"),
        ],
    )
    def test_validation(self, kwargs, field):
        with pytest.raises(ValueError, match=field):
            SaverSettings(**kwargs)

    def test_saver_from_settings(self):
        settings = SaverSettings(checkpoints_table="c", writes_table="w", ttl_seconds=10, page_size=7)
        saver = DynamoDBSaver.from_settings(settings, store=MemoryStore.for_tables("c", "w"))
        assert saver.settings == settings
