"""Tests for server configuration.

These tests cover:
1. Default values
2. Environment variable loading
3. Validation of bounded settings
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from usufruit.config import ServerConfig, get_config, reset_config


class TestServerConfig:
    """Test server configuration behavior."""

    def test_default_configuration(self, tmp_path: Path):
        config = ServerConfig(database_path=tmp_path / "usufruit.db")

        assert config.server_name == "usufruit"
        assert config.transport == "stdio"
        assert config.enable_semantic_search is False
        assert config.semantic_threshold == 0.4
        assert config.semantic_cache_ttl == 300
        assert config.max_page_size == 100
        assert config.get_database_url() == f"sqlite:///{tmp_path / 'usufruit.db'}"

    def test_database_url_overrides_path(self, tmp_path: Path):
        config = ServerConfig(
            database_path=tmp_path / "ignored.db",
            database_url="postgresql://lib:pw@localhost/usufruit",
        )
        assert config.get_database_url() == "postgresql://lib:pw@localhost/usufruit"

    def test_environment_variable_loading(self, tmp_path: Path):
        env_vars = {
            "USUFRUIT_SERVER_NAME": "neighbourhood-shed",
            "USUFRUIT_DATABASE_PATH": str(tmp_path / "env.db"),
            "USUFRUIT_ENABLE_SEMANTIC_SEARCH": "true",
            "USUFRUIT_SEMANTIC_THRESHOLD": "0.55",
            "USUFRUIT_EMBEDDING_TIMEOUT": "3.5",
        }

        with patch.dict(os.environ, env_vars):
            config = ServerConfig()

        assert config.server_name == "neighbourhood-shed"
        assert config.database_path == (tmp_path / "env.db").absolute()
        assert config.enable_semantic_search is True
        assert config.semantic_threshold == 0.55
        assert config.embedding_timeout == 3.5

    def test_database_directory_is_created(self, tmp_path: Path):
        db_path = tmp_path / "nested" / "dir" / "usufruit.db"
        ServerConfig(database_path=db_path)
        assert db_path.parent.is_dir()

    @pytest.mark.parametrize(
        "field,value",
        [
            ("semantic_threshold", 1.5),
            ("semantic_threshold", -0.1),
            ("max_page_size", 101),
            ("max_page_size", 10),
            ("default_page_size", 0),
            ("embedding_timeout", 0),
            ("transport", "carrier-pigeon"),
            ("server_name", "Bad Name!"),
        ],
    )
    def test_invalid_values_rejected(self, tmp_path: Path, field: str, value):
        with pytest.raises(ValidationError):
            ServerConfig(database_path=tmp_path / "usufruit.db", **{field: value})

    def test_get_config_is_cached_until_reset(self, tmp_path: Path):
        with patch.dict(os.environ, {"USUFRUIT_DATABASE_PATH": str(tmp_path / "a.db")}):
            first = get_config()
            assert get_config() is first
            reset_config()
            assert get_config() is not first
