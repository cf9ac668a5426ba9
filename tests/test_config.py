"""
Tests for TOML configuration loading.
"""

import pytest

from filestore.config import Config, StoreConfig

CONFIG_TOML = """
[transfer]
workers = 4
timeout_seconds = 60

[[stores]]
name = "photos"
type = "local"
base_path = "/srv/photos"

[[stores]]
name = "offsite"
type = "s3"
endpoint = "https://s3.example.com"
access_key = "AKID"
secret_key = "SECRET"
bucket = "photos-backup"
region = "eu-central-1"

[[stores]]
name = "old"
type = "local"
base_path = "/srv/old"
enabled = false
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "filestore.toml"
    path.write_text(CONFIG_TOML)
    return path


def test_load_from_file(config_file):
    config = Config.from_file(config_file)

    assert config.transfer.workers == 4
    assert config.transfer.timeout_seconds == 60
    assert config.transfer.max_retries == 0
    assert [s.name for s in config.stores] == ["photos", "offsite", "old"]

    offsite = config.get_store("offsite")
    assert offsite.type == "s3"
    assert offsite.bucket == "photos-backup"
    assert offsite.region == "eu-central-1"
    assert offsite.base_path is None


def test_enabled_stores(config_file):
    config = Config.from_file(config_file)
    assert [s.name for s in config.enabled_stores()] == ["photos", "offsite"]
    assert config.get_store("missing") is None


def test_defaults_when_sections_missing():
    config = Config.from_dict({})
    assert config.transfer.workers == 1
    assert config.transfer.timeout_seconds == 300
    assert config.stores == []


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError, match="nope.toml"):
        Config.from_file(tmp_path / "nope.toml")


def test_validate_accepts_complete_config(config_file):
    Config.from_file(config_file).validate()


@pytest.mark.parametrize("store, message", [
    (StoreConfig(name="s", type="s3", endpoint="http://x", bucket="b"), "access_key"),
    (StoreConfig(name="l", type="local"), "base_path"),
    (StoreConfig(name="f", type="ftp"), "unknown type"),
])
def test_validate_rejects_incomplete_store(store, message):
    with pytest.raises(ValueError, match=message):
        store.validate()


def test_disabled_stores_are_not_validated():
    config = Config.from_dict({"stores": [{"name": "broken", "type": "local", "enabled": False}]})
    config.validate()


def test_workers_must_be_positive():
    config = Config.from_dict({"transfer": {"workers": 0}})
    with pytest.raises(ValueError, match="workers"):
        config.validate()


def test_unknown_field_is_rejected():
    data = {"stores": [{"name": "photos", "type": "local", "base_path": "/srv", "basepath": "/typo"}]}
    with pytest.raises(ValueError, match="basepath"):
        Config.from_dict(data)


def test_unknown_transfer_field_is_rejected():
    with pytest.raises(ValueError, match=r"\[transfer\].*worker"):
        Config.from_dict({"transfer": {"worker": 4}})


def test_store_without_name_is_rejected():
    with pytest.raises(ValueError, match="entry #1"):
        Config.from_dict({"stores": [{"type": "local", "base_path": "/srv"}]})


def test_missing_fields_are_all_named():
    store = StoreConfig(name="s", type="s3", endpoint="http://x")
    with pytest.raises(ValueError, match="access_key, secret_key, bucket"):
        store.validate()


def test_duplicate_store_names_are_rejected():
    config = Config.from_dict({"stores": [
        {"name": "a", "type": "local", "base_path": "/one"},
        {"name": "a", "type": "local", "base_path": "/two"},
    ]})
    with pytest.raises(ValueError, match="Duplicate"):
        config.validate()


def test_store_location(config_file):
    config = Config.from_file(config_file)
    assert config.get_store("photos").location == "/srv/photos"
    assert config.get_store("offsite").location == "https://s3.example.com/photos-backup"
