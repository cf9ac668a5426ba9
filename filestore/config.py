"""Configuration management using TOML.

A config file holds an optional ``[transfer]`` table and one ``[[stores]]``
table per named store. Table keys map one to one onto the dataclass fields
below; unknown keys are rejected so typos do not go unnoticed.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Literal

try:
    import tomllib
except ImportError:
    import tomli as tomllib

DEFAULT_CONFIG_PATH = "filestore.toml"

# Fields each store type cannot do without
REQUIRED_FIELDS = {
    "s3": ("endpoint", "access_key", "secret_key", "bucket"),
    "local": ("base_path",),
}


def _from_table(cls, table: dict, where: str):
    """Build a config dataclass from a TOML table."""
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(table) - known)
    if unknown:
        raise ValueError(f"Unknown field(s) in {where}: {', '.join(unknown)}")
    try:
        return cls(**table)
    except TypeError as e:
        raise ValueError(f"Incomplete {where}: {e}") from e


@dataclass
class StoreConfig:
    """Configuration for a single named store."""

    name: str
    type: Literal["s3", "local"]
    enabled: bool = True

    # S3-specific fields
    endpoint: str | None = None
    access_key: str | None = None
    secret_key: str | None = None
    bucket: str | None = None
    region: str | None = None

    # Local-specific fields
    base_path: str | None = None

    def validate(self) -> None:
        """Check that the fields the store type needs are set."""
        if self.type not in REQUIRED_FIELDS:
            raise ValueError(f"Store '{self.name}' has unknown type: {self.type!r}")
        missing = [name for name in REQUIRED_FIELDS[self.type] if not getattr(self, name)]
        if missing:
            raise ValueError(
                f"{self.type} store '{self.name}' missing required field(s): {', '.join(missing)}"
            )

    @property
    def location(self) -> str:
        if self.type == "s3":
            return f"{self.endpoint}/{self.bucket}"
        return self.base_path or "-"


@dataclass
class TransferConfig:
    """Defaults for copy and sync runs."""

    workers: int = 1
    max_retries: int = 0
    timeout_seconds: int = 300


@dataclass
class Config:
    """Complete configuration."""

    transfer: TransferConfig = field(default_factory=TransferConfig)
    stores: list[StoreConfig] = field(default_factory=list)

    @classmethod
    def from_file(cls, config_path: str | Path = DEFAULT_CONFIG_PATH) -> "Config":
        """Load configuration from TOML file."""
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {config_path}\n"
                f"Create it with a [[stores]] entry for each store you want to use."
            )

        with open(config_path, "rb") as f:
            return cls.from_dict(tomllib.load(f))

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        transfer = _from_table(TransferConfig, data.get("transfer", {}), "[transfer]")
        stores = [
            _from_table(StoreConfig, table, f"[[stores]] entry #{index}")
            for index, table in enumerate(data.get("stores", []), start=1)
        ]
        return cls(transfer=transfer, stores=stores)

    def enabled_stores(self) -> list[StoreConfig]:
        return [s for s in self.stores if s.enabled]

    def get_store(self, name: str) -> StoreConfig | None:
        return next((s for s in self.stores if s.name == name), None)

    def validate(self) -> None:
        """Validate transfer settings, store names and all enabled stores."""
        if self.transfer.workers < 1:
            raise ValueError("transfer.workers must be at least 1")
        names = [s.name for s in self.stores]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate store name(s): {', '.join(duplicates)}")
        for store in self.enabled_stores():
            store.validate()
