from typing import Any

import toml
from pydantic import (
    BaseModel,
    Field,
    ValidationError,
)

from revbuild.models import FailurePolicy
from revbuild.utils.lock import DEFAULT_LOCK_FILE_NAME

_config: "Config | None" = None


class ConfigNotFound(Exception):
    pass


class InvalidConfig(Exception):
    pass


class BuildSettings(BaseModel, extra="forbid"):
    dotnet: str = "dotnet"
    configuration: str = "Release"
    package_version: str = "0.0.1"
    descriptor_name: str = "Directory.Build.targets"
    thread_pool_size: int = Field(default=10, ge=1)
    failure_policy: FailurePolicy = FailurePolicy.FAIL_FAST
    skip_existing: bool = True
    lock_file_name: str = DEFAULT_LOCK_FILE_NAME


class Config(BaseModel, extra="forbid"):
    build: BuildSettings = Field(default_factory=BuildSettings)


def get_config() -> "Config":
    return _config if _config is not None else Config()


def init(config: dict[str, Any] | None) -> "Config":
    global _config  # noqa: PLW0603
    try:
        _config = Config.model_validate(config or {})
    except ValidationError as e:
        raise InvalidConfig(f"invalid configuration: {e}") from None
    return _config


def init_from_toml(configfile: str | None) -> "Config":
    if not configfile:
        return init(None)
    try:
        return init(toml.load(configfile))
    except FileNotFoundError:
        raise ConfigNotFound(f"config file not found: {configfile}") from None
    except toml.TomlDecodeError as e:
        raise InvalidConfig(
            f"config file {configfile} is not valid toml: {e}"
        ) from None


def override(**values: Any) -> "Config":
    """Apply non-None command line overrides on top of the [build] table."""
    config = get_config()
    updates = {k: v for k, v in values.items() if v is not None}
    if not updates:
        return config
    merged = config.build.model_dump()
    merged.update(updates)
    return init({"build": merged})
