import io
from typing import Optional

import aiohttp
import gidgethub
import pydantic
import yaml
from sanic.log import logger

from ariane import config as app_config
from ariane.exceptions import ConfigError, InvalidConfig
from ariane.github.api import API
from ariane.github.model import Content
from ariane.model import (
    CONFIG_PATH,
    ArianeConfig,
    TriggerConfig,
    WorkflowPathsRegexConfig,
)


def _known_keys(model) -> set:
    keys = set(model.model_fields)
    keys.update(f.alias for f in model.model_fields.values() if f.alias)
    return keys


def _warn_unknown_keys(data, source_url: Optional[str]) -> None:
    if not isinstance(data, dict):
        return
    unknown = [str(k) for k in data if k not in _known_keys(ArianeConfig)]
    for section, model in (
        ("triggers", TriggerConfig),
        ("workflows", WorkflowPathsRegexConfig),
    ):
        entries = data.get(section)
        if not isinstance(entries, dict):
            continue
        for name, entry in entries.items():
            if isinstance(entry, dict):
                unknown += [
                    f"{section}.{name}.{k}"
                    for k in entry
                    if k not in _known_keys(model)
                ]
    if unknown:
        logger.warning(
            "Ignoring unknown keys in config %s: %s",
            source_url or CONFIG_PATH,
            ", ".join(unknown),
        )


def load_config(raw: str, source_url: Optional[str] = None) -> ArianeConfig:
    try:
        data = yaml.safe_load(io.StringIO(raw))
    except yaml.YAMLError as e:
        raise InvalidConfig(str(e), raw_config=raw, source_url=source_url) from e

    _warn_unknown_keys(data, source_url)

    try:
        return ArianeConfig() if data is None else ArianeConfig.model_validate(data)
    except pydantic.ValidationError as e:
        raise InvalidConfig(str(e), raw_config=raw, source_url=source_url) from e


async def _fetch_config_file(api: API, repo_url: str, ref: str) -> Content:
    try:
        return await api.get_content(repo_url, CONFIG_PATH, ref=ref)
    except (gidgethub.GitHubException, aiohttp.ClientError) as e:
        raise ConfigError(
            f"failed downloading config file from repository {repo_url} at {ref}"
        ) from e
    except pydantic.ValidationError as e:
        # directories come back as a list, files over 1 MB without content
        raise ConfigError(f"{CONFIG_PATH} is not a readable file") from e


async def get_config_from_repo(api: API, repo_url: str, ref: str) -> ArianeConfig:
    content = await _fetch_config_file(api, repo_url, ref)

    if content.type != "file":
        raise ConfigError(f"{CONFIG_PATH} is not a file")

    try:
        decoded_content = content.decoded_content()
    except (ValueError, UnicodeDecodeError) as e:
        raise ConfigError("failed reading config file") from e

    if app_config.OVERRIDE_CONFIG is not None:
        logger.warning("Overriding repository config with %s", app_config.OVERRIDE_CONFIG)
        try:
            with open(app_config.OVERRIDE_CONFIG) as fh:
                decoded_content = fh.read()
        except OSError as e:
            raise ConfigError(
                f"failed reading override config {app_config.OVERRIDE_CONFIG}"
            ) from e

    config = load_config(decoded_content, source_url=content.html_url)
    logger.debug(
        "Loaded config from %s at %s: %d triggers, %d workflows, %d allowed teams",
        repo_url,
        ref,
        len(config.triggers),
        len(config.workflows),
        len(config.allowed_teams),
    )
    return config
