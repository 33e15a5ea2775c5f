from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import pydantic

CONFIG_PATH = ".github/ariane-config.yaml"


class Model(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(
        extra="ignore", populate_by_name=True, frozen=True
    )


class TriggerConfig(Model):
    workflows: List[str] = pydantic.Field(default_factory=list)

    @pydantic.field_validator("workflows", mode="before")
    @classmethod
    def _none_is_empty(cls, value):
        return [] if value is None else value


class WorkflowPathsRegexConfig(Model):
    paths_regex: Optional[str] = pydantic.Field(None, alias="paths-regex")
    paths_ignore_regex: Optional[str] = pydantic.Field(
        None, alias="paths-ignore-regex"
    )

    @pydantic.field_validator("paths_regex", "paths_ignore_regex")
    @classmethod
    def _empty_is_unset(cls, value: Optional[str]) -> Optional[str]:
        return value or None


class ArianeConfig(Model):
    """Per-repository rule set, read from ``.github/ariane-config.yaml``.

    ``triggers`` maps a comment regex to the workflows it starts. Patterns are
    tried in document order and the first match wins, so overlapping patterns
    should be avoided. ``workflows`` holds optional path rules per workflow
    file name. An empty ``allowed-teams`` list means everyone may trigger.
    """

    triggers: Dict[str, TriggerConfig] = pydantic.Field(default_factory=dict)
    workflows: Dict[str, WorkflowPathsRegexConfig] = pydantic.Field(
        default_factory=dict
    )
    allowed_teams: List[str] = pydantic.Field(
        default_factory=list, alias="allowed-teams"
    )

    @pydantic.model_validator(mode="before")
    @classmethod
    def _normalize_nulls(cls, data):
        if not isinstance(data, dict):
            return data
        data = {k: v for k, v in data.items() if v is not None}
        for section in ("triggers", "workflows"):
            entries = data.get(section)
            if isinstance(entries, dict):
                data[section] = {k: {} if v is None else v for k, v in entries.items()}
        return data


@dataclass(frozen=True)
class TriggerMatch:
    groups: Tuple[str, ...]
    workflows: Tuple[str, ...]

    @property
    def extra_args(self) -> Optional[str]:
        # only the first capture group is forwarded to the workflow
        if len(self.groups) > 1:
            return self.groups[1]
        return None
