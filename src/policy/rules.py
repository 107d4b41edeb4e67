"""Allow-rule model and rule set configuration loading."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.common.image_ref import ImageReference

logger = logging.getLogger(__name__)

DEFAULT_PREFIXES: Tuple[str, ...] = ("dhi.io/",)

CONFIG_PATH_ENV = "IMAGE_POLICY_CONFIG"
PREFIXES_ENV = "IMAGE_POLICY_ALLOWED_PREFIXES"
DESCRIPTION_ENV = "IMAGE_POLICY_DESCRIPTION"


class PolicyConfigError(Exception):
    """Raised when a rule set cannot be loaded from configuration."""


@dataclass(frozen=True)
class AllowRule:
    prefix: str

    def __post_init__(self) -> None:
        if not isinstance(self.prefix, str) or not self.prefix:
            raise ValueError("allow rule prefix must be a non-empty string")

    def matches(self, image: ImageReference) -> bool:
        if image.malformed:
            return False
        return image.raw.startswith(self.prefix)


@dataclass(frozen=True)
class RuleSet:
    """Ordered, immutable set of allow rules combined with logical OR."""

    rules: Tuple[AllowRule, ...] = ()
    description: Optional[str] = None

    def __iter__(self) -> Iterator[AllowRule]:
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)

    @property
    def prefixes(self) -> List[str]:
        return [rule.prefix for rule in self.rules]

    def matches(self, image: ImageReference) -> bool:
        return any(rule.matches(image) for rule in self.rules)

    @classmethod
    def from_prefixes(cls, prefixes: Iterable[str], description: Optional[str] = None) -> "RuleSet":
        rules: List[AllowRule] = []
        seen = set()
        for prefix in prefixes:
            if prefix in seen:
                continue
            seen.add(prefix)
            rules.append(AllowRule(prefix))
        return cls(rules=tuple(rules), description=description or None)

    @classmethod
    def default(cls) -> "RuleSet":
        return cls.from_prefixes(DEFAULT_PREFIXES)

    @classmethod
    def from_env(cls) -> "RuleSet":
        config_path = os.getenv(CONFIG_PATH_ENV)
        if config_path:
            return load_rule_set(Path(config_path))
        raw_prefixes = os.getenv(PREFIXES_ENV)
        description = os.getenv(DESCRIPTION_ENV)
        if raw_prefixes is None:
            rule_set = cls.default()
            return cls(rules=rule_set.rules, description=description or None)
        prefixes = [item.strip() for item in raw_prefixes.split(",") if item.strip()]
        if not prefixes:
            logger.warning("%s is set but lists no prefixes; every image will be denied", PREFIXES_ENV)
        return cls.from_prefixes(prefixes, description=description)


class PolicyConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    allowed_prefixes: List[str] = Field(
        ...,
        alias="allowedPrefixes",
        description="Image reference prefixes accepted by the policy",
    )
    description: Optional[str] = Field(
        default=None,
        description="Human readable name of the approved images, used in deny messages",
    )

    @field_validator("allowed_prefixes")
    @classmethod
    def _prefixes_not_empty(cls, value: List[str]) -> List[str]:
        for prefix in value:
            if not prefix:
                raise ValueError("allowed prefixes must be non-empty strings")
        return value

    def to_rule_set(self) -> RuleSet:
        return RuleSet.from_prefixes(self.allowed_prefixes, description=self.description)


def load_rule_set(path: Path) -> RuleSet:
    """Load a rule set from a YAML or JSON file."""

    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise PolicyConfigError(f"Failed to read policy config {path}: {exc}") from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise PolicyConfigError(f"Invalid YAML in policy config {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise PolicyConfigError(f"Policy config {path} must be a mapping")
    try:
        config = PolicyConfig.model_validate(data)
    except ValidationError as exc:
        raise PolicyConfigError(f"Invalid policy config {path}: {exc}") from exc
    rule_set = config.to_rule_set()
    logger.debug("Loaded %d allow rule(s) from %s", len(rule_set), path)
    return rule_set


__all__ = [
    "AllowRule",
    "DEFAULT_PREFIXES",
    "PolicyConfig",
    "PolicyConfigError",
    "RuleSet",
    "load_rule_set",
]
