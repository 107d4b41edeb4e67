from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from src.common.image_ref import ImageReference

from .rules import AllowRule, RuleSet
from .workload import WorkloadDescriptor

MESSAGE_TEMPLATE = "Only {description} are allowed in this cluster"
FALLBACK_DESCRIPTION = "approved images"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    message: str = ""
    offending_images: Tuple[ImageReference, ...] = ()

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, message: str, offending_images: Iterable[ImageReference]) -> "Decision":
        return cls(allowed=False, message=message, offending_images=tuple(offending_images))

    def to_admission_status(self) -> Dict[str, Any]:
        """Shape expected by an admission host: allowed flag plus optional message."""
        status: Dict[str, Any] = {"allowed": self.allowed}
        if not self.allowed:
            offending = ", ".join(str(image) for image in self.offending_images)
            status["message"] = f"{self.message}: {offending}" if offending else self.message
        return status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "message": self.message,
            "offending_images": [str(image) for image in self.offending_images],
        }


def _ordered(rules: Iterable[AllowRule]) -> List[AllowRule]:
    # Unordered collections are described in prefix order so messages are stable.
    if isinstance(rules, (RuleSet, Sequence)):
        return list(rules)
    return sorted(rules, key=lambda rule: rule.prefix)


def describe_rules(rules: Iterable[AllowRule]) -> str:
    if isinstance(rules, RuleSet) and rules.description:
        return rules.description
    prefixes = [rule.prefix for rule in _ordered(rules)]
    if not prefixes:
        return FALLBACK_DESCRIPTION
    return "images from " + " or ".join(prefixes)


def evaluate(workload: WorkloadDescriptor, rules: Iterable[AllowRule]) -> Decision:
    """Allow iff every image of ``workload`` matches at least one rule.

    Every non-matching image is reported, in workload order. Malformed
    references never match. The function has no side effects.
    """

    rule_list = rules if isinstance(rules, RuleSet) else _ordered(rules)
    offending = [
        image for image in workload if not any(rule.matches(image) for rule in rule_list)
    ]
    if not offending:
        return Decision.allow()
    description = describe_rules(rule_list)
    return Decision.deny(MESSAGE_TEMPLATE.format(description=description), offending)


class ImagePolicyEvaluator:
    """Evaluates workloads against a fixed rule set."""

    def __init__(self, rules: Optional[RuleSet] = None) -> None:
        self.rules = rules if rules is not None else RuleSet.default()

    def evaluate(self, workload: WorkloadDescriptor) -> Decision:
        return evaluate(workload, self.rules)

    def evaluate_object(self, obj: Dict[str, Any]) -> Decision:
        return evaluate(WorkloadDescriptor.from_object(obj), self.rules)

    def evaluate_images(self, images: Iterable[Any]) -> Decision:
        return evaluate(WorkloadDescriptor.from_images(images), self.rules)


__all__ = [
    "Decision",
    "ImagePolicyEvaluator",
    "MESSAGE_TEMPLATE",
    "describe_rules",
    "evaluate",
]
