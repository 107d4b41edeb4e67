"""Approved-image admission policy for Kubernetes workloads."""

from .evaluator import Decision, ImagePolicyEvaluator, evaluate
from .rules import AllowRule, PolicyConfigError, RuleSet, load_rule_set
from .workload import WorkloadDescriptor

__all__ = [
    "AllowRule",
    "Decision",
    "ImagePolicyEvaluator",
    "PolicyConfigError",
    "RuleSet",
    "WorkloadDescriptor",
    "evaluate",
    "load_rule_set",
]
