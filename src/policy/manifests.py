"""Render the cluster-side ValidatingAdmissionPolicy for a rule set.

The documents mirror what an operator would paste into a cluster: an
optional enforcement Namespace, the policy carrying a CEL expression
equivalent to :func:`src.policy.evaluator.evaluate`, and its binding.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import yaml

from .evaluator import MESSAGE_TEMPLATE, describe_rules
from .rules import RuleSet
from .workload import CONTAINER_FIELDS

DEFAULT_POLICY_NAME = "approved-images-only"
ENFORCEMENT_LABEL = "image-policy.k8s.io/enforce"
_VALID_ACTIONS = {"Deny", "Warn", "Audit"}


def cel_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def build_cel_expression(rules: RuleSet) -> str:
    if len(rules):
        predicate = " || ".join(f"c.image.startsWith({cel_string(prefix)})" for prefix in rules.prefixes)
    else:
        predicate = "false"
    clauses = []
    for field in CONTAINER_FIELDS:
        quantifier = f"object.spec.{field}.all(c, {predicate})"
        if field == "containers":
            clauses.append(quantifier)
        else:
            clauses.append(f"(!has(object.spec.{field}) || {quantifier})")
    return " && ".join(clauses)


def render_policy_manifests(
    rules: RuleSet,
    policy_name: str = DEFAULT_POLICY_NAME,
    namespace: Optional[str] = None,
    validation_actions: Sequence[str] = ("Deny",),
) -> List[Dict[str, Any]]:
    actions = list(validation_actions)
    invalid = [action for action in actions if action not in _VALID_ACTIONS]
    if invalid or not actions:
        raise ValueError(f"Unsupported validation actions: {invalid or actions}")
    if "Deny" in actions and "Warn" in actions:
        raise ValueError("Deny and Warn validation actions cannot be combined")

    documents: List[Dict[str, Any]] = []
    if namespace:
        documents.append(
            {
                "apiVersion": "v1",
                "kind": "Namespace",
                "metadata": {"name": namespace, "labels": {ENFORCEMENT_LABEL: "true"}},
            }
        )

    documents.append(
        {
            "apiVersion": "admissionregistration.k8s.io/v1",
            "kind": "ValidatingAdmissionPolicy",
            "metadata": {"name": policy_name},
            "spec": {
                "failurePolicy": "Fail",
                "matchConstraints": {
                    "resourceRules": [
                        {
                            "apiGroups": [""],
                            "apiVersions": ["v1"],
                            "operations": ["CREATE", "UPDATE"],
                            "resources": ["pods", "pods/ephemeralcontainers"],
                        }
                    ]
                },
                "validations": [
                    {
                        "expression": build_cel_expression(rules),
                        "message": MESSAGE_TEMPLATE.format(description=describe_rules(rules)),
                    }
                ],
            },
        }
    )

    binding_spec: Dict[str, Any] = {
        "policyName": policy_name,
        "validationActions": actions,
    }
    if namespace:
        binding_spec["matchResources"] = {
            "namespaceSelector": {"matchLabels": {ENFORCEMENT_LABEL: "true"}}
        }
    documents.append(
        {
            "apiVersion": "admissionregistration.k8s.io/v1",
            "kind": "ValidatingAdmissionPolicyBinding",
            "metadata": {"name": f"{policy_name}-binding"},
            "spec": binding_spec,
        }
    )
    return documents


def dump_manifests(documents: Sequence[Dict[str, Any]]) -> str:
    return yaml.safe_dump_all(list(documents), sort_keys=False)


__all__ = [
    "DEFAULT_POLICY_NAME",
    "ENFORCEMENT_LABEL",
    "build_cel_expression",
    "cel_string",
    "dump_manifests",
    "render_policy_manifests",
]
