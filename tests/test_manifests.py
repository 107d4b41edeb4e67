import unittest

import yaml

from src.policy.manifests import (
    ENFORCEMENT_LABEL,
    build_cel_expression,
    cel_string,
    dump_manifests,
    render_policy_manifests,
)
from src.policy.rules import RuleSet


class CelExpressionTests(unittest.TestCase):
    def test_single_prefix_covers_all_container_fields(self) -> None:
        expression = build_cel_expression(RuleSet.from_prefixes(["dhi.io/"]))
        self.assertEqual(
            expression,
            "object.spec.containers.all(c, c.image.startsWith('dhi.io/'))"
            " && (!has(object.spec.initContainers) || object.spec.initContainers.all(c, c.image.startsWith('dhi.io/')))"
            " && (!has(object.spec.ephemeralContainers) || object.spec.ephemeralContainers.all(c, c.image.startsWith('dhi.io/')))",
        )

    def test_multiple_prefixes_are_or_combined(self) -> None:
        expression = build_cel_expression(RuleSet.from_prefixes(["dhi.io/", "ghcr.io/acme/"]))
        self.assertIn(
            "c.image.startsWith('dhi.io/') || c.image.startsWith('ghcr.io/acme/')",
            expression,
        )

    def test_empty_rule_set_uses_false_predicate(self) -> None:
        self.assertTrue(build_cel_expression(RuleSet()).startswith("object.spec.containers.all(c, false)"))

    def test_string_literals_are_escaped(self) -> None:
        self.assertEqual(cel_string("a'b\\c"), "'a\\'b\\\\c'")


class RenderPolicyManifestsTests(unittest.TestCase):
    def test_renders_policy_and_binding(self) -> None:
        rules = RuleSet.from_prefixes(["dhi.io/"], description="Docker Hardened Images (dhi.io)")
        documents = render_policy_manifests(rules)
        self.assertEqual(
            [doc["kind"] for doc in documents],
            ["ValidatingAdmissionPolicy", "ValidatingAdmissionPolicyBinding"],
        )
        policy, binding = documents
        self.assertEqual(policy["spec"]["failurePolicy"], "Fail")
        rule = policy["spec"]["matchConstraints"]["resourceRules"][0]
        self.assertEqual(rule["operations"], ["CREATE", "UPDATE"])
        self.assertEqual(rule["resources"], ["pods", "pods/ephemeralcontainers"])
        self.assertEqual(
            policy["spec"]["validations"][0]["message"],
            "Only Docker Hardened Images (dhi.io) are allowed in this cluster",
        )
        self.assertEqual(binding["spec"]["policyName"], "approved-images-only")
        self.assertEqual(binding["spec"]["validationActions"], ["Deny"])
        self.assertNotIn("matchResources", binding["spec"])

    def test_namespace_scopes_the_binding(self) -> None:
        documents = render_policy_manifests(
            RuleSet.default(),
            policy_name="dhi-only",
            namespace="secure-apps",
            validation_actions=["Deny", "Audit"],
        )
        namespace, policy, binding = documents
        self.assertEqual(namespace["kind"], "Namespace")
        self.assertEqual(namespace["metadata"]["labels"], {ENFORCEMENT_LABEL: "true"})
        self.assertEqual(policy["metadata"]["name"], "dhi-only")
        self.assertEqual(binding["metadata"]["name"], "dhi-only-binding")
        self.assertEqual(binding["spec"]["validationActions"], ["Deny", "Audit"])
        self.assertEqual(
            binding["spec"]["matchResources"]["namespaceSelector"]["matchLabels"],
            {ENFORCEMENT_LABEL: "true"},
        )

    def test_invalid_validation_actions(self) -> None:
        for actions in ([], ["Block"], ["Deny", "Warn"]):
            with self.subTest(actions=actions):
                with self.assertRaises(ValueError):
                    render_policy_manifests(RuleSet.default(), validation_actions=actions)

    def test_dump_is_multi_document_yaml(self) -> None:
        text = dump_manifests(render_policy_manifests(RuleSet.default(), namespace="lab"))
        documents = list(yaml.safe_load_all(text))
        self.assertEqual(len(documents), 3)
        self.assertEqual(documents[1]["spec"]["validations"][0]["expression"], build_cel_expression(RuleSet.default()))


if __name__ == "__main__":
    unittest.main()
