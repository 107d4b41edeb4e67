from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import typer
import yaml

from .evaluator import ImagePolicyEvaluator
from .manifests import DEFAULT_POLICY_NAME, dump_manifests, render_policy_manifests
from .rules import PolicyConfigError, RuleSet, load_rule_set
from .workload import is_workload

logger = logging.getLogger(__name__)

app = typer.Typer(help="Evaluate Kubernetes workloads against the approved-image policy.")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )


def _resolve_rules(rules_path: Optional[Path], allow: Optional[List[str]]) -> RuleSet:
    if rules_path is not None and allow:
        raise typer.BadParameter("Use either --rules or --allow, not both.")
    try:
        if rules_path is not None:
            return load_rule_set(rules_path)
        if allow:
            return RuleSet.from_prefixes(allow)
        return RuleSet.from_env()
    except (PolicyConfigError, ValueError) as exc:
        raise typer.BadParameter(str(exc)) from exc


def _collect_from_inputs(paths: Iterable[Path]) -> List[Path]:
    files: List[Path] = []
    seen = set()
    for path in paths:
        resolved = path.expanduser().resolve()
        if resolved.is_dir():
            candidates = sorted(list(resolved.glob("*.yaml")) + list(resolved.glob("*.yml")))
        elif resolved.exists():
            candidates = [resolved]
        else:
            raise typer.BadParameter(f"Manifest path not found: {path}")
        for candidate in candidates:
            if candidate in seen:
                continue
            seen.add(candidate)
            files.append(candidate)
    return files


def _load_documents(manifest: Path) -> List[Any]:
    try:
        return list(yaml.safe_load_all(manifest.read_text(encoding="utf-8")))
    except (OSError, yaml.YAMLError) as exc:
        raise typer.BadParameter(f"Failed to parse manifest {manifest}: {exc}") from exc


def _evaluate_manifest(manifest: Path, evaluator: ImagePolicyEvaluator) -> List[Dict[str, Any]]:
    records: List[Dict[str, Any]] = []
    for index, document in enumerate(_load_documents(manifest)):
        if not is_workload(document):
            kind = document.get("kind") if isinstance(document, dict) else None
            logger.debug("Skipping %s document %d of kind %s", manifest, index, kind)
            continue
        decision = evaluator.evaluate_object(document)
        metadata = document.get("metadata") if isinstance(document.get("metadata"), dict) else {}
        record = {
            "manifest_path": str(manifest),
            "document": index,
            "kind": document.get("kind"),
            "name": metadata.get("name"),
        }
        record.update(decision.to_dict())
        if decision.allowed:
            logger.debug("%s/%s allowed", record["kind"], record["name"])
        else:
            logger.info(
                "%s/%s denied: %s",
                record["kind"],
                record["name"],
                ", ".join(record["offending_images"]),
            )
        records.append(record)
    return records


@app.command()
def evaluate(
    inputs: List[Path] = typer.Option(
        ...,
        "--in",
        "-i",
        help="Path(s) to manifest files or directories.",
    ),
    rules_path: Optional[Path] = typer.Option(
        None,
        "--rules",
        "-r",
        help="YAML/JSON policy config with allowedPrefixes (defaults to environment configuration).",
    ),
    allow: Optional[List[str]] = typer.Option(
        None,
        "--allow",
        "-a",
        help="Approved image prefix; repeat for several.",
    ),
    out: Optional[Path] = typer.Option(
        None,
        "--out",
        "-o",
        help="Where to write the decisions JSON file.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    _configure_logging(verbose)
    rules = _resolve_rules(rules_path, allow)
    manifests = _collect_from_inputs(inputs)
    if not manifests:
        raise typer.BadParameter("No manifest files found to evaluate.")

    evaluator = ImagePolicyEvaluator(rules)
    results: List[Dict[str, Any]] = []
    for manifest in manifests:
        results.extend(_evaluate_manifest(manifest, evaluator))

    if out is not None:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps(results, indent=2), encoding="utf-8")

    denied = [record for record in results if not record["allowed"]]
    typer.echo(f"Evaluated {len(results)} workload(s): {len(results) - len(denied)} allowed, {len(denied)} denied")
    if denied:
        raise typer.Exit(code=1)


@app.command()
def render(
    rules_path: Optional[Path] = typer.Option(
        None,
        "--rules",
        "-r",
        help="YAML/JSON policy config with allowedPrefixes (defaults to environment configuration).",
    ),
    allow: Optional[List[str]] = typer.Option(
        None,
        "--allow",
        "-a",
        help="Approved image prefix; repeat for several.",
    ),
    namespace: Optional[str] = typer.Option(
        None,
        "--namespace",
        "-n",
        help="Create this namespace and bind the policy to it only.",
    ),
    name: str = typer.Option(DEFAULT_POLICY_NAME, "--name", help="ValidatingAdmissionPolicy name."),
    audit: bool = typer.Option(False, "--audit", help="Also record violations in the audit log."),
    out: Optional[Path] = typer.Option(
        None,
        "--out",
        "-o",
        help="Where to write the manifests (stdout when omitted).",
    ),
) -> None:
    rules = _resolve_rules(rules_path, allow)
    actions = ["Deny", "Audit"] if audit else ["Deny"]
    rendered = dump_manifests(
        render_policy_manifests(rules, policy_name=name, namespace=namespace, validation_actions=actions)
    )
    if out is None:
        typer.echo(rendered, nl=False)
        return
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(rendered, encoding="utf-8")
    typer.echo(f"Wrote policy manifests to {out.resolve()}")


if __name__ == "__main__":  # pragma: no cover
    app()
