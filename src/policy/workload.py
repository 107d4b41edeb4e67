from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from src.common.image_ref import ImageReference

CONTAINER_FIELDS: Tuple[str, ...] = ("containers", "initContainers", "ephemeralContainers")

WORKLOAD_KINDS = frozenset(
    {
        "Pod",
        "PodTemplate",
        "ReplicationController",
        "ReplicaSet",
        "Deployment",
        "StatefulSet",
        "DaemonSet",
        "Job",
        "CronJob",
    }
)


@dataclass(frozen=True)
class WorkloadDescriptor:
    """Image references of one pod-like object, in container order."""

    images: Tuple[ImageReference, ...] = ()

    def __iter__(self) -> Iterator[ImageReference]:
        return iter(self.images)

    def __len__(self) -> int:
        return len(self.images)

    @classmethod
    def from_images(cls, values: Iterable[Any]) -> "WorkloadDescriptor":
        return cls(images=tuple(ImageReference.from_value(value) for value in values))

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> "WorkloadDescriptor":
        """Collect images from containers, init and ephemeral containers.

        Follows ``spec.template`` and CronJob ``jobTemplate`` nesting. Entries
        that are not container mappings or carry no string image are kept as
        malformed references so they fail the policy.
        """

        images: List[ImageReference] = []

        def nested(value: Any) -> Optional[Dict[str, Any]]:
            # Absent means nothing to check; any other non-mapping fails closed.
            if value is None:
                return None
            if not isinstance(value, dict):
                images.append(ImageReference.from_value(None))
                return None
            return value

        def visit(spec: Any) -> None:
            spec = nested(spec)
            if spec is None:
                return
            for field in CONTAINER_FIELDS:
                if field not in spec or spec[field] is None:
                    continue
                images.extend(_container_images(spec[field]))
            template = nested(spec.get("template"))
            if template is not None:
                visit(template.get("spec"))
            job_template = nested(spec.get("jobTemplate"))
            if job_template is not None:
                job_spec = nested(job_template.get("spec"))
                if job_spec is not None:
                    template_obj = nested(job_spec.get("template"))
                    if template_obj is not None:
                        visit(template_obj.get("spec"))
                direct_template = nested(job_template.get("template"))
                if direct_template is not None:
                    visit(direct_template.get("spec"))

        if isinstance(obj, dict):
            visit(obj.get("spec"))
            # PodTemplate carries its template at the top level.
            if obj.get("kind") == "PodTemplate":
                template = nested(obj.get("template"))
                if template is not None:
                    visit(template.get("spec"))
        return cls(images=tuple(images))


def _container_images(raw_containers: Any) -> List[ImageReference]:
    if not isinstance(raw_containers, list):
        return [ImageReference.from_value(None)]
    refs: List[ImageReference] = []
    for container in raw_containers:
        if isinstance(container, dict):
            refs.append(ImageReference.from_value(container.get("image")))
        else:
            refs.append(ImageReference.from_value(None))
    return refs


def is_workload(obj: Any) -> bool:
    return isinstance(obj, dict) and obj.get("kind") in WORKLOAD_KINDS


__all__ = ["CONTAINER_FIELDS", "WORKLOAD_KINDS", "WorkloadDescriptor", "is_workload"]
