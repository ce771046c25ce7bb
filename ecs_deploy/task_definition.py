"""
Fetch a task definition and rewrite it for re-registration.

DescribeTaskDefinition returns orchestrator metadata (revision, ARN, status,
registeredAt, ...) that RegisterTaskDefinition rejects, so only the fields
below survive. ``networkMode`` is carried only when the source declares it;
sending it empty is not the same as omitting it.
"""

import copy
from typing import Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ecs_deploy.client import EcsControlPlane
from ecs_deploy.errors import FetchError

REGISTER_FIELDS = ("family", "volumes", "containerDefinitions")
CONDITIONAL_FIELDS = ("networkMode",)


def image_matches(image: str, image_without_tag: str) -> bool:
    """True for ``prefix``, ``prefix:<any tag>`` and ``prefix@<digest>``."""
    if image == image_without_tag:
        return True
    return image.startswith(image_without_tag + ":") or image.startswith(image_without_tag + "@")


def mutate(current_def: Dict, old_image_prefix: str, new_image: str) -> Dict:
    """Return a registrable copy of ``current_def`` with matching images replaced."""
    containers = []
    for container in current_def.get("containerDefinitions", []):
        container = copy.deepcopy(container)
        if image_matches(container.get("image", ""), old_image_prefix):
            container["image"] = new_image
        containers.append(container)

    new_def = {
        "family":               current_def["family"],
        "volumes":              copy.deepcopy(current_def.get("volumes", [])),
        "containerDefinitions": containers,
    }
    for field in CONDITIONAL_FIELDS:
        if field in current_def:
            new_def[field] = current_def[field]
    return new_def


def count_replaced(current_def: Dict, old_image_prefix: str) -> int:
    return sum(
        1 for c in current_def.get("containerDefinitions", [])
        if image_matches(c.get("image", ""), old_image_prefix)
    )


def fetch_task_definition(control_plane: EcsControlPlane, identifier: str) -> Dict:
    try:
        return control_plane.describe_task_definition(identifier)
    except (ClientError, BotoCoreError) as exc:
        raise FetchError(
            f"Task definition '{identifier}' could not be resolved",
            fix_hint=f"aws ecs describe-task-definition --task-definition {identifier}",
        ) from exc


def resolve_task_definition_id(
    control_plane: EcsControlPlane,
    cluster: Optional[str] = None,
    service_name: Optional[str] = None,
    task_definition: Optional[str] = None,
    use_latest: bool = False,
) -> str:
    """
    Pick the identifier of the definition to base the new revision on.

    For a service this is the revision the service currently runs, or with
    ``use_latest`` the newest ACTIVE revision of that family. For a bare
    task definition it is the given name (family, family:revision or ARN).
    """
    if not service_name:
        if not task_definition:
            raise FetchError("Neither a service nor a task definition was given")
        return task_definition

    try:
        service = control_plane.describe_service(cluster, service_name)
    except (ClientError, BotoCoreError) as exc:
        raise FetchError(
            f"Could not describe service '{service_name}' in cluster '{cluster}'",
            fix_hint=f"aws ecs describe-services --cluster {cluster} --services {service_name}",
        ) from exc

    current = service["taskDefinition"]
    if not use_latest:
        return current

    # "arn:aws:ecs:region:acct:task-definition/family:7" -> "family"
    family = current.rsplit("/", 1)[-1].rsplit(":", 1)[0]
    return family
