"""
Register a task definition and, for services, point the service at it.

A successful UpdateService only means ECS accepted the new desired state;
task replacement happens asynchronously and is confirmed by the poller.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from botocore.exceptions import BotoCoreError, ClientError

from ecs_deploy.client import EcsControlPlane
from ecs_deploy.errors import RegistrationError, ServiceUpdateError


@dataclass(frozen=True)
class ServiceHandle:
    cluster: str
    service_name: str
    current_task_definition: Optional[str] = None


@dataclass(frozen=True)
class DeploymentConfig:
    minimum_healthy_percent: Optional[int] = None
    maximum_percent: Optional[int] = None

    def to_request(self) -> Dict[str, int]:
        """Only the bounds that were set; ECS keeps its own value for the rest."""
        request = {}
        if self.minimum_healthy_percent is not None:
            request["minimumHealthyPercent"] = self.minimum_healthy_percent
        if self.maximum_percent is not None:
            request["maximumPercent"] = self.maximum_percent
        return request


@dataclass(frozen=True)
class TaskDefinitionOnly:
    pass


@dataclass(frozen=True)
class ServiceTarget:
    handle: ServiceHandle
    deployment_config: DeploymentConfig = field(default_factory=DeploymentConfig)
    force_new_deployment: bool = False


Target = Union[TaskDefinitionOnly, ServiceTarget]


@dataclass(frozen=True)
class Registered:
    task_definition_id: str


@dataclass(frozen=True)
class UpdateIssued:
    task_definition_id: str


DeployOutcome = Union[Registered, UpdateIssued]


def register(control_plane: EcsControlPlane, document: Dict) -> str:
    try:
        return control_plane.register_task_definition(document)
    except (ClientError, BotoCoreError) as exc:
        raise RegistrationError(
            f"ECS rejected the new revision of '{document.get('family')}'",
            fix_hint="Check the container definitions and networkMode of the source revision.",
        ) from exc


def update_service(
    control_plane: EcsControlPlane,
    target: ServiceTarget,
    task_definition_id: str,
) -> Dict:
    handle = target.handle
    try:
        return control_plane.update_service(
            handle.cluster,
            handle.service_name,
            task_definition_id,
            deployment_configuration=target.deployment_config.to_request(),
            force_new_deployment=target.force_new_deployment,
        )
    except (ClientError, BotoCoreError) as exc:
        raise ServiceUpdateError(
            f"Could not update service '{handle.service_name}' "
            f"in cluster '{handle.cluster}'",
            fix_hint=(
                "Verify the cluster and service names, and that --min/--max "
                "are valid percentages for this service."
            ),
        ) from exc


def deploy(control_plane: EcsControlPlane, mutated_def: Dict, target: Target) -> DeployOutcome:
    new_id = register(control_plane, mutated_def)
    if isinstance(target, TaskDefinitionOnly):
        return Registered(new_id)
    update_service(control_plane, target, new_id)
    return UpdateIssued(new_id)


def prune_task_definitions(control_plane: EcsControlPlane, family: str, keep: int) -> List[str]:
    """
    Deregister the oldest ACTIVE revisions of ``family`` beyond ``keep``.

    Returns the deregistered ARNs. ``keep <= 0`` disables pruning.
    """
    if keep <= 0:
        return []
    try:
        active = control_plane.list_task_definitions(family)
        surplus = active[:max(len(active) - keep, 0)]
        for arn in surplus:
            control_plane.deregister_task_definition(arn)
    except (ClientError, BotoCoreError) as exc:
        raise RegistrationError(
            f"Could not deregister old revisions of '{family}'"
        ) from exc
    return surplus
