"""
Thin wrapper around the boto3 ECS client.

Each method is one request/response pair against the control plane and
returns plain dicts/strings. botocore errors propagate untouched; the
pipeline stages translate it into the matching DeployError.
"""

from typing import Dict, Iterable, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import NoCredentialsError, NoRegionError, ProfileNotFound

from ecs_deploy import __version__
from ecs_deploy.config import DeployConfig
from ecs_deploy.errors import DependencyMissing, FetchError

# DescribeTasks accepts at most 100 task ARNs per call
DESCRIBE_TASKS_BATCH = 100

USER_AGENT_EXTRA = f"ecs-deploy/{__version__}"


def build_session(config: DeployConfig) -> boto3.session.Session:
    """Create a boto3 session from explicit keys, a profile or the default chain."""
    kwargs = {}
    if config.region:
        kwargs["region_name"] = config.region
    if not config.use_instance_profile:
        if config.profile:
            kwargs["profile_name"] = config.profile
        elif config.aws_access_key and config.aws_secret_key:
            kwargs["aws_access_key_id"]     = config.aws_access_key
            kwargs["aws_secret_access_key"] = config.aws_secret_key
    try:
        return boto3.session.Session(**kwargs)
    except ProfileNotFound as exc:
        raise DependencyMissing(f"AWS profile not found: {config.profile}") from exc


class EcsControlPlane:
    """The ECS operations the deploy pipeline consumes."""

    def __init__(self, ecs_client):
        self.client = ecs_client

    @classmethod
    def from_config(cls, config: DeployConfig) -> "EcsControlPlane":
        session = build_session(config)
        try:
            if session.get_credentials() is None:
                raise DependencyMissing("No AWS credentials could be resolved.")
            client = session.client(
                "ecs",
                endpoint_url=config.endpoint_url,
                config=Config(user_agent_extra=USER_AGENT_EXTRA),
            )
        except NoRegionError as exc:
            raise DependencyMissing("No AWS region configured.") from exc
        except NoCredentialsError as exc:
            raise DependencyMissing("No AWS credentials could be resolved.") from exc
        except ProfileNotFound as exc:
            raise DependencyMissing(f"AWS profile not found: {config.profile}") from exc
        return cls(client)

    # ── Services ────────────────────────────────────────────────────────────

    def describe_service(self, cluster: str, service_name: str) -> Dict:
        response = self.client.describe_services(cluster=cluster, services=[service_name])
        services = response.get("services", [])
        if not services:
            failures = response.get("failures", [])
            reason = failures[0].get("reason", "MISSING") if failures else "MISSING"
            raise FetchError(
                f"Service '{service_name}' not found in cluster '{cluster}' ({reason})",
                fix_hint=f"aws ecs list-services --cluster {cluster}",
            )
        return services[0]

    def update_service(
        self,
        cluster: str,
        service_name: str,
        task_definition_id: str,
        deployment_configuration: Optional[Dict] = None,
        force_new_deployment: bool = False,
    ) -> Dict:
        kwargs = {
            "cluster":        cluster,
            "service":        service_name,
            "taskDefinition": task_definition_id,
        }
        if deployment_configuration:
            kwargs["deploymentConfiguration"] = deployment_configuration
        if force_new_deployment:
            kwargs["forceNewDeployment"] = True
        return self.client.update_service(**kwargs)["service"]

    # ── Task definitions ────────────────────────────────────────────────────

    def describe_task_definition(self, identifier: str) -> Dict:
        return self.client.describe_task_definition(taskDefinition=identifier)["taskDefinition"]

    def register_task_definition(self, document: Dict) -> str:
        response = self.client.register_task_definition(**document)
        return response["taskDefinition"]["taskDefinitionArn"]

    def list_task_definitions(self, family: str) -> List[str]:
        """Active revisions of ``family``, oldest first."""
        paginator = self.client.get_paginator("list_task_definitions")
        arns: List[str] = []
        for page in paginator.paginate(familyPrefix=family, status="ACTIVE", sort="ASC"):
            arns.extend(page.get("taskDefinitionArns", []))
        return arns

    def deregister_task_definition(self, identifier: str) -> Dict:
        return self.client.deregister_task_definition(taskDefinition=identifier)["taskDefinition"]

    # ── Tasks ───────────────────────────────────────────────────────────────

    def list_running_tasks(self, cluster: str, service_name: str) -> List[str]:
        paginator = self.client.get_paginator("list_tasks")
        arns: List[str] = []
        for page in paginator.paginate(
            cluster=cluster, serviceName=service_name, desiredStatus="RUNNING"
        ):
            arns.extend(page.get("taskArns", []))
        return arns

    def describe_tasks(self, cluster: str, task_ids: Iterable[str]) -> List[Dict]:
        task_ids = list(task_ids)
        tasks: List[Dict] = []
        for i in range(0, len(task_ids), DESCRIBE_TASKS_BATCH):
            batch = task_ids[i:i + DESCRIBE_TASKS_BATCH]
            response = self.client.describe_tasks(cluster=cluster, tasks=batch)
            tasks.extend(response.get("tasks", []))
        return tasks
