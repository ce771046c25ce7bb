from __future__ import annotations

from datetime import datetime, timezone

import boto3
import pytest
from botocore.exceptions import ClientError
from botocore.stub import Stubber

from ecs_deploy.client import EcsControlPlane

CLUSTER = "prod"
SERVICE = "web"
OLD_ARN = "arn:aws:ecs:us-east-1:123456789012:task-definition/web:7"
NEW_ARN = "arn:aws:ecs:us-east-1:123456789012:task-definition/web:8"


def make_task_definition(**overrides) -> dict:
    document = {
        "taskDefinitionArn": OLD_ARN,
        "family": "web",
        "revision": 7,
        "status": "ACTIVE",
        "volumes": [{"name": "data", "host": {"sourcePath": "/srv/data"}}],
        "containerDefinitions": [
            {
                "name": "app",
                "image": "silintl/app:1.0",
                "essential": True,
                "memory": 256,
            },
            {
                "name": "worker",
                "image": "silintl/app:0.9",
                "essential": False,
                "memory": 128,
            },
            {
                "name": "proxy",
                "image": "nginx:1.25",
                "essential": True,
                "memory": 64,
            },
        ],
        "requiresAttributes": [{"name": "com.amazonaws.ecs.capability.docker-remote-api.1.18"}],
        "compatibilities": ["EC2"],
        "registeredAt": datetime(2024, 1, 1, tzinfo=timezone.utc),
        "registeredBy": "arn:aws:iam::123456789012:user/ci",
    }
    document.update(overrides)
    return document


@pytest.fixture
def ecs_client():
    return boto3.client(
        "ecs",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def stubber(ecs_client):
    with Stubber(ecs_client) as stub:
        yield stub
        stub.assert_no_pending_responses()


@pytest.fixture
def control_plane(ecs_client, stubber):
    return EcsControlPlane(ecs_client)


def client_error(operation: str, code: str = "ClientException", message: str = "boom") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


class FakeControlPlane:
    """In-memory stand-in for EcsControlPlane used by poller and pipeline tests."""

    def __init__(self, definition=None, task_feed=None):
        self.definition = definition or make_task_definition()
        # One entry per tick: a list of task dicts, or an exception to raise
        self.task_feed = list(task_feed or [])
        self.ticks = 0
        self.registered = []
        self.updates = []
        self.deregistered = []
        self.active_revisions = [OLD_ARN]

    def describe_service(self, cluster, service_name):
        return {"serviceName": service_name, "taskDefinition": self.definition["taskDefinitionArn"]}

    def describe_task_definition(self, identifier):
        return self.definition

    def register_task_definition(self, document):
        self.registered.append(document)
        self.active_revisions.append(NEW_ARN)
        return NEW_ARN

    def update_service(self, cluster, service_name, task_definition_id,
                       deployment_configuration=None, force_new_deployment=False):
        self.updates.append(
            (cluster, service_name, task_definition_id, deployment_configuration, force_new_deployment)
        )
        return {"serviceName": service_name}

    def list_task_definitions(self, family):
        return list(self.active_revisions)

    def deregister_task_definition(self, identifier):
        self.deregistered.append(identifier)
        self.active_revisions.remove(identifier)
        return {"taskDefinitionArn": identifier, "status": "INACTIVE"}

    def _current_tasks(self):
        if not self.task_feed:
            return []
        index = min(self.ticks, len(self.task_feed) - 1)
        return self.task_feed[index]

    def list_running_tasks(self, cluster, service_name):
        tasks = self._current_tasks()
        self.ticks += 1
        if isinstance(tasks, Exception):
            raise tasks
        return [t["taskArn"] for t in tasks]

    def describe_tasks(self, cluster, task_ids):
        tasks = self.task_feed[min(self.ticks - 1, len(self.task_feed) - 1)]
        return [t for t in tasks if t["taskArn"] in task_ids]


def task(arn: str, definition: str, status: str = "RUNNING") -> dict:
    return {"taskArn": arn, "taskDefinitionArn": definition, "lastStatus": status}


class FakeSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)

    @property
    def total(self):
        return sum(self.calls)
