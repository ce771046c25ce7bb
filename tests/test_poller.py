from __future__ import annotations

import pytest
from botocore.exceptions import EndpointConnectionError

from conftest import (
    CLUSTER,
    NEW_ARN,
    OLD_ARN,
    SERVICE,
    FakeControlPlane,
    FakeSleep,
    client_error,
    task,
)
from ecs_deploy.errors import ConvergenceTimeout
from ecs_deploy.poller import await_convergence, new_definition_running, require_convergence

OLD_ONLY = [task("t1", OLD_ARN), task("t2", OLD_ARN)]
WITH_NEW = [task("t1", OLD_ARN), task("t3", NEW_ARN)]


def test_converges_on_third_tick() -> None:
    fake = FakeControlPlane(task_feed=[OLD_ONLY, OLD_ONLY, WITH_NEW])
    sleep = FakeSleep()

    result = await_convergence(
        fake, CLUSTER, SERVICE, NEW_ARN, timeout_seconds=30, poll_interval_seconds=10, sleep=sleep
    )

    assert result.observed_running is True
    assert 20 <= result.elapsed_seconds <= 30
    assert sleep.calls == [10, 10]
    assert fake.ticks == 3


def test_converged_even_when_old_tasks_still_run() -> None:
    fake = FakeControlPlane(task_feed=[WITH_NEW])
    result = await_convergence(fake, CLUSTER, SERVICE, NEW_ARN, sleep=FakeSleep())
    assert result.observed_running is True
    assert result.elapsed_seconds == 0


def test_times_out_after_budget() -> None:
    fake = FakeControlPlane(task_feed=[OLD_ONLY])
    sleep = FakeSleep()

    result = await_convergence(
        fake, CLUSTER, SERVICE, NEW_ARN, timeout_seconds=30, poll_interval_seconds=10, sleep=sleep
    )

    assert result.observed_running is False
    assert result.elapsed_seconds == 30
    assert sleep.total == 30
    assert fake.ticks == 4


def test_timeout_not_a_multiple_of_interval_overshoots_by_less_than_one_interval() -> None:
    sleep = FakeSleep()
    result = await_convergence(
        FakeControlPlane(task_feed=[OLD_ONLY]),
        CLUSTER, SERVICE, NEW_ARN,
        timeout_seconds=25, poll_interval_seconds=10, sleep=sleep,
    )
    assert result.observed_running is False
    assert result.elapsed_seconds == 20
    assert sleep.total < 25 + 10


def test_new_task_not_yet_running_does_not_count() -> None:
    pending = [task("t3", NEW_ARN, status="PENDING")]
    fake = FakeControlPlane(task_feed=[pending, pending, WITH_NEW])
    result = await_convergence(
        fake, CLUSTER, SERVICE, NEW_ARN, timeout_seconds=90, poll_interval_seconds=10, sleep=FakeSleep()
    )
    assert result.elapsed_seconds == 20


def test_no_running_tasks_keeps_polling() -> None:
    fake = FakeControlPlane(task_feed=[[], WITH_NEW])
    result = await_convergence(fake, CLUSTER, SERVICE, NEW_ARN, sleep=FakeSleep())
    assert result.observed_running is True
    assert result.elapsed_seconds == 10


def test_api_error_on_one_tick_is_not_fatal() -> None:
    fake = FakeControlPlane(task_feed=[client_error("ListTasks", "ThrottlingException"), WITH_NEW])
    result = await_convergence(fake, CLUSTER, SERVICE, NEW_ARN, sleep=FakeSleep())
    assert result.observed_running is True
    assert result.elapsed_seconds == 10


def test_require_convergence_raises_timeout() -> None:
    fake = FakeControlPlane(task_feed=[OLD_ONLY])
    with pytest.raises(ConvergenceTimeout) as excinfo:
        require_convergence(
            fake, CLUSTER, SERVICE, NEW_ARN, timeout_seconds=20, poll_interval_seconds=10, sleep=FakeSleep()
        )
    assert excinfo.value.exit_code == 1
    assert "NOT reverted" in str(excinfo.value)
    assert excinfo.value.elapsed_seconds == 20


def test_rejects_non_positive_interval() -> None:
    with pytest.raises(ValueError):
        await_convergence(FakeControlPlane(), CLUSTER, SERVICE, NEW_ARN, poll_interval_seconds=0)


def test_new_definition_running_against_ecs(control_plane, stubber) -> None:
    stubber.add_response(
        "list_tasks",
        {"taskArns": ["arn:task/1", "arn:task/2"]},
        {"cluster": CLUSTER, "serviceName": SERVICE, "desiredStatus": "RUNNING"},
    )
    stubber.add_response(
        "describe_tasks",
        {
            "tasks": [
                {"taskArn": "arn:task/1", "taskDefinitionArn": OLD_ARN, "lastStatus": "RUNNING"},
                {"taskArn": "arn:task/2", "taskDefinitionArn": NEW_ARN, "lastStatus": "RUNNING"},
            ],
            "failures": [],
        },
        {"cluster": CLUSTER, "tasks": ["arn:task/1", "arn:task/2"]},
    )
    assert new_definition_running(control_plane, CLUSTER, SERVICE, NEW_ARN) is True


def test_describe_tasks_is_batched(control_plane, stubber) -> None:
    task_ids = [f"arn:task/{n}" for n in range(150)]
    stubber.add_response(
        "describe_tasks", {"tasks": []}, {"cluster": CLUSTER, "tasks": task_ids[:100]}
    )
    stubber.add_response(
        "describe_tasks", {"tasks": []}, {"cluster": CLUSTER, "tasks": task_ids[100:]}
    )
    assert control_plane.describe_tasks(CLUSTER, task_ids) == []


def test_connection_error_on_one_tick_is_not_fatal() -> None:
    fake = FakeControlPlane(
        task_feed=[EndpointConnectionError(endpoint_url="https://ecs.invalid"), OLD_ONLY, WITH_NEW]
    )
    result = await_convergence(fake, CLUSTER, SERVICE, NEW_ARN, sleep=FakeSleep())
    assert result.observed_running is True
    assert result.elapsed_seconds == 20
    assert result.last_error is None


def test_timeout_reports_persistent_polling_error() -> None:
    fake = FakeControlPlane(task_feed=[client_error("ListTasks", "AccessDeniedException")])
    with pytest.raises(ConvergenceTimeout) as excinfo:
        require_convergence(
            fake, CLUSTER, SERVICE, NEW_ARN, timeout_seconds=20, poll_interval_seconds=10, sleep=FakeSleep()
        )
    assert "AccessDeniedException" in excinfo.value.last_error
    assert "AccessDeniedException" in str(excinfo.value)


def test_error_cleared_by_a_later_clean_tick() -> None:
    fake = FakeControlPlane(task_feed=[client_error("ListTasks", "ThrottlingException"), OLD_ONLY])
    result = await_convergence(
        fake, CLUSTER, SERVICE, NEW_ARN, timeout_seconds=20, poll_interval_seconds=10, sleep=FakeSleep()
    )
    assert result.observed_running is False
    assert result.last_error is None
