"""
Wait for a task running the new task definition.

Converged means at least one task of the service runs the new revision;
old tasks may still be draining. Ticks happen at elapsed 0, interval,
2*interval, ... and stop once ``elapsed + interval > timeout``, so the last
check can land up to one interval after the stated timeout.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ecs_deploy.client import EcsControlPlane
from ecs_deploy.config import DEFAULT_POLL_INTERVAL, DEFAULT_TIMEOUT
from ecs_deploy.errors import ConvergenceTimeout
from ecs_deploy.reporter import NullReporter, StageReporter


@dataclass(frozen=True)
class PollResult:
    observed_running: bool
    elapsed_seconds: int
    last_error: Optional[str] = None


def new_definition_running(
    control_plane: EcsControlPlane,
    cluster: str,
    service_name: str,
    target_id: str,
) -> bool:
    task_ids = control_plane.list_running_tasks(cluster, service_name)
    if not task_ids:
        return False
    for task in control_plane.describe_tasks(cluster, task_ids):
        if task.get("taskDefinitionArn") == target_id and task.get("lastStatus") == "RUNNING":
            return True
    return False


def await_convergence(
    control_plane: EcsControlPlane,
    cluster: str,
    service_name: str,
    target_id: str,
    timeout_seconds: int = DEFAULT_TIMEOUT,
    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
    reporter: Optional[StageReporter] = None,
) -> PollResult:
    if poll_interval_seconds <= 0:
        raise ValueError("poll_interval_seconds must be positive")
    reporter = reporter or NullReporter()
    elapsed = 0
    last_error = None

    while True:
        try:
            if new_definition_running(control_plane, cluster, service_name, target_id):
                return PollResult(observed_running=True, elapsed_seconds=elapsed)
            reporter.debug(f"{elapsed}s: no task running {target_id} yet")
            last_error = None
        except (ClientError, BotoCoreError) as exc:
            # A failed tick is treated as "not observed"
            reporter.warning(f"{elapsed}s: polling error, will retry: {exc}")
            last_error = f"{type(exc).__name__}: {exc}"

        if elapsed + poll_interval_seconds > timeout_seconds:
            return PollResult(
                observed_running=False, elapsed_seconds=elapsed, last_error=last_error
            )

        elapsed += poll_interval_seconds
        reporter.progress(f"Waiting {poll_interval_seconds}s ({elapsed}/{timeout_seconds}s)…")
        sleep(poll_interval_seconds)


def require_convergence(
    control_plane: EcsControlPlane,
    cluster: str,
    service_name: str,
    target_id: str,
    timeout_seconds: int = DEFAULT_TIMEOUT,
    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
    reporter: Optional[StageReporter] = None,
) -> PollResult:
    """Like await_convergence, but a timeout raises ConvergenceTimeout."""
    result = await_convergence(
        control_plane,
        cluster,
        service_name,
        target_id,
        timeout_seconds=timeout_seconds,
        poll_interval_seconds=poll_interval_seconds,
        sleep=sleep,
        reporter=reporter,
    )
    if not result.observed_running:
        raise ConvergenceTimeout(
            target_id, result.elapsed_seconds, timeout_seconds, last_error=result.last_error
        )
    return result
