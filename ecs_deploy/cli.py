"""
ecs-deploy command line entry point
===================================

Pipeline:
  1. Parse & normalize the image reference   (--image, --tag-env-var)
  2. Connect to ECS                           (keys / profile / instance role)
  3. Fetch the current task definition        (service's revision or --task-definition)
  4. Build the new task definition            (swap matching container images)
  5. Register it, and update the service      (--min / --max / --force-new-deployment)
  6. Deregister old revisions                 (only with --max-definitions)
  7. Wait for the new revision to run         (services only, --timeout)

Usage:
    ecs-deploy -c CLUSTER -n SERVICE -i IMAGE [options]
    ecs-deploy -d TASK_DEFINITION -i IMAGE [options]

Exit status: 0 on success, 1 on any deployment failure, 2 on usage errors.

Two concurrent runs against the same service are not detected; ECS applies
whichever UpdateService call lands last.
"""

import argparse
import sys
import time
from typing import Callable, List, Optional

from ecs_deploy import __version__
from ecs_deploy.client import EcsControlPlane
from ecs_deploy.config import DEFAULT_POLL_INTERVAL, DEFAULT_TIMEOUT, DeployConfig
from ecs_deploy.deploy import (
    DeploymentConfig,
    ServiceHandle,
    ServiceTarget,
    TaskDefinitionOnly,
    UpdateIssued,
    deploy,
    prune_task_definitions,
)
from ecs_deploy.errors import ConvergenceTimeout, DeployError, RegistrationError
from ecs_deploy.image import ImageReference, parse_image
from ecs_deploy.poller import require_convergence
from ecs_deploy.reporter import C, StageReporter
from ecs_deploy.task_definition import (
    count_replaced,
    fetch_task_definition,
    mutate,
    resolve_task_definition_id,
)


def _percent(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be a non-negative integer, got {value}")
    return number


def _positive(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ecs-deploy",
        description="Deploy a new image to an ECS service or task definition.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("-n", "--service-name", help="ECS service to update")
    target.add_argument(
        "-d", "--task-definition",
        help="Task definition family (or family:revision / ARN) to update without a service",
    )
    parser.add_argument("-i", "--image", required=True, help="Image reference to deploy")
    parser.add_argument("-c", "--cluster", help="ECS cluster name (required with --service-name)")

    creds = parser.add_argument_group("AWS credentials")
    creds.add_argument("-k", "--aws-access-key", help="AWS access key id (or AWS_ACCESS_KEY_ID)")
    creds.add_argument("-s", "--aws-secret-key", help="AWS secret key (or AWS_SECRET_ACCESS_KEY)")
    creds.add_argument("-r", "--region", help="AWS region (or AWS_DEFAULT_REGION)")
    creds.add_argument("-p", "--profile", help="AWS profile from ~/.aws/config (or AWS_PROFILE)")
    creds.add_argument(
        "-a", "--aws-instance-profile", action="store_true",
        help="Use the EC2/ECS instance role instead of keys",
    )
    creds.add_argument("--aws-endpoint-url", help="Custom ECS endpoint (or AWS_ENDPOINT_URL)")

    opts = parser.add_argument_group("deployment")
    opts.add_argument("-m", "--min", type=_percent, help="minimumHealthyPercent for the update")
    opts.add_argument("-M", "--max", type=_percent, help="maximumPercent for the update")
    opts.add_argument(
        "-t", "--timeout", type=_positive, default=DEFAULT_TIMEOUT,
        help=f"Seconds to wait for the new revision to run (default {DEFAULT_TIMEOUT})",
    )
    opts.add_argument(
        "--poll-interval", type=_positive, default=DEFAULT_POLL_INTERVAL,
        help=f"Seconds between convergence checks (default {DEFAULT_POLL_INTERVAL})",
    )
    opts.add_argument(
        "-e", "--tag-env-var",
        help="Environment variable holding the tag, used when --image has none",
    )
    opts.add_argument(
        "-D", "--max-definitions", type=int, default=0,
        help="Keep at most this many ACTIVE revisions, deregistering the oldest (0 = keep all)",
    )
    opts.add_argument(
        "--use-latest-task-def", action="store_true",
        help="Base the new revision on the family's latest revision, not the service's current one",
    )
    opts.add_argument(
        "--force-new-deployment", action="store_true",
        help="Force ECS to start a new deployment even if nothing else changed",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    return parser


def parse_config(argv: Optional[List[str]] = None, environ=None) -> DeployConfig:
    """Parse ``argv`` into a DeployConfig; usage errors exit with status 2."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.service_name and not args.cluster:
        parser.error("--cluster is required when --service-name is used")
    if bool(args.aws_access_key) != bool(args.aws_secret_key):
        parser.error("--aws-access-key and --aws-secret-key must be given together")
    if args.max_definitions < 0:
        parser.error("--max-definitions must be 0 or greater")
    return DeployConfig.from_args(args, environ=environ)


class EcsDeployer:
    """Runs the deployment pipeline for one DeployConfig."""

    def __init__(
        self,
        config: DeployConfig,
        control_plane: Optional[EcsControlPlane] = None,
        sleep: Callable[[float], None] = time.sleep,
        environ=None,
    ):
        self.config        = config
        self.control_plane = control_plane
        self.sleep         = sleep
        self.environ       = environ

        self.image             : Optional[ImageReference] = None
        self.source_id         : str = ""
        self.source_definition : dict = {}
        self.new_definition    : dict = {}
        self.new_id            : str = ""
        self.update_issued     : bool = False

        total = 5
        if config.max_definitions > 0:
            total += 1
        if config.targets_service:
            total += 1
        self.reporter = StageReporter(total=total, verbose=config.verbose)

    # ────────────────────────────────────────────────────────────────────────
    # STAGES
    # ────────────────────────────────────────────────────────────────────────

    def stage_parse_image(self) -> None:
        self.reporter.start(f"Parse image reference: {self.config.image}")
        self.image = parse_image(self.config.image, self.config.tag_env_var, self.environ)
        self.reporter.info(f"Domain    : {self.image.domain or '(none)'}")
        if self.image.port is not None:
            self.reporter.info(f"Port      : {self.image.port}")
        self.reporter.info(f"Repository: {self.image.repository_path or '(none)'}")
        self.reporter.info(f"Image     : {self.image.image_name}")
        self.reporter.info(f"Tag       : {self.image.tag}")
        self.reporter.success(self.image.full_image)

    def stage_connect(self) -> None:
        self.reporter.start("Connect to AWS ECS")
        if self.control_plane is None:
            self.control_plane = EcsControlPlane.from_config(self.config)
        client = getattr(self.control_plane, "client", None)
        region = getattr(getattr(client, "meta", None), "region_name", None)
        self.reporter.success(f"region={region or 'default'}")

    def stage_fetch_definition(self) -> None:
        cfg = self.config
        if cfg.targets_service:
            self.reporter.start(f"Fetch task definition of service {cfg.cluster}/{cfg.service_name}")
        else:
            self.reporter.start(f"Fetch task definition {cfg.task_definition}")

        self.source_id = resolve_task_definition_id(
            self.control_plane,
            cluster=cfg.cluster,
            service_name=cfg.service_name,
            task_definition=cfg.task_definition,
            use_latest=cfg.use_latest_task_def,
        )
        self.reporter.progress(f"Calling ecs:DescribeTaskDefinition for {self.source_id}…")
        self.source_definition = fetch_task_definition(self.control_plane, self.source_id)
        self.reporter.info(f"Family   : {self.source_definition.get('family')}")
        self.reporter.info(f"Revision : {self.source_definition.get('revision', '?')}")
        self.reporter.success(self.source_definition.get("taskDefinitionArn", self.source_id))

    def stage_build_definition(self) -> None:
        self.reporter.start("Build new task definition")
        prefix = self.image.image_without_tag
        replaced = count_replaced(self.source_definition, prefix)
        self.new_definition = mutate(self.source_definition, prefix, self.image.full_image)
        for container in self.new_definition["containerDefinitions"]:
            self.reporter.debug(f"{container.get('name')}: {container.get('image')}")
        if replaced == 0:
            self.reporter.warning(
                f"No container uses {prefix}; the new revision keeps the current images."
            )
        self.reporter.success(f"{replaced} container(s) now use {self.image.full_image}")

    def stage_register_and_update(self) -> None:
        cfg = self.config
        if cfg.targets_service:
            self.reporter.start(f"Register task definition & update service {cfg.service_name}")
            target = ServiceTarget(
                handle=ServiceHandle(cfg.cluster, cfg.service_name, self.source_id),
                deployment_config=DeploymentConfig(
                    minimum_healthy_percent=cfg.minimum_healthy_percent,
                    maximum_percent=cfg.maximum_percent,
                ),
                force_new_deployment=cfg.force_new_deployment,
            )
        else:
            self.reporter.start("Register task definition")
            target = TaskDefinitionOnly()

        outcome = deploy(self.control_plane, self.new_definition, target)
        self.new_id = outcome.task_definition_id
        self.reporter.info(f"New task definition: {self.new_id}")
        if isinstance(outcome, UpdateIssued):
            self.update_issued = True
            self.reporter.success(f"{cfg.service_name} → {self.new_id}")
        else:
            self.reporter.success(f"registered {self.new_id}")

    def stage_prune_definitions(self) -> None:
        family = self.new_definition["family"]
        keep = self.config.max_definitions
        self.reporter.start(f"Deregister old revisions of {family} (keep {keep})")
        removed = prune_task_definitions(self.control_plane, family, keep)
        for arn in removed:
            self.reporter.info(f"Deregistered {arn}")
        self.reporter.success(f"{len(removed)} revision(s) deregistered")

    def stage_await_convergence(self) -> None:
        cfg = self.config
        self.reporter.start(
            f"Wait for {cfg.service_name} to run {self.new_id} (timeout {cfg.timeout}s)"
        )
        result = require_convergence(
            self.control_plane,
            cfg.cluster,
            cfg.service_name,
            self.new_id,
            timeout_seconds=cfg.timeout,
            poll_interval_seconds=cfg.poll_interval,
            sleep=self.sleep,
            reporter=self.reporter,
        )
        self.reporter.success(f"new task definition running after {result.elapsed_seconds}s")

    # ────────────────────────────────────────────────────────────────────────
    # MAIN PIPELINE
    # ────────────────────────────────────────────────────────────────────────

    def stages(self) -> list:
        stages = [
            self.stage_parse_image,
            self.stage_connect,
            self.stage_fetch_definition,
            self.stage_build_definition,
            self.stage_register_and_update,
        ]
        if self.config.max_definitions > 0:
            stages.append(self.stage_prune_definitions)
        if self.config.targets_service:
            stages.append(self.stage_await_convergence)
        return stages

    def run(self) -> int:
        """Run every stage; returns the process exit code."""
        try:
            for stage in self.stages():
                stage()
        except DeployError as exc:
            cause = exc.__cause__
            self.reporter.fail(str(exc), error=cause, fix_hint=exc.fix_hint)
            self.print_summary(failure=exc)
            return exc.exit_code

        self.print_summary()
        return 0

    def print_summary(self, failure: Optional[DeployError] = None) -> None:
        print(f"\n{C.BOLD}{'=' * 80}{C.ENDC}")
        if failure is None:
            print(f"{C.GREEN}{C.BOLD}✅  DEPLOYMENT COMPLETE{C.ENDC}")
            print(f"{C.GREEN}  Image           : {self.image.full_image}{C.ENDC}")
            print(f"{C.GREEN}  Task definition : {self.new_id}{C.ENDC}")
            if self.config.targets_service:
                print(
                    f"{C.GREEN}  Service         : {self.config.cluster}/"
                    f"{self.config.service_name} → running{C.ENDC}"
                )
        elif isinstance(failure, ConvergenceTimeout):
            print(f"{C.FAIL}{C.BOLD}❌  UPDATE ISSUED, CONFIRMATION TIMED OUT{C.ENDC}")
            print(
                f"{C.WARNING}  {self.config.service_name} still targets {self.new_id}; "
                f"the update was NOT reverted.{C.ENDC}"
            )
        else:
            print(
                f"{C.FAIL}{C.BOLD}❌  DEPLOYMENT FAILED at stage "
                f"{self.reporter.current}/{self.reporter.total}{C.ENDC}"
            )
            if self.new_id and isinstance(failure, RegistrationError):
                print(f"{C.WARNING}  {self.new_id} was registered before the failure.{C.ENDC}")
            if self.update_issued:
                print(
                    f"{C.WARNING}  The service update was already issued and was "
                    f"NOT reverted.{C.ENDC}"
                )
        print(f"{C.BOLD}{'=' * 80}{C.ENDC}\n")


# ============================================================================
# ENTRY POINT
# ============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    config = parse_config(argv)
    deployer = EcsDeployer(config)
    return deployer.run()


if __name__ == "__main__":
    sys.exit(main())
