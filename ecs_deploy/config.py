"""Immutable run configuration, built once from CLI arguments and environment."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_TIMEOUT       = 90   # seconds
DEFAULT_POLL_INTERVAL = 10   # seconds


@dataclass(frozen=True)
class DeployConfig:
    image: str
    service_name: Optional[str] = None
    task_definition: Optional[str] = None
    cluster: Optional[str] = None

    # Credentials
    aws_access_key: Optional[str] = None
    aws_secret_key: Optional[str] = None
    region: Optional[str] = None
    profile: Optional[str] = None
    use_instance_profile: bool = False
    endpoint_url: Optional[str] = None

    # Deployment
    minimum_healthy_percent: Optional[int] = None
    maximum_percent: Optional[int] = None
    timeout: int = DEFAULT_TIMEOUT
    poll_interval: int = DEFAULT_POLL_INTERVAL
    tag_env_var: Optional[str] = None
    max_definitions: int = 0
    use_latest_task_def: bool = False
    force_new_deployment: bool = False
    verbose: bool = False

    @property
    def targets_service(self) -> bool:
        return bool(self.service_name)

    @classmethod
    def from_args(cls, args, environ: Optional[Mapping[str, str]] = None) -> "DeployConfig":
        """Fold parsed argparse options over their environment variable fallbacks."""
        if environ is None:
            environ = os.environ
        return cls(
            image=args.image,
            service_name=args.service_name,
            task_definition=args.task_definition,
            cluster=args.cluster,
            aws_access_key=args.aws_access_key or environ.get("AWS_ACCESS_KEY_ID") or None,
            aws_secret_key=args.aws_secret_key or environ.get("AWS_SECRET_ACCESS_KEY") or None,
            region=args.region or environ.get("AWS_DEFAULT_REGION") or environ.get("AWS_REGION") or None,
            profile=args.profile or environ.get("AWS_PROFILE") or None,
            use_instance_profile=args.aws_instance_profile,
            endpoint_url=args.aws_endpoint_url or environ.get("AWS_ENDPOINT_URL") or None,
            minimum_healthy_percent=args.min,
            maximum_percent=args.max,
            timeout=args.timeout,
            poll_interval=args.poll_interval,
            tag_env_var=args.tag_env_var,
            max_definitions=args.max_definitions,
            use_latest_task_def=args.use_latest_task_def,
            force_new_deployment=args.force_new_deployment,
            verbose=args.verbose,
        )
