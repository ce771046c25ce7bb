"""
Error taxonomy for ecs-deploy.

Every error is terminal for the invocation. The CLI catches ``DeployError``,
prints it through the stage reporter and exits with ``exit_code``.
"""

from typing import Optional


class DeployError(Exception):
    """Base class for every failure the CLI reports to the operator."""

    exit_code = 1
    fix_hint = ""

    def __init__(self, message: str, fix_hint: Optional[str] = None):
        super().__init__(message)
        if fix_hint is not None:
            self.fix_hint = fix_hint


class UsageError(DeployError):
    exit_code = 2


# ── Image parsing ───────────────────────────────────────────────────────────

class ParseError(DeployError):
    fix_hint = (
        "Supported formats: mariadb, mariadb:1.2, silintl/mariadb:1.2, "
        "registry.example.com:5000/repo/image:tag"
    )


class Unparseable(ParseError):
    pass


class MissingDomainOrRepo(ParseError):
    pass


class MissingImageName(ParseError):
    pass


# ── Environment ─────────────────────────────────────────────────────────────

class DependencyMissing(DeployError):
    fix_hint = (
        "Run 'aws configure', pass --aws-access-key/--aws-secret-key or "
        "--profile, and set --region or AWS_DEFAULT_REGION."
    )


# ── Control plane ───────────────────────────────────────────────────────────

class FetchError(DeployError):
    pass


class RegistrationError(DeployError):
    pass


class ServiceUpdateError(DeployError):
    pass


class ConvergenceTimeout(DeployError):
    """The service update was issued but no new task was seen running."""

    def __init__(
        self,
        target_id: str,
        elapsed_seconds: int,
        timeout_seconds: int,
        last_error: Optional[str] = None,
    ):
        message = (
            f"Update issued, confirmation timed out: no task running {target_id} "
            f"after {elapsed_seconds}s (timeout {timeout_seconds}s). "
            "The service still targets the new task definition; it was NOT reverted."
        )
        if last_error:
            message += f" Last polling error: {last_error}"
        super().__init__(
            message,
            fix_hint=(
                "Inspect the service events: aws ecs describe-services "
                "--cluster <cluster> --services <service>"
            ),
        )
        self.target_id = target_id
        self.elapsed_seconds = elapsed_seconds
        self.timeout_seconds = timeout_seconds
        self.last_error = last_error
