"""Rolling image deployments for AWS ECS services and task definitions."""

__version__ = "1.0.0"
