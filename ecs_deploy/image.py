"""
Container image reference parsing.

Accepted forms::

    mariadb
    mariadb:1.2
    silintl/mariadb:1.2
    registry.example.com:5000/repo/image:tag
    123456789012.dkr.ecr.us-east-1.amazonaws.com/app:v3

Tag precedence, highest first:

1. a tag written in the image string itself,
2. the value of the environment variable named by ``--tag-env-var``
   (ignored when unset or empty),
3. ``latest``.

An explicit tag therefore always wins over the environment variable, even
when that variable is set.
"""

import os
import re
from dataclasses import dataclass
from typing import Mapping, Optional

from ecs_deploy.errors import MissingDomainOrRepo, MissingImageName, Unparseable

DEFAULT_TAG = "latest"

# domain[:port]/repository[/image/path][:tag]
IMAGE_RE = re.compile(
    r"^([a-zA-Z0-9.\-]+):?([0-9]+)?/([a-zA-Z0-9._\-]+)(/[/a-zA-Z0-9._\-]+)?:?([a-zA-Z0-9._\-]+)?$"
)
# Root level images such as "mariadb" or "mariadb:10"
ROOT_IMAGE_RE = re.compile(r"^([a-zA-Z0-9\-]+):?([a-zA-Z0-9._\-]+)?$")


@dataclass(frozen=True)
class ImageReference:
    domain: str = ""
    port: Optional[int] = None
    repository_path: str = ""
    image_name: str = ""
    tag: Optional[str] = None

    @property
    def image_without_tag(self) -> str:
        parts = []
        if self.domain:
            parts.append(f"{self.domain}:{self.port}" if self.port is not None else self.domain)
        if self.repository_path:
            parts.append(self.repository_path)
        parts.append(self.image_name)
        return "/".join(parts)

    @property
    def full_image(self) -> str:
        return f"{self.image_without_tag}:{self.tag or DEFAULT_TAG}"

    def __str__(self) -> str:
        return self.full_image


def _resolve_tag(
    explicit: Optional[str],
    tag_env_var: Optional[str],
    environ: Mapping[str, str],
) -> str:
    if explicit:
        return explicit
    if tag_env_var:
        value = environ.get(tag_env_var, "")
        if value:
            return value
    return DEFAULT_TAG


def parse_image(
    raw: str,
    tag_env_var: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ImageReference:
    """
    Parse ``raw`` into an ImageReference with its tag resolved.

    Raises:
        Unparseable: neither the structured nor the root-level form matches.
        MissingDomainOrRepo / MissingImageName: a structured match came back
            without the required pieces.
    """
    if environ is None:
        environ = os.environ
    raw = (raw or "").strip()

    match = IMAGE_RE.match(raw)
    if match:
        domain, port, repo, image_path, tag = match.groups()
        if not domain:
            raise MissingDomainOrRepo(
                f"Image name '{raw}' does not contain a domain or repo as expected."
            )
        if not repo:
            raise MissingImageName(f"Image name '{raw}' is missing the actual image name.")

        image_name = (image_path or "").lstrip("/")
        if not image_name:
            # Two-segment form "a/b": the repository group captured the image.
            image_name, repo = repo, ""

        return ImageReference(
            domain=domain,
            port=int(port) if port else None,
            repository_path=repo,
            image_name=image_name,
            tag=_resolve_tag(tag, tag_env_var, environ),
        )

    match = ROOT_IMAGE_RE.match(raw)
    if match:
        image_name, tag = match.groups()
        if not image_name:
            raise MissingImageName(f"Invalid image name '{raw}'.")
        return ImageReference(
            image_name=image_name,
            tag=_resolve_tag(tag, tag_env_var, environ),
        )

    raise Unparseable(f"Unable to parse image name '{raw}', check the format and try again.")
