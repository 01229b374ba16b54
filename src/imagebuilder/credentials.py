"""Registry credential resolution.

Builders and post-processors only need "a username and password for this
registry URL". :class:`CredentialResolver` is that boundary;
:class:`EcrCredentialResolver` answers it for Amazon ECR by asking the AWS
CLI for a short-lived login password.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess  # nosec B404 - the AWS CLI is invoked with a fixed argument vector
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Protocol, Tuple
from urllib.parse import urlparse

from .errors import CredentialError

logger = logging.getLogger(__name__)

ECR_PUBLIC_HOST = "public.ecr.aws"
ECR_PUBLIC_API_REGION = "us-east-1"
ECR_USERNAME = "AWS"

_PRIVATE_ECR_RE = re.compile(
    r"(?:http://|https://|)([0-9]*)\.dkr\.ecr\.(.*)\.amazonaws\.com.*"
)


class EcrType(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    INVALID = "invalid"


@dataclass(frozen=True)
class AwsAccessConfig:
    """Static AWS credentials and profile used for ECR logins.

    Empty fields fall through to the AWS CLI's own credential chain
    (environment, shared config, instance metadata).
    """

    access_key: str = ""
    secret_key: str = field(default="", repr=False)
    token: str = field(default="", repr=False)
    profile: str = ""

    def environment(self, base: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        env = dict(os.environ if base is None else base)
        if self.access_key:
            env["AWS_ACCESS_KEY_ID"] = self.access_key
        if self.secret_key:
            env["AWS_SECRET_ACCESS_KEY"] = self.secret_key
        if self.token:
            env["AWS_SESSION_TOKEN"] = self.token
        if self.profile:
            env["AWS_PROFILE"] = self.profile
        return env


class CredentialResolver(Protocol):
    def resolve(self, registry_url: str) -> Tuple[str, str]:
        """Return ``(username, password)`` for ``registry_url``."""
        ...


def get_ecr_type(registry_url: str) -> EcrType:
    """Classify a registry URL as public ECR, private ECR or unusable.

    A URL without a scheme is read as ``https``.
    """

    candidate = registry_url.strip()
    if not candidate:
        return EcrType.INVALID
    if "://" not in candidate:
        candidate = f"https://{candidate}"
    parsed = urlparse(candidate)
    if not parsed.scheme or not parsed.netloc:
        return EcrType.INVALID
    if parsed.hostname == ECR_PUBLIC_HOST:
        return EcrType.PUBLIC
    return EcrType.PRIVATE


def parse_private_ecr_url(registry_url: str) -> Tuple[str, str]:
    """Return ``(account_id, region)`` of a private ECR registry URL."""

    match = _PRIVATE_ECR_RE.search(registry_url)
    if not match:
        raise CredentialError(
            f"Failed to parse the ECR URL: {registry_url} it should be on the form "
            "<account number>.dkr.ecr.<region>.amazonaws.com"
        )
    return match.group(1), match.group(2)


class EcrCredentialResolver:
    """Obtain ECR login credentials through ``aws ... get-login-password``."""

    def __init__(self, aws: Optional[AwsAccessConfig] = None, executable: str = "aws"):
        self.aws = aws or AwsAccessConfig()
        self.executable = executable

    def resolve(self, registry_url: str) -> Tuple[str, str]:
        ecr_type = get_ecr_type(registry_url)
        if ecr_type is EcrType.INVALID:
            raise CredentialError(
                f"failed to parse the ECR URL: {registry_url!r}\n"
                "it should be either on the form "
                "`public.ecr.aws/<registry_alias>/<registry_name>` or "
                "`<account number>.dkr.ecr.<region>.amazonaws.com`"
            )

        if ecr_type is EcrType.PUBLIC:
            cmd = [
                self.executable,
                "ecr-public",
                "get-login-password",
                "--region",
                ECR_PUBLIC_API_REGION,
            ]
        else:
            account_id, region = parse_private_ecr_url(registry_url)
            logger.info("Getting ECR token for account: %s in %s", account_id, region)
            cmd = [self.executable, "ecr", "get-login-password", "--region", region]

        if shutil.which(self.executable) is None:
            raise CredentialError(
                f"AWS CLI '{self.executable}' was not found in your PATH; "
                "it is required for ecr_login"
            )

        logger.debug("Running credential command: %s", " ".join(cmd))
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            env=self.aws.environment(),
        )
        if result.returncode != 0:
            raise CredentialError(
                f"Failed to get ECR login password for {registry_url}: "
                f"{result.stderr.strip() or result.stdout.strip()}"
            )

        password = result.stdout.strip()
        if not password:
            raise CredentialError(f"AWS CLI returned an empty password for {registry_url}")

        logger.info("Successfully got login for ECR: %s", registry_url)
        return ECR_USERNAME, password
