"""Registry sessions shared by the bootstrap and pull steps."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from ...credentials import CredentialResolver, EcrCredentialResolver
from ...errors import CredentialError
from ..state import BuildState

logger = logging.getLogger(__name__)


@contextmanager
def registry_session(
    state: BuildState, resolver: Optional[CredentialResolver] = None
) -> Iterator[None]:
    """Hold a registry login for the block when the configuration asks for one.

    With ``ecr_login`` the credentials come from ``resolver`` (the AWS CLI by
    default); with plain ``login`` they are the configured ones. The session
    always ends with a logout once the login succeeded.
    """

    config = state.config
    if not (config.login or config.ecr_login):
        yield
        return

    username, password = config.login_username, config.login_password
    if config.ecr_login:
        logger.info("Fetching ECR credentials...")
        resolver = resolver or EcrCredentialResolver(config.aws)
        try:
            username, password = resolver.resolve(config.login_server)
        except CredentialError as exc:
            raise CredentialError(f"Error fetching ECR credentials: {exc}") from exc

    logger.info("Logging in to %s...", config.login_server or "default registry")
    with state.driver.logged_in(config.login_server, username, password):
        yield
