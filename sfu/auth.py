"""
Authentication Module

Credential providers that produce an access token, instance URL and API
version for a Salesforce org.
"""
import json
import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Optional

from simple_salesforce import Salesforce, SalesforceAuthenticationFailed

from .config import DEFAULT_API_VERSION
from .errors import CredentialError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    """Session credentials for one org."""

    access_token: str
    instance_url: str
    api_version: str = DEFAULT_API_VERSION

    def __repr__(self) -> str:
        # Keep the token out of logs and tracebacks
        return (f"Credentials(instance_url={self.instance_url!r}, "
                f"api_version={self.api_version!r})")


class SfCliCredentialProvider:
    """Reads a session from the locally installed Salesforce CLI (`sf`)."""

    def __init__(self, username: str, executable: str = 'sf',
                 default_api_version: str = DEFAULT_API_VERSION):
        self.username = username
        self.executable = executable
        self.default_api_version = default_api_version

    def get_credentials(self) -> Credentials:
        """
        Run `sf org display` for the username and parse its JSON output.

        Returns:
            Credentials for the org

        Raises:
            CredentialError: If the CLI is missing, fails, or returns unusable output
        """
        command = [self.executable, 'org', 'display', '--target-org', self.username, '--json']
        logger.debug("Retrieving credentials with: %s", ' '.join(command))
        try:
            completed = subprocess.run(command, capture_output=True, text=True, check=False)
        except FileNotFoundError:
            raise CredentialError(
                f"'{self.executable}' not found. Install the Salesforce CLI and log in with "
                f"'sf org login web'."
            )

        try:
            document = json.loads(completed.stdout or '{}')
        except json.JSONDecodeError as e:
            raise CredentialError(f"Could not parse output of sf org display: {e}")

        if completed.returncode != 0 or document.get('status', 0) != 0:
            message = document.get('message') or completed.stderr.strip() or 'unknown error'
            raise CredentialError(f"sf org display failed for {self.username}: {message}")

        result = document.get('result') or {}
        access_token = result.get('accessToken')
        instance_url = result.get('instanceUrl')
        if not access_token or not instance_url:
            raise CredentialError(
                f"sf org display returned no session for {self.username}; "
                f"log in again with 'sf org login web'."
            )

        return Credentials(
            access_token=access_token,
            instance_url=instance_url.rstrip('/'),
            api_version=result.get('apiVersion') or self.default_api_version,
        )


class PasswordCredentialProvider:
    """
    Logs in with username, password and security token from the environment.

    Callers check the required keys first with Config.validate().
    """

    def __init__(self, username: Optional[str] = None,
                 default_api_version: str = DEFAULT_API_VERSION):
        self.username = username or os.getenv('SF_USERNAME')
        self.default_api_version = default_api_version

    def get_credentials(self) -> Credentials:
        password = os.getenv('SF_PASSWORD')
        security_token = os.getenv('SF_SECURITY_TOKEN')
        domain = os.getenv('SF_DOMAIN', 'login')

        try:
            sf = Salesforce(
                username=self.username,
                password=password,
                security_token=security_token,
                domain=domain,
                version=self.default_api_version,
            )
        except SalesforceAuthenticationFailed as e:
            raise CredentialError(f"Salesforce authentication failed: {e}")

        return Credentials(
            access_token=sf.session_id,
            instance_url=f"https://{sf.sf_instance}",
            api_version=sf.sf_version,
        )
