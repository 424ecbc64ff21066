"""SSM Parameter Store service for secret retrieval.

Provides cached access to AWS SSM Parameter Store SecureString parameters.
Used for the gateway secret keys and the face-match API key when they are
not supplied through the environment.
"""

import logging
import os
from functools import lru_cache

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)


class SSMServiceError(Exception):
    """Raised when SSM parameter retrieval fails."""

    pass


class SSMService:
    """Service for retrieving secrets from AWS SSM Parameter Store.

    Usage:
        ssm = SSMService()
        paystack_key = ssm.get_parameter("/getserved/dev/paystack/secret_key")
    """

    def __init__(self) -> None:
        self._client = boto3.client("ssm")
        self._cache: dict[str, str] = {}

    def get_parameter(self, name: str, *, use_cache: bool = True) -> str:
        """Retrieve a parameter value from SSM Parameter Store.

        Args:
            name: Full parameter path (e.g., "/getserved/dev/paystack/secret_key")
            use_cache: Whether to use cached value if available (default: True)

        Returns:
            The decrypted parameter value.

        Raises:
            SSMServiceError: If parameter cannot be retrieved.
        """
        if use_cache and name in self._cache:
            logger.debug("SSM cache hit for %s", name)
            return self._cache[name]

        try:
            logger.info("Fetching SSM parameter: %s", name)
            response = self._client.get_parameter(Name=name, WithDecryption=True)
            value = response["Parameter"]["Value"]

            self._cache[name] = value
            return value

        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            if error_code == "ParameterNotFound":
                raise SSMServiceError(f"SSM parameter not found: {name}") from e
            if error_code == "AccessDeniedException":
                raise SSMServiceError(
                    f"Access denied to SSM parameter: {name}. "
                    "Check IAM permissions for ssm:GetParameter."
                ) from e
            raise SSMServiceError(
                f"Failed to retrieve SSM parameter {name}: {e}"
            ) from e
        except BotoCoreError as e:
            # No credentials / no region when running locally
            raise SSMServiceError(
                f"Failed to retrieve SSM parameter {name}: {e}"
            ) from e

    def clear_cache(self) -> None:
        """Clear all cached parameters."""
        self._cache.clear()
        logger.info("SSM parameter cache cleared")


@lru_cache(maxsize=1)
def get_ssm_service() -> SSMService:
    """Get the shared SSMService instance."""
    return SSMService()


def resolve_secret(env_var: str, parameter_name: str) -> str | None:
    """Read a secret from the environment, falling back to SSM.

    Returns None when neither source has it, so callers can run in demo mode
    instead of failing at start-up.

    Args:
        env_var: Environment variable checked first (e.g., "PAYSTACK_SECRET_KEY")
        parameter_name: Full SSM path used as fallback

    Returns:
        The secret value, or None if unavailable
    """
    value = os.getenv(env_var)
    if value:
        return value

    try:
        return get_ssm_service().get_parameter(parameter_name)
    except SSMServiceError as e:
        logger.warning("Secret %s unavailable: %s", env_var, e)
        return None
