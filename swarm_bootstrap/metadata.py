"""Instance metadata lookups for the node's private address."""

import requests

from swarm_bootstrap.exceptions import MetadataError
from swarm_bootstrap.logging_config import get_logger

logger = get_logger(__name__)

TOKEN_TTL_SECONDS = 21600


def get_private_ip(metadata_url: str = "http://169.254.169.254/latest", timeout: float = 2) -> str:
    """Get the instance's private IPv4 address from the EC2 metadata service.

    Uses an IMDSv2 session token when the service hands one out and falls
    back to a plain IMDSv1 request otherwise.

    Raises:
        MetadataError: If the metadata service cannot be reached or returns nothing
    """
    headers = {}
    try:
        response = requests.put(
            f"{metadata_url}/api/token",
            headers={"X-aws-ec2-metadata-token-ttl-seconds": str(TOKEN_TTL_SECONDS)},
            timeout=timeout,
        )
        if response.status_code == 200:
            headers["X-aws-ec2-metadata-token"] = response.text
        else:
            logger.debug(f"IMDSv2 token request returned {response.status_code}, using IMDSv1")
    except requests.RequestException as e:
        logger.debug(f"IMDSv2 token request failed, using IMDSv1: {e}")

    try:
        response = requests.get(
            f"{metadata_url}/meta-data/local-ipv4", headers=headers, timeout=timeout
        )
    except requests.RequestException as e:
        raise MetadataError(
            "Failed to query instance metadata for the private IP",
            f"{e}\n\nSet advertise_address explicitly when not running on EC2",
        )

    if response.status_code != 200 or not response.text.strip():
        raise MetadataError(
            "Instance metadata returned no private IP",
            f"HTTP {response.status_code} from {metadata_url}/meta-data/local-ipv4",
        )

    ip = response.text.strip()
    logger.debug(f"Private IP from instance metadata: {ip}")
    return ip
