"""Encryption-at-rest checks shared by the storage stacks (PCI DSS 3.5)."""

import logging

from aws_cdk import aws_kms as kms

from stacks.configs import EnvironmentConfig

logger = logging.getLogger(__name__)


def ensure_customer_managed_key(
    config: EnvironmentConfig,
    key: kms.IKey | None,
    resource: str,
) -> bool:
    """Checks a storage resource is bound to a CMK when the tier requires one.

    Args:
        config: Environment configuration of the owning stack.
        key: Key handed to the stack, if any.
        resource: Human-readable resource name used in log and error messages.

    Returns:
        True when the resource should use the customer-managed key.

    Raises:
        ValueError: If the compliance tier requires a CMK and none was given.
    """
    if key is not None:
        logger.info("Encrypting %s with a customer-managed key", resource)
        return True
    if config.profile.require_customer_managed_keys:
        msg = (
            f"{resource} in environment '{config.name}' requires a customer-managed "
            f"KMS key under the {config.profile.tier.value} compliance tier"
        )
        raise ValueError(msg)
    logger.info("Encrypting %s with the provider-managed key", resource)
    return False
