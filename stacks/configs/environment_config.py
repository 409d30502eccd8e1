"""Environment and compliance-tier configuration for GYB Connect stacks.

Every environment-dependent setting (retention, removal, network placement,
CORS origins, throttling) is read from a ``ComplianceProfile``. Stacks never
branch on the environment name themselves, so a mis-set name cannot silently
downgrade a production deployment.
"""

import ipaddress
import logging
import os
import re
from enum import Enum
from typing import Final

from aws_cdk import App, RemovalPolicy
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

DEV_ENV: Final[str] = "dev"
PROD_ENV: Final[str] = "prod"
ENVIRONMENT_ALIASES: Final[dict[str, str]] = {
    "production": PROD_ENV,
    "development": DEV_ENV,
}

APP_DOMAIN: Final[str] = "gybconnect.com"
DEFAULT_VPC_CIDR: Final[str] = "10.0.0.0/16"
DEFAULT_SECURITY_ALERT_EMAIL: Final[str] = "security@gybconnect.com"

_ENVIRONMENT_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9-]{0,19}$")


class ComplianceTier(str, Enum):
    """Compliance tiers selectable per deployment."""

    BASIC = "basic"
    HARDENED = "hardened"


class ComplianceProfile(BaseModel):
    """Settings that differ between the basic and hardened tiers.

    Attributes:
        tier: Which compliance tier this profile implements.
        retain_data: Keep data stores when the stack is deleted.
        require_customer_managed_keys: Storage must be bound to a CMK (PCI DSS 3.5).
        deletion_protection: Enable provider-side deletion protection on databases.
        dedicated_database_network: Place the database in the dedicated data tier.
        multi_az_database: Run the database across two availability zones.
        point_in_time_recovery: Enable continuous backups for tables.
        database_instance_size: Burstable instance size name, e.g. ``MICRO``.
        log_object_lock_days: Default governance retention on the log bucket.
        cors_origins: Browser origins allowed by the bucket and the API.
        api_throttle_rate_limit: Steady-state requests per second on the API stage.
        api_throttle_burst_limit: Burst requests on the API stage.
    """

    model_config = {"frozen": True}

    tier: ComplianceTier
    retain_data: bool
    require_customer_managed_keys: bool
    deletion_protection: bool
    dedicated_database_network: bool
    multi_az_database: bool
    point_in_time_recovery: bool
    database_instance_size: str = Field(default="MICRO")
    log_object_lock_days: int | None = Field(default=None, ge=1)
    cors_origins: tuple[str, ...]
    api_throttle_rate_limit: int = Field(default=100, ge=1)
    api_throttle_burst_limit: int = Field(default=200, ge=1)

    @property
    def removal_policy(self) -> RemovalPolicy:
        return RemovalPolicy.RETAIN if self.retain_data else RemovalPolicy.DESTROY

    @property
    def auto_delete_objects(self) -> bool:
        return not self.retain_data


BASIC_PROFILE: Final[ComplianceProfile] = ComplianceProfile(
    tier=ComplianceTier.BASIC,
    retain_data=False,
    require_customer_managed_keys=False,
    deletion_protection=False,
    dedicated_database_network=False,
    multi_az_database=False,
    point_in_time_recovery=False,
    database_instance_size="MICRO",
    cors_origins=(
        "http://localhost:3000",
        "http://localhost:5173",
        "https://localhost:3000",
        f"https://dev.{APP_DOMAIN}",
    ),
    api_throttle_rate_limit=100,
    api_throttle_burst_limit=200,
)

HARDENED_PROFILE: Final[ComplianceProfile] = ComplianceProfile(
    tier=ComplianceTier.HARDENED,
    retain_data=True,
    require_customer_managed_keys=True,
    deletion_protection=True,
    dedicated_database_network=True,
    multi_az_database=True,
    point_in_time_recovery=True,
    database_instance_size="MEDIUM",
    log_object_lock_days=365,
    cors_origins=(
        f"https://app.{APP_DOMAIN}",
        f"https://www.{APP_DOMAIN}",
    ),
    api_throttle_rate_limit=1000,
    api_throttle_burst_limit=2000,
)


class EnvironmentConfig(BaseModel):
    """Deployment-wide configuration shared by every stack.

    Attributes:
        name: Normalized environment name used as a resource-name prefix.
        profile: Compliance settings applied to every stack.
        vpc_cidr: Address range of the dedicated VPC.
        max_azs: Number of availability zones the VPC spans.
        security_alert_email: Optional address subscribed to security alerts.
        certificate_arn: Optional ACM certificate for the API custom domain.
    """

    model_config = {"frozen": True}

    name: str
    profile: ComplianceProfile
    vpc_cidr: str = Field(default=DEFAULT_VPC_CIDR)
    max_azs: int = Field(default=2, ge=1, le=3)
    security_alert_email: str | None = None
    certificate_arn: str | None = None

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        normalized = normalize_environment_name(value)
        if not _ENVIRONMENT_NAME_PATTERN.match(normalized):
            msg = (
                f"Environment name '{value}' must start with a letter and be lower-case "
                "alphanumeric with hyphens (max 20 characters) to be usable in resource "
                "and database names"
            )
            raise ValueError(msg)
        return normalized

    @field_validator("vpc_cidr")
    @classmethod
    def _validate_vpc_cidr(cls, value: str) -> str:
        network = ipaddress.ip_network(value, strict=True)
        if network.version != 4:
            msg = f"VPC CIDR must be IPv4, got {value}"
            raise ValueError(msg)
        if not 16 <= network.prefixlen <= 22:
            msg = f"VPC CIDR prefix must be between /16 and /22 to fit three /24 tiers, got {value}"
            raise ValueError(msg)
        return value

    @field_validator("security_alert_email", "certificate_arn")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @property
    def is_production(self) -> bool:
        return self.name == PROD_ENV

    @property
    def api_domain_name(self) -> str:
        if self.is_production:
            return f"api.{APP_DOMAIN}"
        return f"api-{self.name}.{APP_DOMAIN}"

    @property
    def database_name(self) -> str:
        return f"{self.name.replace('-', '_')}_gyb_connect"


def normalize_environment_name(value: str) -> str:
    """Lower-cases an environment name and maps long-form aliases."""
    normalized = value.strip().lower()
    return ENVIRONMENT_ALIASES.get(normalized, normalized)


def resolve_environment_name(app: App) -> str:
    """Resolves the target environment.

    Precedence is the ``environment`` CDK context value, then the
    ``DEPLOY_ENV`` environment variable, then ``dev``.
    """
    from_context = app.node.try_get_context("environment")
    if from_context:
        return normalize_environment_name(str(from_context))
    return normalize_environment_name(os.environ.get("DEPLOY_ENV") or DEV_ENV)


def get_compliance_profile(tier: ComplianceTier | str) -> ComplianceProfile:
    """Returns the preset profile for a compliance tier."""
    tier = ComplianceTier(tier)
    if tier is ComplianceTier.HARDENED:
        return HARDENED_PROFILE
    return BASIC_PROFILE


def get_environment_config(
    name: str,
    compliance_tier: ComplianceTier | str | None = None,
    security_alert_email: str | None = None,
    certificate_arn: str | None = None,
) -> EnvironmentConfig:
    """Builds the configuration for an environment.

    Production defaults to the hardened tier and every other environment to
    the basic tier; ``compliance_tier`` overrides either default.

    Args:
        name: Environment name, e.g. ``dev`` or ``prod``.
        compliance_tier: Optional explicit tier.
        security_alert_email: Optional address for alert subscriptions.
        certificate_arn: Optional ACM certificate for the API custom domain.

    Returns:
        Validated environment configuration.
    """
    normalized = normalize_environment_name(name)
    if compliance_tier is None:
        compliance_tier = (
            ComplianceTier.HARDENED if normalized == PROD_ENV else ComplianceTier.BASIC
        )
    profile = get_compliance_profile(compliance_tier)
    if normalized == PROD_ENV and profile.tier is not ComplianceTier.HARDENED:
        logger.warning(
            "Environment '%s' is deploying with the %s compliance tier",
            normalized,
            profile.tier.value,
        )

    logger.info(
        "Using %s compliance tier for environment '%s'",
        profile.tier.value,
        normalized,
    )
    return EnvironmentConfig(
        name=normalized,
        profile=profile,
        security_alert_email=security_alert_email,
        certificate_arn=certificate_arn,
    )
