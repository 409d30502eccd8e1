"""Entry point for GYB Connect infrastructure deployment.

This module synthesizes every GYB Connect stack for one environment. The
environment and compliance tier are selected through CDK context or
environment variables so the same code deploys both dev and prod.

Environment Configuration Options:
    1. CDK context (``cdk synth -c environment=prod``):
       environment: Target environment name
       compliance_tier: ``basic`` or ``hardened`` override
       security_alert_email: Address subscribed to security alerts
       certificate_arn: Certificate for the API custom domain
       aws_profile: Named profile used to resolve the target account

    2. Environment variables:
       DEPLOY_ENV: Target environment name when no context is given
       COMPLIANCE_TIER: Compliance tier override
       SECURITY_ALERT_EMAIL: Address subscribed to security alerts
       ACM_CERTIFICATE_ARN: Certificate for the API custom domain
       CDK_DEFAULT_ACCOUNT / CDK_DEFAULT_REGION: Target account and region
"""

import logging
import os
from dataclasses import dataclass

import boto3
from aws_cdk import App, Environment

from stacks.configs import get_environment_config, resolve_environment_name
from stacks.configs.environment_config import DEFAULT_SECURITY_ALERT_EMAIL
from stacks.platform import GybConnectPlatform

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-west-1"


@dataclass(frozen=True)
class StackConfiguration:
    """Configuration settings for stack deployment.

    Attributes:
        environment: Deployment environment name, e.g. ``dev`` or ``prod``.
        compliance_tier: Optional tier overriding the environment default.
        aws_profile: Optional AWS credentials profile name.
        security_alert_email: Optional address subscribed to security alerts.
        certificate_arn: Optional ACM certificate for the API custom domain.
    """

    environment: str = "dev"
    compliance_tier: str | None = None
    aws_profile: str | None = None
    security_alert_email: str | None = DEFAULT_SECURITY_ALERT_EMAIL
    certificate_arn: str | None = None


def create_deployment_environment(config: StackConfiguration) -> Environment:
    """Creates CDK Environment from configuration.

    Args:
        config: Stack configuration containing environment details.

    Returns:
        CDK Environment with account and region resolved.
    """
    if config.aws_profile:
        session = boto3.Session(profile_name=config.aws_profile)
        sts = session.client("sts")
        account = sts.get_caller_identity()["Account"]
        return Environment(
            account=account,
            region=session.region_name or DEFAULT_REGION,
        )

    return Environment(
        account=os.environ.get("CDK_DEFAULT_ACCOUNT"),
        region=os.environ.get("CDK_DEFAULT_REGION", DEFAULT_REGION),
    )


def initialize_app(
    config: StackConfiguration | None = None,
    app: App | None = None,
) -> App:
    """Initializes and configures the CDK application.

    Args:
        config: Deployment configuration; defaults to a dev deployment.
        app: Optional existing app, e.g. one carrying CDK context.

    Returns:
        Configured CDK App instance ready for synthesis.
    """
    config = config or StackConfiguration()
    app = app or App()
    env = create_deployment_environment(config)

    environment_config = get_environment_config(
        config.environment,
        compliance_tier=config.compliance_tier,
        security_alert_email=config.security_alert_email,
        certificate_arn=config.certificate_arn,
    )
    GybConnectPlatform(app, environment_config, env=env)
    return app


def configuration_from_app(app: App) -> StackConfiguration:
    """Reads the deployment configuration from CDK context and environment."""

    def _setting(context_key: str, env_var: str) -> str | None:
        value = app.node.try_get_context(context_key)
        return str(value) if value else os.environ.get(env_var)

    return StackConfiguration(
        environment=resolve_environment_name(app),
        compliance_tier=_setting("compliance_tier", "COMPLIANCE_TIER"),
        aws_profile=app.node.try_get_context("aws_profile"),
        security_alert_email=(
            _setting("security_alert_email", "SECURITY_ALERT_EMAIL")
            or DEFAULT_SECURITY_ALERT_EMAIL
        ),
        certificate_arn=_setting("certificate_arn", "ACM_CERTIFICATE_ARN"),
    )


def main() -> None:
    """Main execution entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    app = App()
    config = configuration_from_app(app)
    logger.info("Synthesizing GYB Connect for environment %s", config.environment)

    initialize_app(config, app=app)
    app.synth()


if __name__ == "__main__":
    main()
