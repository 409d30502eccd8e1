"""Customer-managed KMS keys for GYB Connect (PCI DSS 3.5, 3.6).

One key is created per consuming resource group so that access to each data
store can be revoked or audited independently.
"""

import logging
from dataclasses import dataclass
from typing import Any, Final, cast

from aws_cdk import Aws, Duration, Stack
from aws_cdk import aws_iam as iam
from aws_cdk import aws_kms as kms
from constructs import Construct

from stacks.common import OutputManager, configure_security_checks
from stacks.configs import EnvironmentConfig

logger = logging.getLogger(__name__)

SERVICE_KEY_ACTIONS: Final[list[str]] = [
    "kms:Decrypt",
    "kms:GenerateDataKey*",
    "kms:ReEncrypt*",
    "kms:DescribeKey",
]


@dataclass(frozen=True)
class KeySpec:
    """Declarative description of one customer-managed key.

    Attributes:
        name: Short name used in the alias and output ids, e.g. ``s3``.
        output_name: CamelCase prefix for the key outputs, e.g. ``S3``.
        purpose: Human-readable purpose used in the key description.
        services: Service principals allowed to use the key.
        allow_grants: Whether the services may also create grants.
    """

    name: str
    output_name: str
    purpose: str
    services: tuple[str, ...]
    allow_grants: bool = True


KEY_SPECS: Final[tuple[KeySpec, ...]] = (
    KeySpec(
        name="s3",
        output_name="S3",
        purpose="S3 bucket encryption",
        services=("s3.amazonaws.com",),
        allow_grants=False,
    ),
    KeySpec(
        name="rds",
        output_name="RDS",
        purpose="RDS database encryption",
        services=("rds.amazonaws.com",),
    ),
    KeySpec(
        name="dynamodb",
        output_name="DynamoDB",
        purpose="DynamoDB table encryption",
        services=("dynamodb.amazonaws.com",),
    ),
    KeySpec(
        name="macie",
        output_name="Macie",
        purpose="Macie sensitive data discovery results",
        services=("macie.amazonaws.com",),
    ),
    KeySpec(
        name="logging",
        output_name="Logging",
        purpose="CloudTrail, CloudWatch Logs and SNS encryption",
        services=(
            "cloudtrail.amazonaws.com",
            f"logs.{Aws.REGION}.amazonaws.com",
            "sns.amazonaws.com",
            "events.amazonaws.com",
            "cloudwatch.amazonaws.com",
        ),
    ),
)


def build_key_policy(spec: KeySpec) -> iam.PolicyDocument:
    """Builds the key policy for a key spec.

    The account root keeps full administrative access so IAM policies can
    delegate use of the key; each service gets data-key operations only.
    """
    statements = [
        iam.PolicyStatement(
            sid="EnableIAMUserPermissions",
            effect=iam.Effect.ALLOW,
            principals=[cast("iam.IPrincipal", iam.AccountRootPrincipal())],
            actions=["kms:*"],
            resources=["*"],
        ),
    ]
    actions = [*SERVICE_KEY_ACTIONS]
    if spec.allow_grants:
        actions.append("kms:CreateGrant")

    for service in spec.services:
        service_label = service.split(".")[0].replace("-", " ").title().replace(" ", "")
        statements.append(
            iam.PolicyStatement(
                sid=f"Allow{service_label}Service",
                effect=iam.Effect.ALLOW,
                principals=[cast("iam.IPrincipal", iam.ServicePrincipal(service))],
                actions=actions,
                resources=["*"],
            ),
        )
    return iam.PolicyDocument(statements=statements)


class KmsStack(Stack):
    """Customer-managed encryption keys, one per consuming resource group.

    Attributes:
        keys: Mapping of key name to the created key.
        output_manager: Manager for consistent output creation.
    """

    keys: dict[str, kms.Key]
    output_manager: OutputManager

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: EnvironmentConfig,
        **kwargs: Any,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self.config = config
        self.output_manager = OutputManager(self, config.name)

        self.keys = {spec.name: self._create_key(spec) for spec in KEY_SPECS}
        self._create_outputs()
        configure_security_checks(self, {})

    @property
    def s3_key(self) -> kms.Key:
        return self.keys["s3"]

    @property
    def rds_key(self) -> kms.Key:
        return self.keys["rds"]

    @property
    def dynamodb_key(self) -> kms.Key:
        return self.keys["dynamodb"]

    @property
    def macie_key(self) -> kms.Key:
        return self.keys["macie"]

    @property
    def logging_key(self) -> kms.Key:
        return self.keys["logging"]

    def _create_key(self, spec: KeySpec) -> kms.Key:
        logger.info("Creating %s key for environment %s", spec.name, self.config.name)
        return kms.Key(
            self,
            f"{spec.output_name}EncryptionKey",
            description=(
                f"Customer-managed key for {spec.purpose} in {self.config.name} environment"
            ),
            alias=f"alias/{self.config.name}/gyb-connect/{spec.name}",
            enable_key_rotation=True,
            policy=build_key_policy(spec),
            removal_policy=self.config.profile.removal_policy,
            pending_window=None if self.config.profile.retain_data else Duration.days(7),
        )

    def _create_outputs(self) -> None:
        for spec in KEY_SPECS:
            key = self.keys[spec.name]
            self.output_manager.add_output(
                f"{spec.output_name}KeyId",
                key.key_id,
                f"{spec.output_name} encryption key id",
            )
            self.output_manager.add_output(
                f"{spec.output_name}KeyArn",
                key.key_arn,
                f"{spec.output_name} encryption key ARN",
            )
