"""Wires the GYB Connect stacks into one deployable application.

Stacks are created in dependency order, cross-stack references are passed
explicitly, and ordering edges that references alone do not imply are
declared through ``DEPENDENCY_EDGES``.
"""

import logging
from typing import Final

from aws_cdk import App, Environment, Stack

from stacks.configs import EnvironmentConfig
from stacks.edge import ApiGatewayStack
from stacks.identity import IamStack, IamStackProps
from stacks.kms import KmsStack
from stacks.network import VpcStack
from stacks.observability import LoggingStack
from stacks.security import ThreatDetectionStack
from stacks.storage import DynamoDBStack, RdsStack, S3Stack

logger = logging.getLogger(__name__)

APP_NAME: Final[str] = "GybConnect"

# (dependent, dependency, reason)
DEPENDENCY_EDGES: Final[tuple[tuple[str, str, str], ...]] = (
    ("s3", "kms", "S3 bucket encryption requires the S3 KMS key"),
    ("dynamodb", "kms", "DynamoDB table encryption requires the DynamoDB KMS key"),
    ("iam", "s3", "IAM policies reference the uploads bucket ARN"),
    ("iam", "dynamodb", "IAM policies reference the user logs table ARN"),
    ("iam", "kms", "IAM policies reference the data key ARNs"),
    ("logging", "kms", "Log encryption requires the logging KMS key"),
    ("rds", "kms", "RDS storage encryption requires the RDS KMS key"),
    ("rds", "vpc", "RDS placement requires the data tier of the VPC"),
    ("api", "iam", "API integrations assume the API Lambda execution role"),
)

STACK_DESCRIPTIONS: Final[dict[str, str]] = {
    "kms": "KMS encryption keys for PCI DSS compliance",
    "security": "GuardDuty, Inspector and Security Hub threat detection",
    "vpc": "Three-tier VPC with network ACLs and flow logs",
    "s3": "Encrypted S3 storage for user uploads",
    "dynamodb": "Encrypted DynamoDB storage for user activity logs",
    "iam": "Least-privilege IAM roles with MFA permissions boundary",
    "logging": "Centralized CloudTrail logging and security alerting",
    "rds": "Encrypted PostgreSQL database",
    "api": "HTTP API front door with optional custom domain",
}


class GybConnectPlatform:
    """All GYB Connect stacks for one environment.

    Attributes:
        config: Environment configuration shared by every stack.
        stacks: Stack per short name, in creation order.
    """

    def __init__(
        self,
        app: App,
        config: EnvironmentConfig,
        env: Environment | None = None,
    ) -> None:
        self.app = app
        self.config = config
        self.env = env
        self.stacks: dict[str, Stack] = {}

        logger.info(
            "Building %s platform for environment %s (%s tier)",
            APP_NAME,
            config.name,
            config.profile.tier.value,
        )

        self.kms = self._add("kms", KmsStack, "KmsStack")
        self.security = self._add("security", ThreatDetectionStack, "SecurityStack")
        self.vpc = self._add("vpc", VpcStack, "VpcStack")
        self.s3 = self._add(
            "s3",
            S3Stack,
            "S3Stack",
            encryption_key=self.kms.s3_key,
        )
        self.dynamodb = self._add(
            "dynamodb",
            DynamoDBStack,
            "DynamoDBStack",
            encryption_key=self.kms.dynamodb_key,
        )
        self.iam = self._add(
            "iam",
            IamStack,
            "IAMStack",
            props=IamStackProps(
                bucket_arn=self.s3.bucket.bucket_arn,
                table_arn=self.dynamodb.table.table_arn,
                key_arns=(self.kms.s3_key.key_arn, self.kms.dynamodb_key.key_arn),
            ),
        )
        self.logging = self._add(
            "logging",
            LoggingStack,
            "LoggingStack",
            logging_key=self.kms.logging_key,
        )
        self.rds = self._add(
            "rds",
            RdsStack,
            "RDSStack",
            vpc=self.vpc.vpc,
            encryption_key=self.kms.rds_key,
        )
        self.api = self._add(
            "api",
            ApiGatewayStack,
            "ApiGatewayStack",
            domain_name=config.api_domain_name,
            certificate_arn=config.certificate_arn,
        )

        self._add_dependencies()

    def _add(self, name: str, stack_class: type, suffix: str, **kwargs) -> Stack:
        stack = stack_class(
            self.app,
            f"{APP_NAME}-{suffix}",
            config=self.config,
            env=self.env,
            description=STACK_DESCRIPTIONS[name],
            tags={
                "Environment": self.config.name,
                "Application": APP_NAME,
                "ComplianceFramework": "PCI-DSS",
                "ComplianceTier": self.config.profile.tier.value,
                "ManagedBy": "AWS-CDK",
            },
            **kwargs,
        )
        self.stacks[name] = stack
        return stack

    def _add_dependencies(self) -> None:
        for dependent, dependency, reason in DEPENDENCY_EDGES:
            self.stacks[dependent].add_dependency(self.stacks[dependency], reason)
