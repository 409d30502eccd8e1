"""User activity log table for GYB Connect (PCI DSS 3.4, 10.2)."""

import logging
from typing import Any

from aws_cdk import Stack, Tags
from aws_cdk import aws_dynamodb as dynamodb
from aws_cdk import aws_kms as kms
from constructs import Construct

from stacks.common import OutputManager, configure_security_checks, ensure_customer_managed_key
from stacks.configs import EnvironmentConfig

logger = logging.getLogger(__name__)

TTL_ATTRIBUTE = "ttl"
ACTION_TYPE_INDEX = "ActionTypeIndex"


class DynamoDBStack(Stack):
    """On-demand table keyed by user and timestamp.

    Attributes:
        table: The user logs table.
        output_manager: Manager for consistent output creation.
    """

    table: dynamodb.Table
    output_manager: OutputManager

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: EnvironmentConfig,
        encryption_key: kms.IKey | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self.config = config
        self.encryption_key = encryption_key
        self.output_manager = OutputManager(self, config.name)

        self._create_table()
        self._create_outputs()
        configure_security_checks(self, {})

    def _create_table(self) -> None:
        use_cmk = ensure_customer_managed_key(
            self.config,
            self.encryption_key,
            "DynamoDB user logs table",
        )
        self.table = dynamodb.Table(
            self,
            "GybUserLogsTable",
            table_name=f"{self.config.name}-gyb-user-logs",
            partition_key=dynamodb.Attribute(
                name="userId",
                type=dynamodb.AttributeType.STRING,
            ),
            sort_key=dynamodb.Attribute(
                name="timestamp",
                type=dynamodb.AttributeType.STRING,
            ),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            time_to_live_attribute=TTL_ATTRIBUTE,
            encryption=(
                dynamodb.TableEncryption.CUSTOMER_MANAGED
                if use_cmk
                else dynamodb.TableEncryption.AWS_MANAGED
            ),
            encryption_key=self.encryption_key if use_cmk else None,
            point_in_time_recovery_specification=dynamodb.PointInTimeRecoverySpecification(
                point_in_time_recovery_enabled=self.config.profile.point_in_time_recovery,
            ),
            removal_policy=self.config.profile.removal_policy,
        )
        # Queries by action type across users, e.g. all logins in a time window
        self.table.add_global_secondary_index(
            index_name=ACTION_TYPE_INDEX,
            partition_key=dynamodb.Attribute(
                name="actionType",
                type=dynamodb.AttributeType.STRING,
            ),
            sort_key=dynamodb.Attribute(
                name="timestamp",
                type=dynamodb.AttributeType.STRING,
            ),
            projection_type=dynamodb.ProjectionType.ALL,
        )
        Tags.of(self.table).add("PCI-DSS-Requirement", "10.2")

    def _create_outputs(self) -> None:
        self.output_manager.add_output(
            "DynamoDBTableName",
            self.table.table_name,
            "Name of the user logs table",
        )
        self.output_manager.add_output(
            "DynamoDBTableArn",
            self.table.table_arn,
            "ARN of the user logs table",
        )
