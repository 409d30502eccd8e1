"""PostgreSQL database for GYB Connect (PCI DSS 1.3, 2.2, 3.4, 4.1)."""

import logging
from typing import Any

from aws_cdk import Duration, Stack, Tags
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_kms as kms
from aws_cdk import aws_rds as rds
from constructs import Construct

from stacks.common import OutputManager, configure_security_checks, ensure_customer_managed_key
from stacks.configs import ComplianceProfile, EnvironmentConfig

logger = logging.getLogger(__name__)

POSTGRES_PORT = 5432
POSTGRES_VERSION = rds.PostgresEngineVersion.of("15.13", "15")
MASTER_USERNAME = "gybconnect_admin"
# Performance Insights is not offered on the smallest burstable sizes
NO_PERFORMANCE_INSIGHTS_SIZES = frozenset({"MICRO", "SMALL"})


def database_nag_suppressions(profile: ComplianceProfile) -> dict[str, str]:
    """Accepted cdk-nag findings for the database under a compliance profile.

    Multi-AZ and deletion protection stay enforced wherever the profile
    turns them on.
    """
    suppressions = {
        "AwsSolutions-SMG4": "Credential rotation is handled by the platform runbook",
        "AwsSolutions-RDS11": "Default PostgreSQL port is required by client tooling",
        "AwsSolutions-IAM4": "Enhanced monitoring role uses the AWS managed policy",
    }
    if not profile.multi_az_database:
        suppressions["AwsSolutions-RDS3"] = (
            f"Single-AZ database is accepted under the {profile.tier.value} compliance tier"
        )
    if not profile.deletion_protection:
        suppressions["AwsSolutions-RDS10"] = (
            f"Disposable database under the {profile.tier.value} compliance tier "
            "is deleted with its stack"
        )
    return suppressions


class RdsStack(Stack):
    """Single PostgreSQL instance placed according to the compliance tier.

    The hardened tier places the database in the data tier of the dedicated
    VPC behind a security group that only admits PostgreSQL from the VPC.
    The basic tier uses the account's default VPC.

    Attributes:
        database: The database instance.
        security_group: Security group attached to the instance.
        output_manager: Manager for consistent output creation.
    """

    database: rds.DatabaseInstance
    security_group: ec2.SecurityGroup
    output_manager: OutputManager

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: EnvironmentConfig,
        vpc: ec2.IVpc | None = None,
        encryption_key: kms.IKey | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self.config = config
        self.encryption_key = encryption_key
        self.output_manager = OutputManager(self, config.name)

        self._vpc, self._subnets = self._resolve_network(vpc)
        self._create_security_group()
        self._create_database()
        self._create_outputs()
        configure_security_checks(self, database_nag_suppressions(config.profile))

    def _resolve_network(
        self,
        vpc: ec2.IVpc | None,
    ) -> tuple[ec2.IVpc, ec2.SubnetSelection]:
        if self.config.profile.dedicated_database_network:
            if vpc is None:
                msg = (
                    f"Database in environment '{self.config.name}' requires the dedicated "
                    "VPC under the hardened compliance tier"
                )
                raise ValueError(msg)
            logger.info("Placing database in the data tier of the dedicated VPC")
            return vpc, ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_ISOLATED)

        logger.info("Placing database in the default VPC")
        default_vpc = ec2.Vpc.from_lookup(self, "DefaultVpc", is_default=True)
        return default_vpc, ec2.SubnetSelection(subnet_type=ec2.SubnetType.PUBLIC)

    def _create_security_group(self) -> None:
        self.security_group = ec2.SecurityGroup(
            self,
            "DatabaseSecurityGroup",
            vpc=self._vpc,
            description="PostgreSQL access from inside the VPC",
            allow_all_outbound=False,
        )
        self.security_group.add_ingress_rule(
            peer=ec2.Peer.ipv4(self._vpc.vpc_cidr_block),
            connection=ec2.Port.tcp(POSTGRES_PORT),
            description="PostgreSQL from VPC CIDR",
        )

    def _create_database(self) -> None:
        use_cmk = ensure_customer_managed_key(self.config, self.encryption_key, "RDS database")
        profile = self.config.profile

        performance_insights = (
            profile.database_instance_size not in NO_PERFORMANCE_INSIGHTS_SIZES
        )

        engine = rds.DatabaseInstanceEngine.postgres(version=POSTGRES_VERSION)
        parameter_group = rds.ParameterGroup(
            self,
            "DatabaseParameterGroup",
            engine=engine,
            description=f"GYB Connect PostgreSQL parameters for {self.config.name}",
            parameters={
                # Reject unencrypted client connections (PCI DSS 4.1)
                "rds.force_ssl": "1",
                "log_connections": "1",
                "log_disconnections": "1",
            },
        )

        self.database = rds.DatabaseInstance(
            self,
            "GybConnectDatabase",
            engine=engine,
            instance_type=ec2.InstanceType.of(
                ec2.InstanceClass.BURSTABLE3,
                getattr(ec2.InstanceSize, profile.database_instance_size),
            ),
            database_name=self.config.database_name,
            credentials=rds.Credentials.from_generated_secret(MASTER_USERNAME),
            vpc=self._vpc,
            vpc_subnets=self._subnets,
            security_groups=[self.security_group],
            publicly_accessible=False,
            parameter_group=parameter_group,
            port=POSTGRES_PORT,
            allow_major_version_upgrade=False,
            auto_minor_version_upgrade=True,
            backup_retention=Duration.days(7),
            deletion_protection=profile.deletion_protection,
            removal_policy=profile.removal_policy,
            multi_az=profile.multi_az_database,
            allocated_storage=20,
            max_allocated_storage=100,
            storage_encrypted=True,
            storage_encryption_key=self.encryption_key if use_cmk else None,
            enable_performance_insights=performance_insights,
            performance_insight_encryption_key=(
                self.encryption_key if use_cmk and performance_insights else None
            ),
            monitoring_interval=Duration.seconds(60),
            cloudwatch_logs_exports=["postgresql"],
        )
        Tags.of(self.database).add("PCI-DSS-Requirement", "3.4")

    def _create_outputs(self) -> None:
        self.output_manager.add_output(
            "DatabaseEndpoint",
            self.database.db_instance_endpoint_address,
            "Hostname of the PostgreSQL instance",
        )
        self.output_manager.add_output(
            "DatabasePort",
            str(POSTGRES_PORT),
            "Port of the PostgreSQL instance",
        )
        if self.database.secret is not None:
            self.output_manager.add_output(
                "DatabaseSecretArn",
                self.database.secret.secret_arn,
                "Secrets Manager ARN of the master credentials",
            )
