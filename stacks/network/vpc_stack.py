"""Three-tier VPC for GYB Connect (PCI DSS 1.2, 1.3, 10.2).

Architecture:
    - Public, private and data subnets in each availability zone
    - Gateway endpoints for S3 and DynamoDB, KMS interface endpoint in the data tier
    - One network ACL per tier generated from ``nacl_rules``
    - VPC Flow Logs to CloudWatch Logs and to an archival S3 bucket
"""

import logging
from dataclasses import dataclass
from typing import Any, cast

from aws_cdk import Aws, Duration, Fn, RemovalPolicy, Stack, Tags
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_iam as iam
from aws_cdk import aws_logs as logs
from aws_cdk import aws_s3 as s3
from cdk_nag import NagPackSuppression, NagSuppressions
from constructs import Construct

from stacks.common import OutputManager, configure_security_checks
from stacks.configs import EnvironmentConfig

from .nacl_rules import (
    DATA_TIER,
    PRIVATE_TIER,
    PUBLIC_TIER,
    Direction,
    NaclEntry,
    TierCidrs,
    build_tier_entries,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VpcStackProps:
    """Configuration properties for the VPC stack.

    Attributes:
        vpc_cidr: CIDR block for the VPC.
        max_azs: Maximum number of availability zones to span.
        nat_gateways: Number of NAT gateways for the private tier.
        subnet_cidr_mask: Prefix length of every tier subnet.
        flow_logs_retention: CloudWatch retention of VPC Flow Logs.
        flow_logs_expiration_days: Days before archived flow logs expire.
    """

    vpc_cidr: str = "10.0.0.0/16"
    max_azs: int = 2
    nat_gateways: int = 1
    subnet_cidr_mask: int = 24
    flow_logs_retention: logs.RetentionDays = logs.RetentionDays.ONE_YEAR
    flow_logs_expiration_days: int = 2555

    @classmethod
    def from_config(cls, config: EnvironmentConfig) -> "VpcStackProps":
        return cls(
            vpc_cidr=config.vpc_cidr,
            max_azs=config.max_azs,
            nat_gateways=config.max_azs if config.profile.retain_data else 1,
        )


class VpcStack(Stack):
    """Isolated three-tier network with NACLs, endpoints and flow logs.

    Attributes:
        vpc: The created VPC.
        network_acls: NACL per tier name.
        vpc_endpoints_security_group: Security group guarding interface endpoints.
        flow_logs_bucket: Archival bucket for flow logs.
        flow_logs_log_group: CloudWatch log group for flow logs.
        flow_logs_role: Role used by the flow log service to write to CloudWatch.
        output_manager: Manager for consistent output creation.
    """

    vpc: ec2.Vpc
    network_acls: dict[str, ec2.NetworkAcl]
    vpc_endpoints_security_group: ec2.SecurityGroup
    flow_logs_bucket: s3.Bucket
    flow_logs_log_group: logs.LogGroup
    flow_logs_role: iam.Role
    output_manager: OutputManager

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: EnvironmentConfig,
        props: VpcStackProps | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self.config = config
        self._props = props or VpcStackProps.from_config(config)
        self.output_manager = OutputManager(self, config.name)

        self._create_vpc()
        self._create_vpc_endpoints()
        self._create_flow_logs()
        self._create_network_acls()
        self._create_outputs()
        configure_security_checks(
            self,
            {
                "AwsSolutions-S1": "Flow log bucket is itself the access log destination",
            },
        )

    def _create_vpc(self) -> None:
        logger.info(
            "Creating VPC %s across %d AZs for environment %s",
            self._props.vpc_cidr,
            self._props.max_azs,
            self.config.name,
        )
        self.vpc = ec2.Vpc(
            self,
            "GybConnectVpc",
            vpc_name=f"gyb-connect-vpc-{self.config.name}",
            ip_addresses=ec2.IpAddresses.cidr(self._props.vpc_cidr),
            max_azs=self._props.max_azs,
            nat_gateways=self._props.nat_gateways,
            enable_dns_hostnames=True,
            enable_dns_support=True,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name=PUBLIC_TIER,
                    cidr_mask=self._props.subnet_cidr_mask,
                    subnet_type=ec2.SubnetType.PUBLIC,
                ),
                ec2.SubnetConfiguration(
                    name=PRIVATE_TIER,
                    cidr_mask=self._props.subnet_cidr_mask,
                    subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS,
                ),
                ec2.SubnetConfiguration(
                    name=DATA_TIER,
                    cidr_mask=self._props.subnet_cidr_mask,
                    subnet_type=ec2.SubnetType.PRIVATE_ISOLATED,
                ),
            ],
        )
        Tags.of(self.vpc).add("PCI-DSS-Requirement", "1.2")

    def _create_vpc_endpoints(self) -> None:
        """Keeps S3, DynamoDB and KMS traffic off the internet."""
        self.vpc.add_gateway_endpoint(
            "S3GatewayEndpoint",
            service=ec2.GatewayVpcEndpointAwsService.S3,
        )
        self.vpc.add_gateway_endpoint(
            "DynamoDBGatewayEndpoint",
            service=ec2.GatewayVpcEndpointAwsService.DYNAMODB,
        )

        self.vpc_endpoints_security_group = ec2.SecurityGroup(
            self,
            "VpcEndpointsSecurityGroup",
            vpc=self.vpc,
            description="HTTPS from the VPC to interface endpoints",
            allow_all_outbound=False,
        )
        self.vpc_endpoints_security_group.add_ingress_rule(
            peer=ec2.Peer.ipv4(self.vpc.vpc_cidr_block),
            connection=ec2.Port.tcp(443),
            description="HTTPS from VPC CIDR",
        )
        NagSuppressions.add_resource_suppressions(
            self.vpc_endpoints_security_group,
            [
                NagPackSuppression(
                    id="AwsSolutions-EC23",
                    reason="Intrinsic function is required for dynamic CIDR assignment.",
                ),
            ],
            apply_to_children=True,
        )

        self.vpc.add_interface_endpoint(
            "KmsInterfaceEndpoint",
            service=ec2.InterfaceVpcEndpointAwsService.KMS,
            subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_ISOLATED),
            security_groups=[self.vpc_endpoints_security_group],
            private_dns_enabled=True,
        )

    def _create_flow_logs(self) -> None:
        """Sends all VPC traffic metadata to CloudWatch and to S3 (PCI DSS 10.2)."""
        self.flow_logs_log_group = logs.LogGroup(
            self,
            "VpcFlowLogsGroup",
            log_group_name=f"/aws/vpc/flowlogs/gyb-connect-{self.config.name}",
            retention=self._props.flow_logs_retention,
            removal_policy=RemovalPolicy.RETAIN,
        )

        self.flow_logs_role = iam.Role(
            self,
            "VpcFlowLogsRole",
            role_name=f"gyb-connect-vpc-flow-logs-role-{self.config.name}",
            assumed_by=cast(
                "iam.IPrincipal",
                iam.ServicePrincipal("vpc-flow-logs.amazonaws.com"),
            ),
            inline_policies={
                "FlowLogsDeliveryRolePolicy": iam.PolicyDocument(
                    statements=[
                        iam.PolicyStatement(
                            effect=iam.Effect.ALLOW,
                            actions=[
                                "logs:CreateLogGroup",
                                "logs:CreateLogStream",
                                "logs:PutLogEvents",
                                "logs:DescribeLogGroups",
                                "logs:DescribeLogStreams",
                            ],
                            resources=[
                                self.flow_logs_log_group.log_group_arn,
                                f"{self.flow_logs_log_group.log_group_arn}:*",
                            ],
                        ),
                    ],
                ),
            },
        )
        NagSuppressions.add_resource_suppressions(
            self.flow_logs_role,
            [
                NagPackSuppression(
                    id="AwsSolutions-IAM5",
                    reason="Flow logs create log streams with generated names under the group.",
                ),
            ],
            apply_to_children=True,
        )

        self.flow_logs_bucket = s3.Bucket(
            self,
            "VpcFlowLogsBucket",
            bucket_name=f"gyb-connect-vpc-flow-logs-{self.config.name}-{Aws.ACCOUNT_ID}-{Aws.REGION}",
            versioned=True,
            encryption=s3.BucketEncryption.S3_MANAGED,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            enforce_ssl=True,
            removal_policy=RemovalPolicy.RETAIN,
            lifecycle_rules=[
                s3.LifecycleRule(
                    id="VpcFlowLogsRetention",
                    enabled=True,
                    transitions=[
                        s3.Transition(
                            storage_class=s3.StorageClass.INFREQUENT_ACCESS,
                            transition_after=Duration.days(30),
                        ),
                        s3.Transition(
                            storage_class=s3.StorageClass.GLACIER,
                            transition_after=Duration.days(90),
                        ),
                        s3.Transition(
                            storage_class=s3.StorageClass.DEEP_ARCHIVE,
                            transition_after=Duration.days(365),
                        ),
                    ],
                    expiration=Duration.days(self._props.flow_logs_expiration_days),
                ),
            ],
        )

        ec2.FlowLog(
            self,
            "VpcFlowLogsCloudWatch",
            flow_log_name=f"gyb-connect-vpc-flow-logs-cw-{self.config.name}",
            resource_type=ec2.FlowLogResourceType.from_vpc(self.vpc),
            destination=ec2.FlowLogDestination.to_cloud_watch_logs(
                self.flow_logs_log_group,
                self.flow_logs_role,
            ),
            traffic_type=ec2.FlowLogTrafficType.ALL,
            max_aggregation_interval=ec2.FlowLogMaxAggregationInterval.ONE_MINUTE,
        )
        ec2.FlowLog(
            self,
            "VpcFlowLogsS3",
            flow_log_name=f"gyb-connect-vpc-flow-logs-s3-{self.config.name}",
            resource_type=ec2.FlowLogResourceType.from_vpc(self.vpc),
            destination=ec2.FlowLogDestination.to_s3(
                self.flow_logs_bucket,
                "vpc-flow-logs/",
            ),
            traffic_type=ec2.FlowLogTrafficType.ALL,
            max_aggregation_interval=ec2.FlowLogMaxAggregationInterval.ONE_MINUTE,
        )

    def _tier_cidrs(self) -> TierCidrs:
        return TierCidrs(
            public=[subnet.ipv4_cidr_block for subnet in self.vpc.public_subnets],
            private=[subnet.ipv4_cidr_block for subnet in self.vpc.private_subnets],
            data=[subnet.ipv4_cidr_block for subnet in self.vpc.isolated_subnets],
        )

    def _tier_subnets(self, tier: str) -> list[ec2.ISubnet]:
        return {
            PUBLIC_TIER: self.vpc.public_subnets,
            PRIVATE_TIER: self.vpc.private_subnets,
            DATA_TIER: self.vpc.isolated_subnets,
        }[tier]

    def _create_network_acls(self) -> None:
        """Creates one NACL per tier and associates it with the tier's subnets."""
        self.network_acls = {}
        for tier, entries in build_tier_entries(self._tier_cidrs()).items():
            nacl = ec2.NetworkAcl(
                self,
                f"{tier.title()}NetworkAcl",
                vpc=self.vpc,
                network_acl_name=f"gyb-connect-{tier}-nacl-{self.config.name}",
                subnet_selection=ec2.SubnetSelection(subnets=self._tier_subnets(tier)),
            )
            for entry in entries:
                self._add_entry(nacl, entry)
            Tags.of(nacl).add("Tier", tier)
            Tags.of(nacl).add("PCI-DSS-Requirement", "1.3")
            self.network_acls[tier] = nacl
            logger.info("Created %s NACL with %d entries", tier, len(entries))

    @staticmethod
    def _add_entry(nacl: ec2.NetworkAcl, entry: NaclEntry) -> None:
        if entry.is_single_port:
            traffic = ec2.AclTraffic.tcp_port(entry.port_from)
        else:
            traffic = ec2.AclTraffic.tcp_port_range(entry.port_from, entry.port_to)
        nacl.add_entry(
            entry.entry_id,
            cidr=ec2.AclCidr.any_ipv4() if entry.is_any_ipv4 else ec2.AclCidr.ipv4(entry.cidr),
            rule_number=entry.rule_number,
            traffic=traffic,
            direction=(
                ec2.TrafficDirection.INGRESS
                if entry.direction is Direction.INGRESS
                else ec2.TrafficDirection.EGRESS
            ),
            rule_action=ec2.Action.ALLOW,
        )

    def _create_outputs(self) -> None:
        om = self.output_manager
        om.add_output("VpcId", self.vpc.vpc_id, "GYB Connect VPC id")
        om.add_output("VpcCidr", self.vpc.vpc_cidr_block, "GYB Connect VPC CIDR block")
        om.add_output("VpcArn", self.vpc.vpc_arn, "GYB Connect VPC ARN")

        for tier in (PUBLIC_TIER, PRIVATE_TIER, DATA_TIER):
            subnets = self._tier_subnets(tier)
            label = tier.title()
            om.add_output(
                f"{label}SubnetIds",
                Fn.join(",", [subnet.subnet_id for subnet in subnets]),
                f"Comma-separated {tier} subnet ids",
            )
            om.add_output(
                f"{label}SubnetCidrs",
                Fn.join(",", [subnet.ipv4_cidr_block for subnet in subnets]),
                f"Comma-separated {tier} subnet CIDR blocks",
            )
            om.add_output(
                f"{label}NaclId",
                self.network_acls[tier].network_acl_id,
                f"Network ACL id of the {tier} tier",
            )

        om.add_output(
            "AvailabilityZones",
            Fn.join(",", self.vpc.availability_zones),
            "Comma-separated availability zones used by the VPC",
        )
        om.add_output(
            "InternetGatewayId",
            cast(str, self.vpc.internet_gateway_id),
            "Internet gateway id of the VPC",
        )
        om.add_output(
            "VpcEndpointSecurityGroupId",
            self.vpc_endpoints_security_group.security_group_id,
            "Security group id guarding interface endpoints",
        )
        om.add_output(
            "VpcFlowLogsBucketName",
            self.flow_logs_bucket.bucket_name,
            "Bucket archiving VPC Flow Logs",
        )
        om.add_output(
            "VpcFlowLogsBucketArn",
            self.flow_logs_bucket.bucket_arn,
            "ARN of the bucket archiving VPC Flow Logs",
        )
        om.add_output(
            "VpcFlowLogsLogGroupName",
            self.flow_logs_log_group.log_group_name,
            "CloudWatch log group receiving VPC Flow Logs",
        )
        om.add_output(
            "VpcFlowLogsLogGroupArn",
            self.flow_logs_log_group.log_group_arn,
            "ARN of the CloudWatch log group receiving VPC Flow Logs",
        )
        om.add_output(
            "VpcFlowLogsRoleArn",
            self.flow_logs_role.role_arn,
            "Role used to deliver VPC Flow Logs to CloudWatch",
        )
