"""Least-privilege roles for GYB Connect (PCI DSS 7.1, 7.2, 8.3).

Every role carries the shared MFA permissions boundary. Human access is
federated through IAM Identity Center over SAML; workloads assume roles
through their service principals.
"""

import logging
from dataclasses import dataclass
from typing import Any, Final, cast

from aws_cdk import Aws, CfnTag, Duration, Stack, Tags
from aws_cdk import aws_accessanalyzer as accessanalyzer
from aws_cdk import aws_iam as iam
from constructs import Construct

from stacks.common import OutputManager, configure_security_checks
from stacks.configs import EnvironmentConfig

from .policies import (
    api_lambda_policy,
    compliance_auditor_policy,
    data_processing_policy,
    mfa_boundary_policy,
)

logger = logging.getLogger(__name__)

SAML_AUDIENCE: Final[str] = "https://signin.aws.amazon.com/saml"
HUMAN_SESSION_DURATION: Final[Duration] = Duration.hours(1)


@dataclass(frozen=True)
class IamStackProps:
    """Resource ARNs the roles are scoped to.

    Attributes:
        bucket_arn: ARN of the uploads bucket.
        table_arn: ARN of the user logs table.
        key_arns: ARNs of the keys protecting the bucket and the table.
        saml_provider_name: Name of the Identity Center SAML provider.
    """

    bucket_arn: str
    table_arn: str
    key_arns: tuple[str, ...]
    saml_provider_name: str = "IdentityCenter"

    def __post_init__(self):
        if not self.key_arns:
            msg = "At least one key ARN is required to scope kms permissions"
            raise ValueError(msg)


class IamStack(Stack):
    """Workload and human roles with a shared permissions boundary.

    Attributes:
        boundary_policy: Managed policy used as permissions boundary.
        api_lambda_role: Execution role of the API Lambda functions.
        data_processing_role: Role of batch processing tasks.
        read_only_role: Federated read-only role for engineers.
        compliance_auditor_role: Federated role for auditors.
        output_manager: Manager for consistent output creation.
    """

    boundary_policy: iam.ManagedPolicy
    api_lambda_role: iam.Role
    data_processing_role: iam.Role
    read_only_role: iam.Role
    compliance_auditor_role: iam.Role
    output_manager: OutputManager

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: EnvironmentConfig,
        props: IamStackProps,
        **kwargs: Any,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self.config = config
        self._props = props
        self.output_manager = OutputManager(self, config.name)

        self._create_boundary_policy()
        self._create_workload_roles()
        self._create_human_roles()
        self._create_access_analyzer()
        self._create_outputs()
        configure_security_checks(
            self,
            {
                "AwsSolutions-IAM4": "Lambda basic execution and ReadOnlyAccess are AWS managed by intent",
                "AwsSolutions-IAM5": "Index and object wildcards are scoped to a single table and bucket",
            },
        )

    def _create_boundary_policy(self) -> None:
        self.boundary_policy = iam.ManagedPolicy(
            self,
            "MFABoundaryPolicy",
            managed_policy_name=f"{self.config.name}-mfa-boundary-policy",
            description="Permissions boundary requiring MFA for interactive sessions",
            document=mfa_boundary_policy(),
        )

    def _saml_principal(self) -> iam.IPrincipal:
        provider_arn = (
            f"arn:aws:iam::{Aws.ACCOUNT_ID}:saml-provider/{self._props.saml_provider_name}"
        )
        return cast(
            "iam.IPrincipal",
            iam.FederatedPrincipal(
                provider_arn,
                conditions={"StringEquals": {"SAML:aud": SAML_AUDIENCE}},
                assume_role_action="sts:AssumeRoleWithSAML",
            ),
        )

    def _tag_role(self, role: iam.Role, requirement: str, purpose: str) -> None:
        Tags.of(role).add("Environment", self.config.name)
        Tags.of(role).add("PCI-DSS-Requirement", requirement)
        Tags.of(role).add("Purpose", purpose)

    def _create_workload_roles(self) -> None:
        props = self._props
        logger.info("Creating workload roles scoped to %d keys", len(props.key_arns))

        self.api_lambda_role = iam.Role(
            self,
            "ApiLambdaExecutionRole",
            role_name=f"{self.config.name}-gyb-api-lambda-role",
            description="Execution role for GYB Connect API Lambda functions",
            assumed_by=cast("iam.IPrincipal", iam.ServicePrincipal("lambda.amazonaws.com")),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name(
                    "service-role/AWSLambdaBasicExecutionRole",
                ),
            ],
            inline_policies={
                "ApiLambdaPolicy": api_lambda_policy(
                    props.bucket_arn,
                    props.table_arn,
                    props.key_arns,
                ),
            },
            permissions_boundary=self.boundary_policy,
        )
        self._tag_role(self.api_lambda_role, "7.1", "API-Lambda-Execution")

        self.data_processing_role = iam.Role(
            self,
            "DataProcessingRole",
            role_name=f"{self.config.name}-gyb-data-processing-role",
            description="Role for GYB Connect batch data processing",
            assumed_by=cast(
                "iam.IPrincipal",
                iam.CompositePrincipal(
                    iam.ServicePrincipal("lambda.amazonaws.com"),
                    iam.ServicePrincipal("ecs-tasks.amazonaws.com"),
                ),
            ),
            inline_policies={
                "DataProcessingPolicy": data_processing_policy(
                    props.bucket_arn,
                    props.table_arn,
                    props.key_arns,
                ),
            },
            permissions_boundary=self.boundary_policy,
        )
        self._tag_role(self.data_processing_role, "7.1", "Data-Processing")

    def _create_human_roles(self) -> None:
        self.read_only_role = iam.Role(
            self,
            "ReadOnlyAccessRole",
            role_name=f"{self.config.name}-gyb-readonly-role",
            description="Federated read-only access for engineers",
            assumed_by=self._saml_principal(),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name("ReadOnlyAccess"),
            ],
            max_session_duration=HUMAN_SESSION_DURATION,
            permissions_boundary=self.boundary_policy,
        )
        self._tag_role(self.read_only_role, "7.2", "Read-Only-Access")

        self.compliance_auditor_role = iam.Role(
            self,
            "ComplianceAuditorRole",
            role_name=f"{self.config.name}-gyb-compliance-auditor-role",
            description="Federated access to audit evidence for compliance reviews",
            assumed_by=self._saml_principal(),
            inline_policies={"ComplianceAuditorPolicy": compliance_auditor_policy()},
            max_session_duration=HUMAN_SESSION_DURATION,
            permissions_boundary=self.boundary_policy,
        )
        self._tag_role(self.compliance_auditor_role, "10.7", "Compliance-Audit")

    def _create_access_analyzer(self) -> None:
        """Flags resources shared outside the account (PCI DSS 7.1)."""
        accessanalyzer.CfnAnalyzer(
            self,
            "AccessAnalyzer",
            type="ACCOUNT",
            analyzer_name=f"{self.config.name}-gyb-access-analyzer",
            tags=[
                CfnTag(key="Environment", value=self.config.name),
                CfnTag(key="PCI-DSS-Requirement", value="7.1"),
            ],
        )

    def _create_outputs(self) -> None:
        roles = {
            "ApiLambdaRoleArn": (self.api_lambda_role, "API Lambda execution role ARN"),
            "DataProcessingRoleArn": (self.data_processing_role, "Data processing role ARN"),
            "ReadOnlyRoleArn": (self.read_only_role, "Federated read-only role ARN"),
            "ComplianceAuditorRoleArn": (
                self.compliance_auditor_role,
                "Federated compliance auditor role ARN",
            ),
        }
        for output_id, (role, description) in roles.items():
            self.output_manager.add_output(output_id, role.role_arn, description)
