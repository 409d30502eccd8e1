"""IAM policy documents for GYB Connect roles (PCI DSS 7.1, 7.2, 8.3).

Builders take plain ARNs so they can be used with resources from other
stacks and unit tested without synthesizing a stack.
"""

from collections.abc import Sequence
from typing import Final

from aws_cdk import aws_iam as iam

API_S3_OBJECT_ACTIONS: Final[list[str]] = [
    "s3:GetObject",
    "s3:PutObject",
    "s3:DeleteObject",
]
API_DYNAMODB_ACTIONS: Final[list[str]] = [
    "dynamodb:GetItem",
    "dynamodb:PutItem",
    "dynamodb:Query",
    "dynamodb:UpdateItem",
]
DATA_PROCESSING_DYNAMODB_ACTIONS: Final[list[str]] = [
    "dynamodb:BatchGetItem",
    "dynamodb:BatchWriteItem",
    "dynamodb:Query",
    "dynamodb:Scan",
]
KMS_DATA_ACTIONS: Final[list[str]] = [
    "kms:Decrypt",
    "kms:GenerateDataKey",
]
BASIC_EXECUTION_ACTIONS: Final[list[str]] = [
    "logs:CreateLogGroup",
    "logs:CreateLogStream",
    "logs:PutLogEvents",
]
AUDIT_READ_ACTIONS: Final[list[str]] = [
    "cloudtrail:LookupEvents",
    "cloudtrail:GetTrailStatus",
    "cloudtrail:DescribeTrails",
    "securityhub:GetFindings",
    "securityhub:GetInsights",
    "guardduty:GetFindings",
    "guardduty:ListFindings",
    "kms:DescribeKey",
    "kms:GetKeyPolicy",
    "kms:GetKeyRotationStatus",
    "iam:GetAccountPasswordPolicy",
    "iam:GetAccountSummary",
    "iam:GetCredentialReport",
]
# Read access granted through the ReadOnlyAccess managed policy, capped to the
# services the platform runs on
READ_ONLY_BOUNDARY_ACTIONS: Final[list[str]] = [
    "s3:Get*",
    "s3:List*",
    "dynamodb:Describe*",
    "dynamodb:List*",
    "rds:Describe*",
    "rds:List*",
    "ec2:Describe*",
    "kms:List*",
    "logs:Describe*",
    "logs:Get*",
    "logs:FilterLogEvents",
    "cloudwatch:Describe*",
    "cloudwatch:Get*",
    "cloudwatch:List*",
    "apigateway:GET",
    "iam:Get*",
    "iam:List*",
]
MFA_BOOTSTRAP_ACTIONS: Final[list[str]] = [
    "iam:CreateVirtualMFADevice",
    "iam:EnableMFADevice",
    "iam:GetUser",
    "iam:ListMFADevices",
    "iam:ResyncMFADevice",
    "sts:GetSessionToken",
]
BOUNDARY_PROTECTED_ACTIONS: Final[list[str]] = [
    "iam:DeleteRolePermissionsBoundary",
    "iam:PutRolePermissionsBoundary",
    "iam:DeleteUserPermissionsBoundary",
    "iam:PutUserPermissionsBoundary",
    "iam:CreatePolicyVersion",
    "iam:DeletePolicy",
    "iam:SetDefaultPolicyVersion",
]


def api_lambda_policy(
    bucket_arn: str,
    table_arn: str,
    key_arns: Sequence[str],
) -> iam.PolicyDocument:
    """Object and item access for the API Lambda functions."""
    return iam.PolicyDocument(
        statements=[
            iam.PolicyStatement(
                sid="UploadsObjectAccess",
                effect=iam.Effect.ALLOW,
                actions=API_S3_OBJECT_ACTIONS,
                resources=[f"{bucket_arn}/*"],
            ),
            iam.PolicyStatement(
                sid="UploadsBucketList",
                effect=iam.Effect.ALLOW,
                actions=["s3:ListBucket"],
                resources=[bucket_arn],
            ),
            iam.PolicyStatement(
                sid="UserLogsItemAccess",
                effect=iam.Effect.ALLOW,
                actions=API_DYNAMODB_ACTIONS,
                resources=[table_arn, f"{table_arn}/index/*"],
            ),
            iam.PolicyStatement(
                sid="DataKeyAccess",
                effect=iam.Effect.ALLOW,
                actions=KMS_DATA_ACTIONS,
                resources=list(key_arns),
            ),
        ],
    )


def data_processing_policy(
    bucket_arn: str,
    table_arn: str,
    key_arns: Sequence[str],
) -> iam.PolicyDocument:
    """Batch read access to uploads and batch access to the logs table."""
    return iam.PolicyDocument(
        statements=[
            iam.PolicyStatement(
                sid="UploadsRead",
                effect=iam.Effect.ALLOW,
                actions=["s3:GetObject", "s3:ListBucket"],
                resources=[bucket_arn, f"{bucket_arn}/*"],
            ),
            iam.PolicyStatement(
                sid="UserLogsBatchAccess",
                effect=iam.Effect.ALLOW,
                actions=DATA_PROCESSING_DYNAMODB_ACTIONS,
                resources=[table_arn, f"{table_arn}/index/*"],
            ),
            iam.PolicyStatement(
                sid="DataKeyAccess",
                effect=iam.Effect.ALLOW,
                actions=KMS_DATA_ACTIONS,
                resources=list(key_arns),
            ),
        ],
    )


def compliance_auditor_policy() -> iam.PolicyDocument:
    """Read-only access to audit evidence (PCI DSS 10.7, 11.5)."""
    return iam.PolicyDocument(
        statements=[
            iam.PolicyStatement(
                sid="AuditEvidenceRead",
                effect=iam.Effect.ALLOW,
                actions=AUDIT_READ_ACTIONS,
                resources=["*"],
            ),
        ],
    )


def boundary_allowed_actions() -> list[str]:
    """Union of every action a bounded role may ever be granted."""
    actions = {
        *API_S3_OBJECT_ACTIONS,
        "s3:ListBucket",
        *API_DYNAMODB_ACTIONS,
        *DATA_PROCESSING_DYNAMODB_ACTIONS,
        *KMS_DATA_ACTIONS,
        *BASIC_EXECUTION_ACTIONS,
        *AUDIT_READ_ACTIONS,
        *READ_ONLY_BOUNDARY_ACTIONS,
    }
    return sorted(actions)


def mfa_boundary_policy() -> iam.PolicyDocument:
    """Permissions boundary shared by every GYB Connect role (PCI DSS 8.3).

    The boundary caps each role to the workload actions above. The roles it
    is attached to are assumed by Lambda and ECS service principals or through
    SAML federation, and none of those sessions carry
    ``aws:MultiFactorAuthPresent``; MFA for people is enforced at the identity
    provider. The ``Bool`` deny only restricts a session that explicitly
    reports ``false``, and ``BoolIfExists`` is avoided because it would deny
    every session lacking the key.
    """
    return iam.PolicyDocument(
        statements=[
            iam.PolicyStatement(
                sid="AllowBoundedWorkloadActions",
                effect=iam.Effect.ALLOW,
                actions=boundary_allowed_actions(),
                resources=["*"],
            ),
            iam.PolicyStatement(
                sid="AllowViewAccountInfo",
                effect=iam.Effect.ALLOW,
                actions=[
                    "iam:ListAccountAliases",
                    "iam:ListUsers",
                    "iam:GetAccountPasswordPolicy",
                    "iam:GetAccountSummary",
                ],
                resources=["*"],
            ),
            iam.PolicyStatement(
                sid="AllowManageOwnMFA",
                effect=iam.Effect.ALLOW,
                actions=[
                    "iam:CreateVirtualMFADevice",
                    "iam:DeleteVirtualMFADevice",
                    "iam:EnableMFADevice",
                    "iam:ListMFADevices",
                    "iam:ResyncMFADevice",
                    "iam:DeactivateMFADevice",
                ],
                resources=[
                    "arn:aws:iam::*:mfa/${aws:username}",
                    "arn:aws:iam::*:user/${aws:username}",
                ],
            ),
            iam.PolicyStatement(
                sid="DenyBoundaryTampering",
                effect=iam.Effect.DENY,
                actions=BOUNDARY_PROTECTED_ACTIONS,
                resources=["*"],
            ),
            iam.PolicyStatement(
                sid="DenyAllExceptMFABootstrapWithoutMFA",
                effect=iam.Effect.DENY,
                not_actions=MFA_BOOTSTRAP_ACTIONS,
                resources=["*"],
                conditions={
                    "Bool": {"aws:MultiFactorAuthPresent": "false"},
                },
            ),
        ],
    )
