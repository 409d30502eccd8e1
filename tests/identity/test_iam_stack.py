"""Tests for the IAM roles stack."""

import pytest
from aws_cdk.assertions import Match, Template

from stacks.identity import IamStack, IamStackProps

PROPS = IamStackProps(
    bucket_arn="arn:aws:s3:::dev-gyb-uploads",
    table_arn="arn:aws:dynamodb:us-west-1:123456789012:table/dev-gyb-user-logs",
    key_arns=("arn:aws:kms:us-west-1:123456789012:key/s3",),
)


@pytest.fixture
def iam_template(cdk_app, aws_environment, dev_config):
    stack = IamStack(cdk_app, "TestIamStack", config=dev_config, props=PROPS, env=aws_environment)
    return Template.from_stack(stack)


class TestIamStackProps:
    def test_requires_key_arns(self):
        with pytest.raises(ValueError, match="At least one key ARN"):
            IamStackProps(bucket_arn="b", table_arn="t", key_arns=())

    def test_default_saml_provider(self):
        assert PROPS.saml_provider_name == "IdentityCenter"


class TestBoundary:
    def test_boundary_policy_created(self, iam_template):
        iam_template.has_resource_properties(
            "AWS::IAM::ManagedPolicy",
            {"ManagedPolicyName": "dev-mfa-boundary-policy"},
        )

    def test_every_role_bounded(self, iam_template):
        roles = iam_template.find_resources("AWS::IAM::Role")
        assert len(roles) == 4
        for role in roles.values():
            assert "PermissionsBoundary" in role["Properties"]

    def test_bounded_roles_trust_only_services_or_federation(self, iam_template):
        # Human MFA is enforced by the identity provider, never by IAM users
        for role in iam_template.find_resources("AWS::IAM::Role").values():
            for statement in role["Properties"]["AssumeRolePolicyDocument"]["Statement"]:
                assert set(statement["Principal"]) <= {"Service", "Federated"}


class TestWorkloadRoles:
    def test_api_lambda_role(self, iam_template):
        iam_template.has_resource_properties(
            "AWS::IAM::Role",
            {
                "RoleName": "dev-gyb-api-lambda-role",
                "AssumeRolePolicyDocument": {
                    "Statement": [
                        Match.object_like(
                            {"Principal": {"Service": "lambda.amazonaws.com"}},
                        ),
                    ],
                },
                "Policies": [Match.object_like({"PolicyName": "ApiLambdaPolicy"})],
            },
        )

    def test_data_processing_role_trusts_lambda_and_ecs(self, iam_template):
        iam_template.has_resource_properties(
            "AWS::IAM::Role",
            {
                "RoleName": "dev-gyb-data-processing-role",
                "AssumeRolePolicyDocument": {
                    "Statement": Match.array_with(
                        [
                            Match.object_like(
                                {"Principal": {"Service": "ecs-tasks.amazonaws.com"}},
                            ),
                        ],
                    ),
                },
            },
        )


class TestHumanRoles:
    @pytest.mark.parametrize(
        "role_name",
        ["dev-gyb-readonly-role", "dev-gyb-compliance-auditor-role"],
    )
    def test_federated_with_one_hour_sessions(self, iam_template, role_name):
        iam_template.has_resource_properties(
            "AWS::IAM::Role",
            {
                "RoleName": role_name,
                "MaxSessionDuration": 3600,
                "AssumeRolePolicyDocument": {
                    "Statement": [
                        Match.object_like(
                            {
                                "Action": "sts:AssumeRoleWithSAML",
                                "Condition": {
                                    "StringEquals": {
                                        "SAML:aud": "https://signin.aws.amazon.com/saml",
                                    },
                                },
                            },
                        ),
                    ],
                },
            },
        )

    def test_roles_tagged_with_requirement(self, iam_template):
        iam_template.has_resource_properties(
            "AWS::IAM::Role",
            {
                "RoleName": "dev-gyb-compliance-auditor-role",
                "Tags": Match.array_with([{"Key": "PCI-DSS-Requirement", "Value": "10.7"}]),
            },
        )


class TestAccessAnalyzer:
    def test_account_analyzer(self, iam_template):
        iam_template.has_resource_properties(
            "AWS::AccessAnalyzer::Analyzer",
            {"Type": "ACCOUNT", "AnalyzerName": "dev-gyb-access-analyzer"},
        )


class TestOutputs:
    @pytest.mark.parametrize(
        "output_id",
        ["ApiLambdaRoleArn", "DataProcessingRoleArn", "ReadOnlyRoleArn", "ComplianceAuditorRoleArn"],
    )
    def test_outputs_exported(self, iam_template, output_id):
        iam_template.has_output(output_id, {"Export": {"Name": f"GybConnect-{output_id}-dev"}})


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
