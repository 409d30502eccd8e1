"""Tests for the customer-managed key stack."""

import pytest
from aws_cdk.assertions import Match, Template

from stacks.kms import KEY_SPECS, KeySpec, KmsStack, build_key_policy


@pytest.fixture
def kms_template(cdk_app, aws_environment, dev_config):
    stack = KmsStack(cdk_app, "TestKmsStack", config=dev_config, env=aws_environment)
    return Template.from_stack(stack)


@pytest.fixture
def prod_kms_template(cdk_app, aws_environment, prod_config):
    stack = KmsStack(cdk_app, "TestKmsStack", config=prod_config, env=aws_environment)
    return Template.from_stack(stack)


class TestKeyCreation:
    def test_one_key_per_resource_group(self, kms_template):
        kms_template.resource_count_is("AWS::KMS::Key", len(KEY_SPECS))
        kms_template.resource_count_is("AWS::KMS::Alias", len(KEY_SPECS))

    def test_every_key_rotates(self, kms_template):
        keys = kms_template.find_resources("AWS::KMS::Key")
        assert all(key["Properties"]["EnableKeyRotation"] is True for key in keys.values())

    @pytest.mark.parametrize("name", ["s3", "rds", "dynamodb", "macie", "logging"])
    def test_aliases_are_environment_scoped(self, kms_template, name):
        kms_template.has_resource_properties(
            "AWS::KMS::Alias",
            {"AliasName": f"alias/dev/gyb-connect/{name}"},
        )

    def test_descriptions_name_the_environment(self, kms_template):
        kms_template.has_resource_properties(
            "AWS::KMS::Key",
            {
                "Description": "Customer-managed key for S3 bucket encryption in dev environment",
            },
        )


class TestRemovalPolicy:
    def test_dev_keys_are_deleted_with_short_window(self, kms_template):
        kms_template.has_resource(
            "AWS::KMS::Key",
            {
                "DeletionPolicy": "Delete",
                "Properties": Match.object_like({"PendingWindowInDays": 7}),
            },
        )

    def test_prod_keys_are_retained(self, prod_kms_template):
        keys = prod_kms_template.find_resources("AWS::KMS::Key")
        assert all(key["DeletionPolicy"] == "Retain" for key in keys.values())


class TestKeyPolicies:
    def test_root_account_statement_present(self, kms_template):
        kms_template.has_resource_properties(
            "AWS::KMS::Key",
            {
                "KeyPolicy": {
                    "Statement": Match.array_with(
                        [
                            Match.object_like(
                                {
                                    "Sid": "EnableIAMUserPermissions",
                                    "Action": "kms:*",
                                    "Effect": "Allow",
                                },
                            ),
                        ],
                    ),
                },
            },
        )

    def test_s3_key_cannot_create_grants(self):
        spec = next(spec for spec in KEY_SPECS if spec.name == "s3")
        document = build_key_policy(spec).to_json()
        service_statement = document["Statement"][1]
        assert service_statement["Sid"] == "AllowS3Service"
        assert "kms:CreateGrant" not in service_statement["Action"]

    def test_grant_capable_key_includes_create_grant(self):
        spec = KeySpec(
            name="example",
            output_name="Example",
            purpose="testing",
            services=("rds.amazonaws.com",),
        )
        statement = build_key_policy(spec).to_json()["Statement"][1]
        assert "kms:CreateGrant" in statement["Action"]
        assert statement["Sid"] == "AllowRdsService"

    def test_logging_key_serves_every_log_pipeline(self):
        spec = next(spec for spec in KEY_SPECS if spec.name == "logging")
        statements = build_key_policy(spec).to_json()["Statement"]
        # Root statement plus one per service
        assert len(statements) == 1 + len(spec.services)
        sids = {statement["Sid"] for statement in statements}
        assert {
            "AllowCloudtrailService",
            "AllowLogsService",
            "AllowSnsService",
            "AllowEventsService",
            "AllowCloudwatchService",
        } <= sids


class TestOutputs:
    @pytest.mark.parametrize("prefix", ["S3", "RDS", "DynamoDB", "Macie", "Logging"])
    def test_key_outputs_exported(self, kms_template, prefix):
        kms_template.has_output(
            f"{prefix}KeyArn",
            {"Export": {"Name": f"GybConnect-{prefix}KeyArn-dev"}},
        )
        kms_template.has_output(
            f"{prefix}KeyId",
            {"Export": {"Name": f"GybConnect-{prefix}KeyId-dev"}},
        )


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
