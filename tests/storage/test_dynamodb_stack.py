"""Tests for the user logs table stack."""

import pytest
from aws_cdk.assertions import Match, Template

from stacks.storage import DynamoDBStack


@pytest.fixture
def dev_template(cdk_app, aws_environment, dev_config):
    stack = DynamoDBStack(cdk_app, "TestDynamoDBStack", config=dev_config, env=aws_environment)
    return Template.from_stack(stack)


@pytest.fixture
def prod_template(cdk_app, aws_environment, prod_config, make_kms_stack):
    kms_stack = make_kms_stack(prod_config)
    stack = DynamoDBStack(
        cdk_app,
        "TestDynamoDBStackProd",
        config=prod_config,
        encryption_key=kms_stack.dynamodb_key,
        env=aws_environment,
    )
    return Template.from_stack(stack)


class TestTableSchema:
    def test_keys_and_billing(self, dev_template):
        dev_template.has_resource_properties(
            "AWS::DynamoDB::Table",
            {
                "TableName": "dev-gyb-user-logs",
                "KeySchema": [
                    {"AttributeName": "userId", "KeyType": "HASH"},
                    {"AttributeName": "timestamp", "KeyType": "RANGE"},
                ],
                "BillingMode": "PAY_PER_REQUEST",
            },
        )

    def test_ttl_enabled(self, dev_template):
        dev_template.has_resource_properties(
            "AWS::DynamoDB::Table",
            {"TimeToLiveSpecification": {"AttributeName": "ttl", "Enabled": True}},
        )

    def test_action_type_index(self, dev_template):
        dev_template.has_resource_properties(
            "AWS::DynamoDB::Table",
            {
                "GlobalSecondaryIndexes": [
                    Match.object_like(
                        {
                            "IndexName": "ActionTypeIndex",
                            "KeySchema": [
                                {"AttributeName": "actionType", "KeyType": "HASH"},
                                {"AttributeName": "timestamp", "KeyType": "RANGE"},
                            ],
                            "Projection": {"ProjectionType": "ALL"},
                        },
                    ),
                ],
            },
        )


class TestEncryption:
    def test_dev_uses_aws_managed_key(self, dev_template):
        dev_template.has_resource_properties(
            "AWS::DynamoDB::Table",
            {"SSESpecification": {"SSEEnabled": True}},
        )

    def test_prod_uses_customer_managed_key(self, prod_template):
        prod_template.has_resource_properties(
            "AWS::DynamoDB::Table",
            {
                "SSESpecification": Match.object_like(
                    {"SSEEnabled": True, "SSEType": "KMS", "KMSMasterKeyId": Match.any_value()},
                ),
            },
        )

    def test_prod_without_key_is_rejected(self, cdk_app, aws_environment, prod_config):
        with pytest.raises(ValueError, match="DynamoDB user logs table"):
            DynamoDBStack(cdk_app, "TestDynamoDBStackNoKey", config=prod_config, env=aws_environment)


class TestProtection:
    def test_prod_point_in_time_recovery(self, prod_template):
        prod_template.has_resource_properties(
            "AWS::DynamoDB::Table",
            {
                "PointInTimeRecoverySpecification": Match.object_like(
                    {"PointInTimeRecoveryEnabled": True},
                ),
            },
        )

    def test_dev_point_in_time_recovery_disabled(self, dev_template):
        dev_template.has_resource_properties(
            "AWS::DynamoDB::Table",
            {
                "PointInTimeRecoverySpecification": Match.object_like(
                    {"PointInTimeRecoveryEnabled": False},
                ),
            },
        )

    def test_dev_table_destroyed_with_stack(self, dev_template):
        dev_template.has_resource("AWS::DynamoDB::Table", {"DeletionPolicy": "Delete"})

    def test_prod_table_retained(self, prod_template):
        prod_template.has_resource("AWS::DynamoDB::Table", {"DeletionPolicy": "Retain"})


class TestOutputs:
    @pytest.mark.parametrize("output_id", ["DynamoDBTableName", "DynamoDBTableArn"])
    def test_outputs_exported(self, dev_template, output_id):
        dev_template.has_output(output_id, {"Export": {"Name": f"GybConnect-{output_id}-dev"}})


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
