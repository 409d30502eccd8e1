"""Tests for the PostgreSQL database stack."""

import pytest
from aws_cdk.assertions import Annotations, Match, Template

from stacks.configs import BASIC_PROFILE, HARDENED_PROFILE
from stacks.network import VpcStack
from stacks.storage import RdsStack
from stacks.storage.rds_stack import NO_PERFORMANCE_INSIGHTS_SIZES, database_nag_suppressions


@pytest.fixture
def dev_stack(cdk_app, aws_environment, dev_config):
    return RdsStack(cdk_app, "TestRdsStack", config=dev_config, env=aws_environment)


@pytest.fixture
def dev_template(dev_stack):
    return Template.from_stack(dev_stack)


@pytest.fixture
def prod_template(cdk_app, aws_environment, prod_config, make_kms_stack):
    kms_stack = make_kms_stack(prod_config)
    vpc_stack = VpcStack(cdk_app, "TestVpcStackProd", config=prod_config, env=aws_environment)
    stack = RdsStack(
        cdk_app,
        "TestRdsStackProd",
        config=prod_config,
        vpc=vpc_stack.vpc,
        encryption_key=kms_stack.rds_key,
        env=aws_environment,
    )
    return Template.from_stack(stack)


class TestDatabaseInstance:
    def test_engine_and_encryption(self, dev_template):
        dev_template.has_resource_properties(
            "AWS::RDS::DBInstance",
            {
                "Engine": "postgres",
                "EngineVersion": "15.13",
                "StorageEncrypted": True,
                "PubliclyAccessible": False,
                "DBName": "dev_gyb_connect",
                "Port": "5432",
                "BackupRetentionPeriod": 7,
                "EnableCloudwatchLogsExports": ["postgresql"],
            },
        )

    def test_dev_instance_sizing(self, dev_template):
        dev_template.has_resource_properties(
            "AWS::RDS::DBInstance",
            {"DBInstanceClass": "db.t3.micro", "MultiAZ": False, "DeletionProtection": False},
        )

    def test_prod_instance_hardening(self, prod_template):
        prod_template.has_resource_properties(
            "AWS::RDS::DBInstance",
            {
                "DBInstanceClass": "db.t3.medium",
                "MultiAZ": True,
                "DeletionProtection": True,
                "EnablePerformanceInsights": True,
                "KmsKeyId": Match.any_value(),
            },
        )
        prod_template.has_resource("AWS::RDS::DBInstance", {"DeletionPolicy": "Retain"})

    def test_small_sizes_skip_performance_insights(self):
        assert "MICRO" in NO_PERFORMANCE_INSIGHTS_SIZES
        assert "MEDIUM" not in NO_PERFORMANCE_INSIGHTS_SIZES

    def test_credentials_in_secrets_manager(self, dev_template):
        dev_template.resource_count_is("AWS::SecretsManager::Secret", 1)


class TestParameters:
    def test_ssl_forced(self, dev_template):
        dev_template.has_resource_properties(
            "AWS::RDS::DBParameterGroup",
            {
                "Family": "postgres15",
                "Parameters": {
                    "rds.force_ssl": "1",
                    "log_connections": "1",
                    "log_disconnections": "1",
                },
            },
        )


class TestNetworkPlacement:
    def test_security_group_only_admits_postgres(self, dev_template):
        dev_template.has_resource_properties(
            "AWS::EC2::SecurityGroup",
            {
                "SecurityGroupIngress": [
                    Match.object_like({"FromPort": 5432, "ToPort": 5432, "IpProtocol": "tcp"}),
                ],
            },
        )

    def test_prod_uses_subnet_group_in_dedicated_vpc(self, prod_template):
        prod_template.resource_count_is("AWS::RDS::DBSubnetGroup", 1)
        prod_template.has_resource_properties(
            "AWS::RDS::DBSubnetGroup",
            {"SubnetIds": Match.array_with([Match.object_like({"Fn::ImportValue": Match.any_value()})])},
        )

    def test_prod_without_vpc_is_rejected(self, cdk_app, aws_environment, prod_config, make_kms_stack):
        kms_stack = make_kms_stack(prod_config)
        with pytest.raises(ValueError, match="requires the dedicated VPC"):
            RdsStack(
                cdk_app,
                "TestRdsStackNoVpc",
                config=prod_config,
                encryption_key=kms_stack.rds_key,
                env=aws_environment,
            )

    def test_prod_without_key_is_rejected(self, cdk_app, aws_environment, prod_config):
        vpc_stack = VpcStack(cdk_app, "TestVpcStackNoKey", config=prod_config, env=aws_environment)
        with pytest.raises(ValueError, match="RDS database"):
            RdsStack(
                cdk_app,
                "TestRdsStackNoKey",
                config=prod_config,
                vpc=vpc_stack.vpc,
                env=aws_environment,
            )


class TestSecurityChecks:
    def test_basic_tier_accepts_single_az_disposable_database(self):
        suppressions = database_nag_suppressions(BASIC_PROFILE)
        assert "AwsSolutions-RDS3" in suppressions
        assert "AwsSolutions-RDS10" in suppressions
        assert all(reason.strip() for reason in suppressions.values())

    def test_hardened_tier_keeps_availability_checks(self):
        suppressions = database_nag_suppressions(HARDENED_PROFILE)
        assert "AwsSolutions-RDS3" not in suppressions
        assert "AwsSolutions-RDS10" not in suppressions

    def test_dev_stack_synthesizes_without_nag_errors(self, dev_stack):
        Annotations.from_stack(dev_stack).has_no_error("*", Match.any_value())


class TestOutputs:
    @pytest.mark.parametrize("output_id", ["DatabaseEndpoint", "DatabasePort", "DatabaseSecretArn"])
    def test_outputs_exported(self, dev_template, output_id):
        dev_template.has_output(output_id, {"Export": {"Name": f"GybConnect-{output_id}-dev"}})


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
