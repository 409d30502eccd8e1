"""Tests for the CDK application entry point."""

from unittest.mock import MagicMock, patch

import pytest
from aws_cdk import App

from app import (
    DEFAULT_REGION,
    StackConfiguration,
    configuration_from_app,
    create_deployment_environment,
    initialize_app,
)
from stacks.configs.environment_config import DEFAULT_SECURITY_ALERT_EMAIL


class TestCreateDeploymentEnvironment:
    def test_uses_cdk_defaults_without_profile(self, monkeypatch):
        monkeypatch.setenv("CDK_DEFAULT_ACCOUNT", "111122223333")
        monkeypatch.setenv("CDK_DEFAULT_REGION", "us-east-2")

        env = create_deployment_environment(StackConfiguration())

        assert env.account == "111122223333"
        assert env.region == "us-east-2"

    def test_falls_back_to_default_region(self, monkeypatch):
        monkeypatch.delenv("CDK_DEFAULT_REGION", raising=False)

        env = create_deployment_environment(StackConfiguration())

        assert env.region == DEFAULT_REGION

    @patch("app.boto3.Session")
    def test_profile_resolves_account_through_sts(self, mock_session_class):
        mock_session = MagicMock()
        mock_session.region_name = "eu-west-1"
        mock_session.client.return_value.get_caller_identity.return_value = {
            "Account": "444455556666",
        }
        mock_session_class.return_value = mock_session

        env = create_deployment_environment(StackConfiguration(aws_profile="gyb-prod"))

        mock_session_class.assert_called_once_with(profile_name="gyb-prod")
        mock_session.client.assert_called_once_with("sts")
        assert env.account == "444455556666"
        assert env.region == "eu-west-1"

    @patch("app.boto3.Session")
    def test_profile_without_region_uses_default(self, mock_session_class):
        mock_session = MagicMock()
        mock_session.region_name = None
        mock_session.client.return_value.get_caller_identity.return_value = {
            "Account": "444455556666",
        }
        mock_session_class.return_value = mock_session

        env = create_deployment_environment(StackConfiguration(aws_profile="gyb-prod"))

        assert env.region == DEFAULT_REGION


class TestConfigurationFromApp:
    def test_defaults(self, monkeypatch):
        for var in ("DEPLOY_ENV", "COMPLIANCE_TIER", "SECURITY_ALERT_EMAIL", "ACM_CERTIFICATE_ARN"):
            monkeypatch.delenv(var, raising=False)

        config = configuration_from_app(App())

        assert config == StackConfiguration(environment="dev")
        assert config.security_alert_email == DEFAULT_SECURITY_ALERT_EMAIL

    def test_context_takes_precedence(self, monkeypatch):
        monkeypatch.setenv("DEPLOY_ENV", "dev")
        monkeypatch.setenv("COMPLIANCE_TIER", "basic")
        app = App(
            context={
                "environment": "Production",
                "compliance_tier": "hardened",
                "security_alert_email": "soc@example.com",
                "aws_profile": "gyb-prod",
            },
        )

        config = configuration_from_app(app)

        assert config.environment == "prod"
        assert config.compliance_tier == "hardened"
        assert config.security_alert_email == "soc@example.com"
        assert config.aws_profile == "gyb-prod"

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("DEPLOY_ENV", "staging")
        monkeypatch.setenv("COMPLIANCE_TIER", "hardened")
        monkeypatch.setenv("ACM_CERTIFICATE_ARN", "arn:aws:acm:us-west-1:123456789012:certificate/x")

        config = configuration_from_app(App())

        assert config.environment == "staging"
        assert config.compliance_tier == "hardened"
        assert config.certificate_arn == "arn:aws:acm:us-west-1:123456789012:certificate/x"


class TestInitializeApp:
    def test_builds_every_stack(self):
        app = initialize_app(StackConfiguration(environment="dev"))

        stack_ids = {child.node.id for child in app.node.children}
        assert len(stack_ids) == 9
        assert "GybConnect-KmsStack" in stack_ids
        assert "GybConnect-ApiGatewayStack" in stack_ids

    def test_reuses_given_app(self):
        app = App()
        assert initialize_app(StackConfiguration(environment="dev"), app=app) is app

    def test_invalid_environment_name_rejected(self):
        with pytest.raises(ValueError):
            initialize_app(StackConfiguration(environment="Not A Valid Name!"))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
