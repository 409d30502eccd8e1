"""Global pytest configuration and fixtures for CDK testing."""

import os
import sys
from pathlib import Path

import pytest
from aws_cdk import App, Environment

# Add the project root to Python path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from stacks.configs import EnvironmentConfig, get_environment_config  # noqa: E402
from stacks.kms import KmsStack  # noqa: E402

TEST_ACCOUNT = "123456789012"
TEST_REGION = "us-west-1"


@pytest.fixture(scope="session", autouse=True)
def configure_test_environment():
    """Configure environment variables for consistent testing."""
    test_env = {
        "AWS_DEFAULT_REGION": TEST_REGION,
        "AWS_REGION": TEST_REGION,
        "CDK_DEFAULT_REGION": TEST_REGION,
        "CDK_DEFAULT_ACCOUNT": TEST_ACCOUNT,
        "CDK_DISABLE_VERSION_CHECK": "true",
        # Prevent actual AWS API calls during testing
        "AWS_ACCESS_KEY_ID": "testing",
        "AWS_SECRET_ACCESS_KEY": "testing",
        "AWS_SECURITY_TOKEN": "testing",
        "AWS_SESSION_TOKEN": "testing",
    }

    for key, value in test_env.items():
        if key not in os.environ:
            os.environ[key] = value


@pytest.fixture
def cdk_app():
    """Create a fresh CDK App instance for each test."""
    return App()


@pytest.fixture(scope="session")
def aws_environment():
    """Provide AWS environment configuration for testing."""
    return Environment(account=TEST_ACCOUNT, region=TEST_REGION)


@pytest.fixture
def dev_config() -> EnvironmentConfig:
    return get_environment_config("dev", security_alert_email="alerts@example.com")


@pytest.fixture
def prod_config() -> EnvironmentConfig:
    return get_environment_config("prod", security_alert_email="alerts@example.com")


@pytest.fixture
def make_kms_stack(cdk_app, aws_environment):
    """Factory creating the key stack other stacks draw their keys from."""

    def _make(config: EnvironmentConfig) -> KmsStack:
        return KmsStack(cdk_app, f"TestKmsStack-{config.name}", config=config, env=aws_environment)

    return _make
