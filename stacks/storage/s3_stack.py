"""User uploads bucket for GYB Connect (PCI DSS 3.4, 3.5)."""

import logging
from typing import Any

from aws_cdk import Duration, Stack, Tags
from aws_cdk import aws_kms as kms
from aws_cdk import aws_s3 as s3
from constructs import Construct

from stacks.common import OutputManager, configure_security_checks, ensure_customer_managed_key
from stacks.configs import EnvironmentConfig

logger = logging.getLogger(__name__)

CORS_MAX_AGE_SECONDS = 3000


class S3Stack(Stack):
    """Versioned, private uploads bucket.

    Attributes:
        bucket: The uploads bucket.
        output_manager: Manager for consistent output creation.
    """

    bucket: s3.Bucket
    output_manager: OutputManager

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: EnvironmentConfig,
        encryption_key: kms.IKey | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self.config = config
        self.encryption_key = encryption_key
        self.output_manager = OutputManager(self, config.name)

        self._create_bucket()
        self._create_outputs()
        configure_security_checks(
            self,
            {
                "AwsSolutions-S1": "Object-level access is audited by the organization CloudTrail trail",
                "AwsSolutions-IAM4": "Auto-delete custom resource uses the AWS managed Lambda execution policy",
                "AwsSolutions-L1": "Auto-delete custom resource runtime is managed by the CDK",
            },
        )

    def _create_bucket(self) -> None:
        use_cmk = ensure_customer_managed_key(
            self.config,
            self.encryption_key,
            "S3 uploads bucket",
        )
        profile = self.config.profile

        self.bucket = s3.Bucket(
            self,
            "GybUploadsS3",
            bucket_name=f"{self.config.name}-gyb-uploads",
            versioned=True,
            encryption=s3.BucketEncryption.KMS if use_cmk else s3.BucketEncryption.S3_MANAGED,
            encryption_key=self.encryption_key if use_cmk else None,
            bucket_key_enabled=use_cmk,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            enforce_ssl=True,
            removal_policy=profile.removal_policy,
            auto_delete_objects=profile.auto_delete_objects,
            lifecycle_rules=[
                s3.LifecycleRule(
                    id="delete-incomplete-multipart-uploads",
                    enabled=True,
                    abort_incomplete_multipart_upload_after=Duration.days(7),
                ),
            ],
            cors=[
                s3.CorsRule(
                    allowed_methods=[
                        s3.HttpMethods.GET,
                        s3.HttpMethods.POST,
                        s3.HttpMethods.PUT,
                        s3.HttpMethods.DELETE,
                    ],
                    allowed_origins=list(profile.cors_origins),
                    allowed_headers=["*"],
                    max_age=CORS_MAX_AGE_SECONDS,
                ),
            ],
        )
        Tags.of(self.bucket).add("PCI-DSS-Requirement", "3.4")
        Tags.of(self.bucket).add("DataClassification", "Confidential")

    def _create_outputs(self) -> None:
        self.output_manager.add_output(
            "S3BucketName",
            self.bucket.bucket_name,
            "Name of the user uploads bucket",
        )
        self.output_manager.add_output(
            "S3BucketArn",
            self.bucket.bucket_arn,
            "ARN of the user uploads bucket",
        )
