"""Centralized audit logging and alerting for GYB Connect (PCI DSS 10).

Architecture:
    - Object-locked central log bucket encrypted with the logging key
    - Multi-region CloudTrail trail to the bucket and to CloudWatch Logs
    - EventBridge rules for IAM, S3 and KMS policy changes
    - Metric filters and alarms for root usage, failed console logins
      and trail tampering, all notifying one encrypted SNS topic
"""

import logging
from dataclasses import dataclass
from typing import Any, Final

from aws_cdk import Duration, RemovalPolicy, Stack
from aws_cdk import aws_cloudtrail as cloudtrail
from aws_cdk import aws_cloudwatch as cloudwatch
from aws_cdk import aws_cloudwatch_actions as cloudwatch_actions
from aws_cdk import aws_events as events
from aws_cdk import aws_events_targets as targets
from aws_cdk import aws_kms as kms
from aws_cdk import aws_logs as logs
from aws_cdk import aws_s3 as s3
from aws_cdk import aws_sns as sns
from aws_cdk import aws_sns_subscriptions as subscriptions
from constructs import Construct

from stacks.common import OutputManager, configure_security_checks
from stacks.configs import EnvironmentConfig

logger = logging.getLogger(__name__)

METRIC_NAMESPACE: Final[str] = "CloudTrailMetrics"
CLOUDTRAIL_PREFIX: Final[str] = "cloudtrail-logs/"


@dataclass(frozen=True)
class ChangeRuleSpec:
    """EventBridge rule alerting on management API calls of one service."""

    rule_id: str
    name_suffix: str
    description: str
    source: str
    event_names: tuple[str, ...]
    subject: str


@dataclass(frozen=True)
class MetricFilterSpec:
    """CloudTrail metric filter with an alarm on any occurrence."""

    filter_id: str
    metric_name: str
    pattern: str
    description: str


CHANGE_RULES: Final[tuple[ChangeRuleSpec, ...]] = (
    ChangeRuleSpec(
        rule_id="IAMPolicyChangeRule",
        name_suffix="iam-policy-changes",
        description="Alert on IAM policy and role changes (PCI DSS 10.2.5)",
        source="aws.iam",
        event_names=(
            "AttachRolePolicy",
            "DetachRolePolicy",
            "PutRolePolicy",
            "DeleteRolePolicy",
            "CreateRole",
            "DeleteRole",
            "AttachUserPolicy",
            "DetachUserPolicy",
            "PutUserPolicy",
            "DeleteUserPolicy",
        ),
        subject="IAM policy change",
    ),
    ChangeRuleSpec(
        rule_id="S3PolicyChangeRule",
        name_suffix="s3-policy-changes",
        description="Alert on S3 bucket policy and ACL changes (PCI DSS 10.2.7)",
        source="aws.s3",
        event_names=(
            "PutBucketPolicy",
            "DeleteBucketPolicy",
            "PutBucketAcl",
            "PutBucketPublicAccessBlock",
            "DeletePublicAccessBlock",
        ),
        subject="S3 bucket policy change",
    ),
    ChangeRuleSpec(
        rule_id="KMSKeyChangeRule",
        name_suffix="kms-key-changes",
        description="Alert on KMS key state and policy changes (PCI DSS 3.6)",
        source="aws.kms",
        event_names=(
            "DisableKey",
            "ScheduleKeyDeletion",
            "PutKeyPolicy",
            "CreateGrant",
            "RevokeGrant",
            "DisableKeyRotation",
        ),
        subject="KMS key change",
    ),
)

METRIC_FILTERS: Final[tuple[MetricFilterSpec, ...]] = (
    MetricFilterSpec(
        filter_id="RootAccountUsage",
        metric_name="RootAccountUsage",
        pattern=(
            '{ $.userIdentity.type = "Root" && $.userIdentity.invokedBy NOT EXISTS '
            '&& $.eventType != "AwsServiceEvent" }'
        ),
        description="Root account activity (PCI DSS 10.2.2)",
    ),
    MetricFilterSpec(
        filter_id="ConsoleLoginFailures",
        metric_name="ConsoleLoginFailures",
        pattern='{ ($.eventName = ConsoleLogin) && ($.errorMessage = "Failed authentication") }',
        description="Failed console sign-in attempts (PCI DSS 10.2.4)",
    ),
    MetricFilterSpec(
        filter_id="CloudTrailChanges",
        metric_name="CloudTrailChanges",
        pattern=(
            "{ ($.eventName = CreateTrail) || ($.eventName = UpdateTrail) || "
            "($.eventName = DeleteTrail) || ($.eventName = StartLogging) || "
            "($.eventName = StopLogging) }"
        ),
        description="Changes to CloudTrail configuration (PCI DSS 10.5)",
    ),
)


class LoggingStack(Stack):
    """Central audit trail, log storage and security alert topic.

    Attributes:
        logging_bucket: Object-locked bucket receiving CloudTrail logs.
        alerts_topic: Encrypted topic receiving every security alert.
        application_log_group: Log group for application logs.
        trail_log_group: Log group receiving CloudTrail events.
        trail: Multi-region CloudTrail trail.
        alarms: CloudWatch alarm per metric filter id.
        output_manager: Manager for consistent output creation.
    """

    logging_bucket: s3.Bucket
    alerts_topic: sns.Topic
    application_log_group: logs.LogGroup
    trail_log_group: logs.LogGroup
    trail: cloudtrail.Trail
    alarms: dict[str, cloudwatch.Alarm]
    output_manager: OutputManager

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: EnvironmentConfig,
        logging_key: kms.IKey,
        **kwargs: Any,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self.config = config
        self.logging_key = logging_key
        self.output_manager = OutputManager(self, config.name)

        self.tags.set_tag("PCI-DSS-Requirement", "10")
        self.tags.set_tag("Purpose", "Centralized-Logging")

        self._create_logging_bucket()
        self._create_alerts_topic()
        self._create_log_groups()
        self._create_trail()
        self._create_change_rules()
        self._create_metric_alarms()
        self._create_outputs()
        configure_security_checks(
            self,
            {
                "AwsSolutions-S1": "Central log bucket is the access log destination for the account",
                "AwsSolutions-IAM5": "CloudTrail delivery role writes generated log stream names",
            },
        )

    def _create_logging_bucket(self) -> None:
        lock_days = self.config.profile.log_object_lock_days
        self.logging_bucket = s3.Bucket(
            self,
            "CentralLoggingBucket",
            bucket_name=f"{self.config.name}-gyb-central-logs",
            versioned=True,
            object_lock_enabled=True,
            object_lock_default_retention=(
                s3.ObjectLockRetention.governance(Duration.days(lock_days))
                if lock_days
                else None
            ),
            encryption=s3.BucketEncryption.KMS,
            encryption_key=self.logging_key,
            bucket_key_enabled=True,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            enforce_ssl=True,
            # Audit logs outlive the stack in every environment (PCI DSS 10.7)
            removal_policy=RemovalPolicy.RETAIN,
            lifecycle_rules=[
                s3.LifecycleRule(
                    id="archive-old-logs",
                    enabled=True,
                    transitions=[
                        s3.Transition(
                            storage_class=s3.StorageClass.GLACIER,
                            transition_after=Duration.days(90),
                        ),
                        s3.Transition(
                            storage_class=s3.StorageClass.DEEP_ARCHIVE,
                            transition_after=Duration.days(365),
                        ),
                    ],
                ),
            ],
        )

    def _create_alerts_topic(self) -> None:
        self.alerts_topic = sns.Topic(
            self,
            "SecurityAlertsTopic",
            topic_name=f"{self.config.name}-gyb-security-alerts",
            display_name="GYB Connect Security Alerts",
            master_key=self.logging_key,
        )
        if self.config.security_alert_email:
            logger.info("Subscribing %s to security alerts", self.config.security_alert_email)
            self.alerts_topic.add_subscription(
                subscriptions.EmailSubscription(self.config.security_alert_email),
            )

    def _create_log_groups(self) -> None:
        self.application_log_group = logs.LogGroup(
            self,
            "ApplicationLogGroup",
            log_group_name=f"/gyb-connect/{self.config.name}/application",
            retention=logs.RetentionDays.THIRTEEN_MONTHS,
            encryption_key=self.logging_key,
            removal_policy=RemovalPolicy.RETAIN,
        )
        self.trail_log_group = logs.LogGroup(
            self,
            "CloudTrailLogGroup",
            log_group_name=f"/gyb-connect/{self.config.name}/cloudtrail",
            retention=logs.RetentionDays.THIRTEEN_MONTHS,
            encryption_key=self.logging_key,
            removal_policy=RemovalPolicy.RETAIN,
        )

    def _create_trail(self) -> None:
        """Records management events in every region (PCI DSS 10.1, 10.5.5)."""
        self.trail = cloudtrail.Trail(
            self,
            "GybConnectCloudTrail",
            trail_name=f"{self.config.name}-gyb-cloudtrail",
            bucket=self.logging_bucket,
            s3_key_prefix=CLOUDTRAIL_PREFIX,
            encryption_key=self.logging_key,
            is_multi_region_trail=True,
            include_global_service_events=True,
            enable_file_validation=True,
            send_to_cloud_watch_logs=True,
            cloud_watch_log_group=self.trail_log_group,
        )

    def _create_change_rules(self) -> None:
        for spec in CHANGE_RULES:
            rule = events.Rule(
                self,
                spec.rule_id,
                rule_name=f"{self.config.name}-{spec.name_suffix}",
                description=spec.description,
                event_pattern=events.EventPattern(
                    source=[spec.source],
                    detail_type=["AWS API Call via CloudTrail"],
                    detail={"eventName": list(spec.event_names)},
                ),
            )
            rule.add_target(
                targets.SnsTopic(
                    self.alerts_topic,
                    message=events.RuleTargetInput.from_text(
                        f"{spec.subject} in {self.config.name}: "
                        f"{events.EventField.from_path('$.detail.eventName')} by "
                        f"{events.EventField.from_path('$.detail.userIdentity.arn')} "
                        f"at {events.EventField.time}",
                    ),
                ),
            )

    def _create_metric_alarms(self) -> None:
        self.alarms = {}
        for spec in METRIC_FILTERS:
            metric_filter = logs.MetricFilter(
                self,
                f"{spec.filter_id}MetricFilter",
                log_group=self.trail_log_group,
                filter_name=f"{self.config.name}-{spec.filter_id}",
                filter_pattern=logs.FilterPattern.literal(spec.pattern),
                metric_namespace=METRIC_NAMESPACE,
                metric_name=spec.metric_name,
                metric_value="1",
                default_value=0,
            )
            alarm = cloudwatch.Alarm(
                self,
                f"{spec.filter_id}Alarm",
                alarm_name=f"{self.config.name}-gyb-{spec.filter_id}",
                alarm_description=spec.description,
                metric=metric_filter.metric(
                    statistic="Sum",
                    period=Duration.minutes(5),
                ),
                threshold=1,
                evaluation_periods=1,
                comparison_operator=cloudwatch.ComparisonOperator.GREATER_THAN_OR_EQUAL_TO_THRESHOLD,
                treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
            )
            alarm.add_alarm_action(cloudwatch_actions.SnsAction(self.alerts_topic))
            self.alarms[spec.filter_id] = alarm

    def _create_outputs(self) -> None:
        self.output_manager.add_output(
            "LoggingBucketName",
            self.logging_bucket.bucket_name,
            "Central audit log bucket",
        )
        self.output_manager.add_output(
            "SecurityAlertsTopicArn",
            self.alerts_topic.topic_arn,
            "Topic receiving security alerts",
        )
        self.output_manager.add_output(
            "CloudTrailArn",
            self.trail.trail_arn,
            "Multi-region CloudTrail trail ARN",
        )
        self.output_manager.add_output(
            "ApplicationLogGroupName",
            self.application_log_group.log_group_name,
            "Application log group",
        )
