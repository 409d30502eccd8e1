"""Managed threat detection for GYB Connect (PCI DSS 5, 6.1, 10.6, 11.4).

GuardDuty, Inspector and Security Hub are account-level services with only
L1 constructs, so resources are declared directly from their CloudFormation
properties. Findings of interest are routed to a dedicated alert topic.
"""

import logging
from typing import Any, Final

from aws_cdk import Aws, Stack
from aws_cdk import aws_events as events
from aws_cdk import aws_events_targets as targets
from aws_cdk import aws_guardduty as guardduty
from aws_cdk import aws_inspectorv2 as inspectorv2
from aws_cdk import aws_securityhub as securityhub
from aws_cdk import aws_sns as sns
from aws_cdk import aws_sns_subscriptions as subscriptions
from constructs import Construct

from stacks.common import OutputManager, configure_security_checks
from stacks.configs import EnvironmentConfig

logger = logging.getLogger(__name__)

HIGH_SEVERITY_THRESHOLD: Final[int] = 7
PCI_DSS_STANDARD_VERSION: Final[str] = "3.2.1"
# Disabled controls with the reason recorded in Security Hub
DISABLED_PCI_CONTROLS: Final[dict[str, str]] = {
    "PCI.EC2.1": "No EBS snapshots are created by this platform",
}


class ThreatDetectionStack(Stack):
    """GuardDuty, Inspector and Security Hub with finding alerts.

    Attributes:
        findings_topic: Topic receiving high-severity findings.
        detector: GuardDuty detector.
        hub: Security Hub hub.
        pci_standard: PCI DSS standard subscription.
        finding_rules: EventBridge rules by short name.
        output_manager: Manager for consistent output creation.
    """

    findings_topic: sns.Topic
    detector: guardduty.CfnDetector
    hub: securityhub.CfnHub
    pci_standard: securityhub.CfnStandard
    finding_rules: dict[str, events.Rule]
    output_manager: OutputManager

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: EnvironmentConfig,
        **kwargs: Any,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self.config = config
        self.output_manager = OutputManager(self, config.name)

        self._create_findings_topic()
        self._create_guardduty()
        self._create_inspector_filter()
        self._create_security_hub()
        self._create_finding_rules()
        self._create_outputs()
        configure_security_checks(
            self,
            {
                "AwsSolutions-SNS2": "Finding summaries carry no cardholder data",
                "AwsSolutions-SNS3": "Topic is only published to by EventBridge over TLS",
            },
        )

    def _create_findings_topic(self) -> None:
        self.findings_topic = sns.Topic(
            self,
            "SecurityFindingsTopic",
            topic_name=f"{self.config.name}-gyb-security-findings",
            display_name="GYB Connect Security Findings",
        )
        if self.config.security_alert_email:
            self.findings_topic.add_subscription(
                subscriptions.EmailSubscription(self.config.security_alert_email),
            )

    def _create_guardduty(self) -> None:
        """Threat detection on S3 data events and EBS malware scanning (PCI DSS 5.2)."""
        self.detector = guardduty.CfnDetector(
            self,
            "GuardDutyDetector",
            enable=True,
            finding_publishing_frequency="FIFTEEN_MINUTES",
            data_sources=guardduty.CfnDetector.CFNDataSourceConfigurationsProperty(
                s3_logs=guardduty.CfnDetector.CFNS3LogsConfigurationProperty(enable=True),
                malware_protection=guardduty.CfnDetector.CFNMalwareProtectionConfigurationProperty(
                    scan_ec2_instance_with_findings=guardduty.CfnDetector.CFNScanEc2InstanceWithFindingsConfigurationProperty(
                        ebs_volumes=True,
                    ),
                ),
            ),
            tags=[
                guardduty.CfnDetector.TagItemProperty(key="Environment", value=self.config.name),
                guardduty.CfnDetector.TagItemProperty(key="PCI-DSS-Requirement", value="11.4"),
            ],
        )

    def _create_inspector_filter(self) -> None:
        """Suppresses vulnerability noise from resources tagged as dev."""
        inspectorv2.CfnFilter(
            self,
            "InspectorDevSuppressionFilter",
            name=f"{self.config.name}-gyb-inspector-filter",
            description="Suppress findings for development resources",
            filter_action="SUPPRESS",
            filter_criteria=inspectorv2.CfnFilter.FilterCriteriaProperty(
                resource_tags=[
                    inspectorv2.CfnFilter.MapFilterProperty(
                        comparison="EQUALS",
                        key="Environment",
                        value="dev",
                    ),
                ],
            ),
        )

    def _create_security_hub(self) -> None:
        """Continuous compliance checks against PCI DSS (PCI DSS 11.5)."""
        self.hub = securityhub.CfnHub(
            self,
            "SecurityHub",
            enable_default_standards=True,
            control_finding_generator="SECURITY_CONTROL",
            tags={
                "Environment": self.config.name,
                "PCI-DSS-Requirement": "11.5",
            },
        )

        self.pci_standard = securityhub.CfnStandard(
            self,
            "PciDssStandard",
            standards_arn=(
                f"arn:aws:securityhub:{Aws.REGION}::standards/pci-dss/v/{PCI_DSS_STANDARD_VERSION}"
            ),
            disabled_standards_controls=[
                securityhub.CfnStandard.StandardsControlProperty(
                    standards_control_arn=(
                        f"arn:aws:securityhub:{Aws.REGION}:{Aws.ACCOUNT_ID}:control/"
                        f"pci-dss/v/{PCI_DSS_STANDARD_VERSION}/{control}"
                    ),
                    reason=reason,
                )
                for control, reason in DISABLED_PCI_CONTROLS.items()
            ],
        )
        self.pci_standard.add_dependency(self.hub)

    def _create_finding_rules(self) -> None:
        rule_specs: list[tuple[str, str, str, events.EventPattern]] = [
            (
                "HighSeverityFindings",
                "high-severity-findings",
                "Route GuardDuty, Inspector and Security Hub findings above severity 7",
                events.EventPattern(
                    source=["aws.guardduty", "aws.inspector2", "aws.securityhub"],
                    detail={"severity": [{"numeric": [">", HIGH_SEVERITY_THRESHOLD]}]},
                ),
            ),
            (
                "MalwareDetection",
                "malware-detection",
                "Route GuardDuty malware findings (PCI DSS 5.2)",
                events.EventPattern(
                    source=["aws.guardduty"],
                    detail_type=["GuardDuty Finding"],
                    detail={"type": [{"prefix": "Execution:EC2/MaliciousFile"}]},
                ),
            ),
            (
                "VulnerabilityFindings",
                "vulnerability-findings",
                "Route critical and high Inspector findings (PCI DSS 6.1)",
                events.EventPattern(
                    source=["aws.inspector2"],
                    detail_type=["Inspector2 Finding"],
                    detail={"severity": ["CRITICAL", "HIGH"]},
                ),
            ),
        ]

        self.finding_rules = {}
        for rule_id, name_suffix, description, pattern in rule_specs:
            rule = events.Rule(
                self,
                f"{rule_id}Rule",
                rule_name=f"{self.config.name}-{name_suffix}",
                description=description,
                event_pattern=pattern,
            )
            rule.add_target(targets.SnsTopic(self.findings_topic))
            self.finding_rules[rule_id] = rule
        logger.info("Routing %d finding rules to the findings topic", len(self.finding_rules))

    def _create_outputs(self) -> None:
        self.output_manager.add_output(
            "SecurityTopicArn",
            self.findings_topic.topic_arn,
            "Topic receiving security findings",
        )
        self.output_manager.add_output(
            "GuardDutyDetectorId",
            self.detector.ref,
            "GuardDuty detector id",
        )
