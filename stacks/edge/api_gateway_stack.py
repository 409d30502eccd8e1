"""HTTP API front door for GYB Connect (PCI DSS 4.1, 10.2)."""

import json
import logging
from typing import Any, Final, cast

from aws_cdk import Duration, Stack
from aws_cdk import aws_apigatewayv2 as apigwv2
from aws_cdk import aws_certificatemanager as acm
from aws_cdk import aws_logs as logs
from constructs import Construct

from stacks.common import OutputManager, configure_security_checks
from stacks.configs import EnvironmentConfig

logger = logging.getLogger(__name__)

ALLOWED_HEADERS: Final[list[str]] = [
    "Content-Type",
    "X-Amz-Date",
    "Authorization",
    "X-Api-Key",
    "X-Amz-Security-Token",
]
ACCESS_LOG_FORMAT: Final[dict[str, str]] = {
    "requestId": "$context.requestId",
    "ip": "$context.identity.sourceIp",
    "requestTime": "$context.requestTime",
    "httpMethod": "$context.httpMethod",
    "routeKey": "$context.routeKey",
    "status": "$context.status",
    "protocol": "$context.protocol",
    "responseLength": "$context.responseLength",
    "integrationError": "$context.integrationErrorMessage",
}


class ApiGatewayStack(Stack):
    """HTTP API with CORS, a throttled stage and an optional custom domain.

    Attributes:
        http_api: The HTTP API.
        stage: Environment-named stage with access logging.
        access_log_group: Log group receiving stage access logs.
        domain_name: Custom domain, when a certificate was supplied.
        output_manager: Manager for consistent output creation.
    """

    http_api: apigwv2.HttpApi
    stage: apigwv2.HttpStage
    access_log_group: logs.LogGroup
    domain_name: apigwv2.DomainName | None
    output_manager: OutputManager

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: EnvironmentConfig,
        domain_name: str | None = None,
        certificate_arn: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self.config = config
        self.output_manager = OutputManager(self, config.name)
        self.domain_name = None

        self._create_http_api()
        self._create_stage()
        if domain_name and certificate_arn:
            self._create_custom_domain(domain_name, certificate_arn)
        else:
            logger.info("No certificate supplied; serving %s on the default endpoint", config.name)
        self._create_outputs()
        configure_security_checks(
            self,
            {
                "AwsSolutions-APIG4": "Authorization is attached per route by the application stacks",
            },
        )

    def _create_http_api(self) -> None:
        self.http_api = apigwv2.HttpApi(
            self,
            "GybConnectHttpApi",
            api_name=f"{self.config.name}-gyb-connect-api",
            description=f"GYB Connect HTTP API for {self.config.name} environment",
            create_default_stage=False,
            cors_preflight=apigwv2.CorsPreflightOptions(
                allow_origins=list(self.config.profile.cors_origins),
                allow_methods=[
                    apigwv2.CorsHttpMethod.GET,
                    apigwv2.CorsHttpMethod.POST,
                    apigwv2.CorsHttpMethod.PUT,
                    apigwv2.CorsHttpMethod.DELETE,
                    apigwv2.CorsHttpMethod.OPTIONS,
                ],
                allow_headers=ALLOWED_HEADERS,
                allow_credentials=True,
                max_age=Duration.hours(1),
            ),
        )

    def _create_stage(self) -> None:
        profile = self.config.profile
        self.access_log_group = logs.LogGroup(
            self,
            "ApiAccessLogGroup",
            log_group_name=f"/aws/apigateway/{self.config.name}-gyb-connect-api",
            retention=logs.RetentionDays.ONE_YEAR,
            removal_policy=profile.removal_policy,
        )

        self.stage = apigwv2.HttpStage(
            self,
            "GybConnectStage",
            http_api=self.http_api,
            stage_name=self.config.name,
            auto_deploy=True,
            throttle=apigwv2.ThrottleSettings(
                rate_limit=profile.api_throttle_rate_limit,
                burst_limit=profile.api_throttle_burst_limit,
            ),
        )
        cfn_stage = cast(apigwv2.CfnStage, self.stage.node.default_child)
        cfn_stage.access_log_settings = apigwv2.CfnStage.AccessLogSettingsProperty(
            destination_arn=self.access_log_group.log_group_arn,
            format=json.dumps(ACCESS_LOG_FORMAT),
        )

    def _create_custom_domain(self, domain_name: str, certificate_arn: str) -> None:
        """Maps a TLS 1.2 custom domain onto the stage (PCI DSS 4.1)."""
        logger.info("Attaching custom domain %s", domain_name)
        certificate = acm.Certificate.from_certificate_arn(
            self,
            "ApiCertificate",
            certificate_arn,
        )
        self.domain_name = apigwv2.DomainName(
            self,
            "ApiDomainName",
            domain_name=domain_name,
            certificate=certificate,
            security_policy=apigwv2.SecurityPolicy.TLS_1_2,
        )
        apigwv2.ApiMapping(
            self,
            "ApiMapping",
            api=self.http_api,
            domain_name=self.domain_name,
            stage=self.stage,
        )

    def _create_outputs(self) -> None:
        self.output_manager.add_output(
            "HttpApiUrl",
            cast(str, self.stage.url),
            "Invoke URL of the HTTP API stage",
        )
        self.output_manager.add_output(
            "HttpApiId",
            self.http_api.api_id,
            "HTTP API id",
        )
        self.output_manager.add_output(
            "HttpApiStage",
            self.stage.stage_name,
            "HTTP API stage name",
        )
        if self.domain_name is not None:
            self.output_manager.add_output(
                "CustomDomainName",
                self.domain_name.name,
                "Custom domain of the HTTP API",
            )
            self.output_manager.add_output(
                "CustomDomainAlias",
                self.domain_name.regional_domain_name,
                "Regional target for the custom domain DNS alias",
            )
