"""cdk-nag wiring shared by every GYB Connect stack."""

from collections.abc import Mapping

import cdk_nag
from aws_cdk import Aspects, Stack
from cdk_nag import NagPackSuppression, NagSuppressions


def configure_security_checks(stack: Stack, suppressions: Mapping[str, str]) -> None:
    """Applies the AWS Solutions rule pack to a stack.

    Args:
        stack: Stack to scan during synthesis.
        suppressions: Rule id to the reason it is accepted for this stack.
    """
    Aspects.of(stack).add(cdk_nag.AwsSolutionsChecks(verbose=True))
    if suppressions:
        NagSuppressions.add_stack_suppressions(
            stack,
            [
                NagPackSuppression(id=rule_id, reason=reason)
                for rule_id, reason in suppressions.items()
            ],
        )
