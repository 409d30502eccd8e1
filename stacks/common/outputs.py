"""Output management for GYB Connect stacks.

Every cross-stack value is exported as ``GybConnect-<Name>-<env>`` so the
export names stay unique per environment and predictable for consumers.
"""

from aws_cdk import CfnOutput
from constructs import Construct

EXPORT_PREFIX = "GybConnect"


class OutputManager:
    """Consistent management of CloudFormation outputs.

    Attributes:
        scope: The construct for which outputs are being managed.
        environment: Environment name appended to every export name.
    """

    def __init__(self, scope: Construct, environment: str) -> None:
        self.scope = scope
        self.environment = environment

    def export_name(self, name: str) -> str:
        return f"{EXPORT_PREFIX}-{name}-{self.environment}"

    def add_output(
        self,
        id_: str,
        value: str,
        description: str,
        export_name: str | None = None,
    ) -> CfnOutput:
        """Creates an exported CloudFormation output.

        Args:
            id_: Logical id of the output; also the export name when none is given.
            value: Value returned by ``aws cloudformation describe-stacks``.
            description: Human-readable description of the value.
            export_name: Optional export name without prefix or environment.

        Returns:
            The created output.
        """
        return CfnOutput(
            self.scope,
            id_,
            value=value,
            description=description,
            export_name=self.export_name(export_name or id_),
        )
