"""AWS CDK stacks for the GYB Connect PCI DSS platform."""
