from .iam_stack import IamStack, IamStackProps

__all__ = ["IamStack", "IamStackProps"]
