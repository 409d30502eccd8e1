from .dynamodb_stack import DynamoDBStack
from .rds_stack import RdsStack
from .s3_stack import S3Stack

__all__ = ["DynamoDBStack", "RdsStack", "S3Stack"]
