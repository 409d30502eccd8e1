from .api_gateway_stack import ApiGatewayStack

__all__ = ["ApiGatewayStack"]
