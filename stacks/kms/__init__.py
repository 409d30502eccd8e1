from .kms_stack import KEY_SPECS, KeySpec, KmsStack, build_key_policy

__all__ = ["KEY_SPECS", "KeySpec", "KmsStack", "build_key_policy"]
