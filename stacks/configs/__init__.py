from .environment_config import (
    BASIC_PROFILE,
    HARDENED_PROFILE,
    ComplianceProfile,
    ComplianceTier,
    EnvironmentConfig,
    get_compliance_profile,
    get_environment_config,
    normalize_environment_name,
    resolve_environment_name,
)

__all__ = [
    "BASIC_PROFILE",
    "HARDENED_PROFILE",
    "ComplianceProfile",
    "ComplianceTier",
    "EnvironmentConfig",
    "get_compliance_profile",
    "get_environment_config",
    "normalize_environment_name",
    "resolve_environment_name",
]
