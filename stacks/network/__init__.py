from .nacl_rules import NaclEntry, TierCidrs, build_tier_entries
from .vpc_stack import VpcStack, VpcStackProps

__all__ = ["NaclEntry", "TierCidrs", "VpcStack", "VpcStackProps", "build_tier_entries"]
