"""Network ACL rule generation for the three-tier GYB Connect VPC.

NACLs are stateless, so every allowed flow between tiers needs a matching
rule on both sides: the initiator's egress plus return traffic, and the
receiver's ingress plus its reply. Rules are generated per subnet CIDR so a
tier spanning several availability zones gets one numbered entry per zone.

Tier model (PCI DSS 1.2, 1.3):
    public  -> internet-facing load balancers and NAT gateways
    private -> application compute, reachable only from the public tier
    data    -> databases, reachable only from the private tier on 5432
"""

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Final

ANY_IPV4: Final[str] = "0.0.0.0/0"
HTTP_PORT: Final[int] = 80
HTTPS_PORT: Final[int] = 443
POSTGRES_PORT: Final[int] = 5432
ALL_TCP: Final[tuple[int, int]] = (1, 65535)
EPHEMERAL_PORTS: Final[tuple[int, int]] = (1024, 65535)

MIN_RULE_NUMBER: Final[int] = 1
MAX_RULE_NUMBER: Final[int] = 32766

PUBLIC_TIER: Final[str] = "public"
PRIVATE_TIER: Final[str] = "private"
DATA_TIER: Final[str] = "data"
TIERS: Final[tuple[str, ...]] = (PUBLIC_TIER, PRIVATE_TIER, DATA_TIER)

# Used when a tier has no subnets, e.g. an imported VPC without isolated subnets
FALLBACK_TIER_CIDRS: Final[dict[str, str]] = {
    PUBLIC_TIER: "10.0.1.0/24",
    PRIVATE_TIER: "10.0.2.0/24",
    DATA_TIER: "10.0.3.0/24",
}


class Direction(str, Enum):
    INGRESS = "ingress"
    EGRESS = "egress"


@dataclass(frozen=True)
class NaclEntry:
    """A single numbered NACL allow rule.

    Attributes:
        entry_id: Construct id of the entry, unique within its NACL.
        cidr: IPv4 range the rule matches, ``0.0.0.0/0`` for any.
        rule_number: Evaluation order; lower numbers match first.
        port_from: First TCP port of the range.
        port_to: Last TCP port of the range.
        direction: Ingress or egress.
    """

    entry_id: str
    cidr: str
    rule_number: int
    port_from: int
    port_to: int
    direction: Direction

    @property
    def is_any_ipv4(self) -> bool:
        return self.cidr == ANY_IPV4

    @property
    def is_single_port(self) -> bool:
        return self.port_from == self.port_to


@dataclass(frozen=True)
class TierCidrs:
    """Subnet CIDRs of each VPC tier."""

    public: Sequence[str] = ()
    private: Sequence[str] = ()
    data: Sequence[str] = ()

    def for_tier(self, tier: str) -> list[str]:
        cidrs = list(getattr(self, tier))
        return cidrs or [FALLBACK_TIER_CIDRS[tier]]


def _fan_out(
    entry_id: str,
    cidrs: Sequence[str],
    base_rule: int,
    ports: tuple[int, int],
    direction: Direction,
) -> list[NaclEntry]:
    """Creates one entry per CIDR with consecutive rule numbers."""
    return [
        NaclEntry(
            entry_id=f"{entry_id}{index}",
            cidr=cidr,
            rule_number=base_rule + index,
            port_from=ports[0],
            port_to=ports[1],
            direction=direction,
        )
        for index, cidr in enumerate(cidrs)
    ]


def _single(
    entry_id: str,
    cidr: str,
    rule_number: int,
    ports: tuple[int, int],
    direction: Direction,
) -> NaclEntry:
    return NaclEntry(
        entry_id=entry_id,
        cidr=cidr,
        rule_number=rule_number,
        port_from=ports[0],
        port_to=ports[1],
        direction=direction,
    )


def public_tier_entries(cidrs: TierCidrs) -> list[NaclEntry]:
    """Internet-facing tier: HTTP(S) in, anything to the private tier out."""
    return [
        _single("AllowHttpsInbound", ANY_IPV4, 100, (HTTPS_PORT, HTTPS_PORT), Direction.INGRESS),
        _single("AllowHttpInbound", ANY_IPV4, 110, (HTTP_PORT, HTTP_PORT), Direction.INGRESS),
        _single("AllowEphemeralInbound", ANY_IPV4, 120, EPHEMERAL_PORTS, Direction.INGRESS),
        *_fan_out(
            "AllowToPrivate",
            cidrs.for_tier(PRIVATE_TIER),
            100,
            ALL_TCP,
            Direction.EGRESS,
        ),
        _single("AllowHttpsOutbound", ANY_IPV4, 110, (HTTPS_PORT, HTTPS_PORT), Direction.EGRESS),
        _single("AllowHttpOutbound", ANY_IPV4, 120, (HTTP_PORT, HTTP_PORT), Direction.EGRESS),
        _single("AllowEphemeralOutbound", ANY_IPV4, 130, EPHEMERAL_PORTS, Direction.EGRESS),
    ]


def private_tier_entries(cidrs: TierCidrs) -> list[NaclEntry]:
    """Application tier: traffic from the public tier, PostgreSQL to the data tier."""
    return [
        *_fan_out(
            "AllowFromPublic",
            cidrs.for_tier(PUBLIC_TIER),
            100,
            ALL_TCP,
            Direction.INGRESS,
        ),
        # Return traffic for outbound HTTPS through the NAT gateway
        _single("AllowEphemeralInbound", ANY_IPV4, 140, EPHEMERAL_PORTS, Direction.INGRESS),
        *_fan_out(
            "AllowPostgresToData",
            cidrs.for_tier(DATA_TIER),
            100,
            (POSTGRES_PORT, POSTGRES_PORT),
            Direction.EGRESS,
        ),
        _single("AllowHttpsOutbound", ANY_IPV4, 120, (HTTPS_PORT, HTTPS_PORT), Direction.EGRESS),
        *_fan_out(
            "AllowToPublic",
            cidrs.for_tier(PUBLIC_TIER),
            130,
            ALL_TCP,
            Direction.EGRESS,
        ),
    ]


def data_tier_entries(cidrs: TierCidrs) -> list[NaclEntry]:
    """Database tier: PostgreSQL with the private tier only, no internet path."""
    private_cidrs = cidrs.for_tier(PRIVATE_TIER)
    return [
        *_fan_out(
            "AllowPostgresFromPrivate",
            private_cidrs,
            100,
            (POSTGRES_PORT, POSTGRES_PORT),
            Direction.INGRESS,
        ),
        *_fan_out(
            "AllowEphemeralFromPrivate",
            private_cidrs,
            110,
            EPHEMERAL_PORTS,
            Direction.INGRESS,
        ),
        *_fan_out(
            "AllowPostgresToPrivate",
            private_cidrs,
            100,
            (POSTGRES_PORT, POSTGRES_PORT),
            Direction.EGRESS,
        ),
        *_fan_out(
            "AllowEphemeralToPrivate",
            private_cidrs,
            120,
            EPHEMERAL_PORTS,
            Direction.EGRESS,
        ),
    ]


def validate_entries(tier: str, entries: Sequence[NaclEntry]) -> None:
    """Checks rule numbers are in range and unique per direction.

    Raises:
        ValueError: If a rule number is out of range or used twice.
    """
    seen: set[tuple[Direction, int]] = set()
    for entry in entries:
        if not MIN_RULE_NUMBER <= entry.rule_number <= MAX_RULE_NUMBER:
            msg = (
                f"Rule number {entry.rule_number} of {tier} NACL entry "
                f"'{entry.entry_id}' is outside {MIN_RULE_NUMBER}-{MAX_RULE_NUMBER}"
            )
            raise ValueError(msg)
        key = (entry.direction, entry.rule_number)
        if key in seen:
            msg = (
                f"Duplicate {entry.direction.value} rule number {entry.rule_number} "
                f"in {tier} NACL (entry '{entry.entry_id}')"
            )
            raise ValueError(msg)
        seen.add(key)


def build_tier_entries(cidrs: TierCidrs) -> dict[str, list[NaclEntry]]:
    """Generates validated NACL entries for every tier.

    Args:
        cidrs: Subnet CIDRs of each tier.

    Returns:
        Mapping of tier name to its ordered entries.

    Raises:
        ValueError: If any tier ends up with clashing or invalid rule numbers,
            which happens when a tier spans too many subnets.
    """
    entries = {
        PUBLIC_TIER: public_tier_entries(cidrs),
        PRIVATE_TIER: private_tier_entries(cidrs),
        DATA_TIER: data_tier_entries(cidrs),
    }
    for tier, tier_entries in entries.items():
        validate_entries(tier, tier_entries)
    return entries
