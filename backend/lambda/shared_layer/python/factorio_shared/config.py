"""factorio_shared.config — Environment configuration.

Every value can be overridden through the Lambda environment. Components take
these as constructor defaults so tests can inject their own.
"""

from __future__ import annotations

import os


def _parse_csv(raw: str) -> tuple[str, ...]:
    """Return non-empty, deduplicated values from a comma-separated string."""
    values: list[str] = []
    seen: set[str] = set()
    for part in str(raw or "").split(","):
        value = part.strip()
        if not value or value in seen:
            continue
        seen.add(value)
        values.append(value)
    return tuple(values)


__all__ = [
    "ASG_NAME",
    "AWS_REGION_NAME",
    "DISCORD_API_BASE",
    "DISCORD_APPLICATION_ID",
    "DISCORD_HTTP_TIMEOUT_SECONDS",
    "DISCORD_PUBLIC_KEY",
    "ECS_CLUSTER",
    "ECS_SERVICE",
    "INTERACTION_TABLE",
    "INTERACTION_TTL_SECONDS",
    "MOUNTING_DIR_PARAMETER",
    "PRESERVED_PARAMETERS",
    "SERVER_STATE_PARAMETER",
    "STACK_NAME",
]

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

AWS_REGION_NAME = os.environ.get("AWS_REGION_NAME", os.environ.get("AWS_REGION", "us-east-1"))

STACK_NAME = os.environ.get("STACK_NAME", "factorio-ecs-spot")
ASG_NAME = os.environ.get("ASG_NAME", f"{STACK_NAME}-asg")
ECS_CLUSTER = os.environ.get("ECS_CLUSTER", f"{STACK_NAME}-cluster")
ECS_SERVICE = os.environ.get("ECS_SERVICE", f"{STACK_NAME}-ecs-service")

SERVER_STATE_PARAMETER = os.environ.get("SERVER_STATE_PARAMETER", "ServerState")
MOUNTING_DIR_PARAMETER = os.environ.get("MOUNTING_DIR_PARAMETER", "MountingDir")

# Template parameters passed through with UsePreviousValue. An empty value
# makes the control plane discover them from DescribeStacks instead.
PRESERVED_PARAMETERS = _parse_csv(
    os.environ.get(
        "PRESERVED_PARAMETERS",
        "ECSAMI,EnableRcon,FactorioImageTag,HostedZoneId,InstanceType,"
        "KeyPairName,RecordName,SpotPrice,UpdateModsOnStart,YourIp",
    )
)

INTERACTION_TABLE = os.environ.get("INTERACTION_TABLE", "discord-interaction-tokens")
INTERACTION_TTL_SECONDS = int(os.environ.get("INTERACTION_TTL_SECONDS", "900"))

DISCORD_PUBLIC_KEY = os.environ.get(
    "DISCORD_PUBLIC_KEY",
    "5de3bcb92187f4dcc23ac1b2d2276caa0ccac57ab592f76ee57c4d7f0e692252",
)
DISCORD_APPLICATION_ID = os.environ.get("DISCORD_APPLICATION_ID", "1192583719236665424")
DISCORD_API_BASE = os.environ.get("DISCORD_API_BASE", "https://discord.com/api/v10")
DISCORD_HTTP_TIMEOUT_SECONDS = float(os.environ.get("DISCORD_HTTP_TIMEOUT_SECONDS", "5"))
