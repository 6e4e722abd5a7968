"""
Relay configuration.

Every value is a fixed constant for a deployment; only the listening
address may come from the environment.
"""

import os
from dataclasses import dataclass

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3001

POLICY_VIOLATION = 1008
GOING_AWAY = 1001


@dataclass(frozen=True)
class Settings:
    """Server settings shared by the store, sessions and sweeper."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    # Room limits
    history_capacity: int = 50
    max_message_length: int = 500

    # Liveness (seconds)
    ping_interval: float = 30.0
    terminate_sweep_interval: float = 10.0
    prune_sweep_interval: float = 30.0

    # Close codes
    policy_close_code: int = POLICY_VIOLATION
    shutdown_close_code: int = GOING_AWAY
    shutdown_close_reason: str = "Server shutting down"

    @classmethod
    def from_env(cls) -> 'Settings':
        """Build settings, taking the listening address from HOST/PORT."""
        return cls(
            host=os.getenv("HOST", DEFAULT_HOST),
            port=int(os.getenv("PORT", DEFAULT_PORT))
        )
