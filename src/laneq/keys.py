"""Store key schema for a queue channel.

Key format: {channel}.{table}[.{lane}]

Where:
- channel: queue name, the namespace shared by every engine on the store
- table: "messages", "priority", "waiting", "delayed", "reserved",
  "attempts", "message_id" or "moving_lock"
- lane: priority lane, waiting lists only

The layout is shared with other engines working on the same store, so
names must not change.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ChannelKeys:
    """Key generator for one channel."""

    channel: str

    @property
    def message_id(self) -> str:
        """Counter holding the last assigned job id."""
        return f"{self.channel}.message_id"

    @property
    def messages(self) -> str:
        """Hash of id -> "ttr;payload"."""
        return f"{self.channel}.messages"

    @property
    def priority(self) -> str:
        """Hash of id -> lane."""
        return f"{self.channel}.priority"

    @property
    def delayed(self) -> str:
        """Sorted set of id scored by ready-at timestamp."""
        return f"{self.channel}.delayed"

    @property
    def reserved(self) -> str:
        """Sorted set of id scored by lease expiry timestamp."""
        return f"{self.channel}.reserved"

    @property
    def attempts(self) -> str:
        """Hash of id -> reservation count."""
        return f"{self.channel}.attempts"

    @property
    def moving_lock(self) -> str:
        """Transient lease guarding sweeps, cancels and clears."""
        return f"{self.channel}.moving_lock"

    def waiting(self, lane: str) -> str:
        """List of ready ids for a lane."""
        return f"{self.channel}.waiting.{lane}"

    def lane_of(self, waiting_key: str) -> str:
        """Recover the lane name from a waiting list key."""
        prefix = f"{self.channel}.waiting."
        if not waiting_key.startswith(prefix):
            raise ValueError(f"Not a waiting list key for {self.channel!r}: {waiting_key}")
        return waiting_key[len(prefix) :]

    @property
    def pattern(self) -> str:
        """Glob matching every key of the channel."""
        return f"{self.channel}.*"
