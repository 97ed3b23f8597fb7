"""Tests for the channel key schema."""

import pytest

from laneq.keys import ChannelKeys


class TestChannelKeys:
    """Tests for ChannelKeys."""

    def test_table_keys(self) -> None:
        """Every table lives under the channel prefix."""
        keys = ChannelKeys("emails")

        assert keys.message_id == "emails.message_id"
        assert keys.messages == "emails.messages"
        assert keys.priority == "emails.priority"
        assert keys.delayed == "emails.delayed"
        assert keys.reserved == "emails.reserved"
        assert keys.attempts == "emails.attempts"
        assert keys.moving_lock == "emails.moving_lock"

    def test_waiting_key_per_lane(self) -> None:
        """Each lane has its own waiting list."""
        keys = ChannelKeys("emails")

        assert keys.waiting("high") == "emails.waiting.high"
        assert keys.waiting("low") == "emails.waiting.low"

    def test_lane_of(self) -> None:
        """The lane is recovered from a waiting key."""
        keys = ChannelKeys("emails")

        assert keys.lane_of("emails.waiting.high") == "high"
        assert keys.lane_of(keys.waiting("a.b")) == "a.b"

    def test_lane_of_foreign_key(self) -> None:
        """Keys from another channel are rejected."""
        keys = ChannelKeys("emails")

        with pytest.raises(ValueError):
            keys.lane_of("other.waiting.high")

    def test_pattern(self) -> None:
        """The pattern matches every key of the channel."""
        assert ChannelKeys("emails").pattern == "emails.*"

    def test_frozen(self) -> None:
        """Key generators are immutable."""
        keys = ChannelKeys("emails")

        with pytest.raises(AttributeError):
            keys.channel = "other"  # type: ignore[misc]
