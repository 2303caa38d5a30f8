"""Tests for item holders and live value subscriptions."""

from __future__ import annotations

import asyncio
from unittest.mock import Mock

import pytest

from localkv.storage import DecodeError, ItemHolder, Subscription, ValueKind

from .conftest import User, user_to_json


@pytest.fixture
async def box(storage):
    """Named container on the root storage."""
    return await storage.container("box")


class TestItemHolder:
    """Test suite for single-key handles."""

    async def test_get_set_remove(self, box):
        """Test the basic holder operations."""
        holder = box.item_holder("theme", str)

        assert await holder.get() is None
        assert not await holder.exists()

        await holder.set("dark")
        assert await holder.get() == "dark"
        assert await holder.exists()
        assert await box.get_string("theme") == "dark"

        await holder.remove()
        assert await holder.get() is None

    async def test_holder_is_cached(self, box):
        """Test that a key has one holder per type."""
        assert box.item_holder("k", str) is box.item_holder("k", str)

    async def test_holder_type_conflict(self, box):
        """Test that another type for the same key is rejected."""
        box.item_holder("k", str)
        with pytest.raises(ValueError):
            box.item_holder("k", int)

    async def test_holder_sees_container_writes(self, box):
        """Test that holders read writes made through the container."""
        holder = box.item_holder("count", int)
        await box.set_int("count", 4)
        assert await holder.get() == 4

    async def test_mutations_notify_container(self, box):
        """Test that holder changes fire the container's listeners."""
        calls = []
        box.add_key_listener("k", lambda: calls.append("k"))
        box.add_listener(lambda: calls.append("any"))
        holder = box.item_holder("k", int)

        await holder.set(1)
        await holder.remove()
        await holder.remove()

        assert calls == ["k", "any", "k", "any"]

    async def test_custom_on_changed(self, box):
        """Test that a custom callback replaces the default notification."""
        changed = []

        async def on_changed():
            changed.append(await holder.get())

        holder = ItemHolder(box, "k", ValueKind.STRING, on_changed=on_changed)
        await holder.set("a")
        await holder.remove()

        assert changed == ["a", None]


class TestJsonItemHolder:
    """Test suite for holders of JSON records."""

    async def test_record_round_trip(self, box):
        """Test storing and reading a record."""
        holder = box.json_item_holder("me", to_json=user_to_json, from_json=User.from_json)

        await holder.set(User(id="u1", name="Ada", age=36))

        assert await holder.get() == User(id="u1", name="Ada", age=36)
        assert await box.get_json("me") == {"id": "u1", "name": "Ada", "age": 36}

    async def test_same_converters_share_holder(self, box):
        """Test that asking again with the same converters returns the same holder."""
        first = box.json_item_holder("me", to_json=user_to_json, from_json=User.from_json)
        second = box.json_item_holder("me", to_json=user_to_json, from_json=User.from_json)
        assert first is second

    async def test_converter_conflict(self, box):
        """Test that other converters for the same key are rejected."""
        box.json_item_holder("me", to_json=user_to_json, from_json=User.from_json)
        with pytest.raises(ValueError):
            box.json_item_holder("me", to_json=dict, from_json=User.from_json)
        with pytest.raises(ValueError):
            box.item_holder("me", dict)

    async def test_shape_mismatch(self, box):
        """Test that a record missing fields raises a decode error."""
        holder = box.json_item_holder("me", to_json=user_to_json, from_json=User.from_json)
        await box.set_json("me", {"unexpected": True})

        with pytest.raises(DecodeError):
            await holder.get()


class TestSubscriptions:
    """Test suite for live value sequences."""

    async def test_values_follow_writes(self, box):
        """Test that a subscription yields the current value and then each change."""
        holder = box.item_holder("k", str)
        subscription = holder.subscribe()

        first = await anext(subscription)
        await box.set_string("k", "v1")
        await box.set_string("k", "v2")

        assert first is None
        assert await anext(subscription) == "v1"
        assert await anext(subscription) == "v2"
        subscription.cancel()

    async def test_late_subscriber_starts_with_current_value(self, box):
        """Test that a new subscription replays only the current value."""
        holder = box.item_holder("k", str)
        await holder.set("v1")
        await holder.set("v2")

        async with holder.subscribe() as subscription:
            assert await anext(subscription) == "v2"

    async def test_changes_from_any_path(self, box):
        """Test that holder, container and bulk writes all reach subscribers."""
        holder = box.item_holder("k", int)
        subscription = holder.subscribe()
        await anext(subscription)

        await holder.set(1)
        await box.set("k", 2)
        await box.set_all({"k": 3, "other": 9})
        await box.remove_all(["k"])

        values = [await anext(subscription) for _ in range(4)]
        assert values == [1, 2, 3, None]
        subscription.cancel()

    async def test_other_keys_ignored(self, box):
        """Test that changes to other keys produce no values."""
        subscription = box.stream("k", str)
        await anext(subscription)

        await box.set_string("other", "x")
        await box.set_string("k", "mine")

        assert await anext(subscription) == "mine"
        subscription.cancel()

    async def test_cancel_is_independent(self, box):
        """Test that cancelling one subscription leaves others running."""
        holder = box.item_holder("k", str)
        first = holder.subscribe()
        second = holder.subscribe()
        await anext(first)
        await anext(second)

        first.cancel()
        await box.set_string("k", "v")

        assert [value async for value in first] == []
        assert await anext(second) == "v"
        second.cancel()

    async def test_cancel_ends_iteration(self, box):
        """Test that async iteration stops after cancel."""
        holder = box.item_holder("k", str)
        seen = []

        async with holder.subscribe() as subscription:
            async for value in subscription:
                seen.append(value)
                if value is None:
                    await holder.set("last")
                else:
                    subscription.cancel()
            assert not box.listeners.has_key_listeners("k")

        assert seen == [None, "last"]

    async def test_iterating_holder_starts_new_subscription(self, box):
        """Test that each async for over a holder replays the current value."""
        holder = box.item_holder("k", str)
        await holder.set("v")

        for _ in range(2):
            async for value in holder:
                assert value == "v"
                break

    async def test_break_out_of_holder_loop_unregisters(self, box):
        """Test that leaving an async for over a holder drops its listener."""
        holder = box.item_holder("k", str)

        async for value in holder:
            assert box.has_listeners()
            break
        for _ in range(3):
            await asyncio.sleep(0)

        assert not box.has_listeners()

    async def test_error_in_holder_loop_unregisters(self, box):
        """Test that an exception inside the loop body drops the listener."""
        holder = box.item_holder("k", str)

        with pytest.raises(RuntimeError):
            async for value in holder:
                raise RuntimeError("stop")
        for _ in range(3):
            await asyncio.sleep(0)

        assert not box.has_listeners()

    async def test_clear_ends_subscriptions(self, box):
        """Test that clearing the container ends live subscriptions."""
        await box.set_string("k", "v")
        subscription = box.stream("k", str)
        assert await anext(subscription) == "v"

        await box.clear()

        assert [value async for value in subscription] == [None]
        assert not subscription.is_active

    async def test_close_ends_subscriptions(self, box):
        """Test that closing the container ends live subscriptions."""
        subscription = box.stream("k", str)
        await anext(subscription)

        await box.close()

        assert [value async for value in subscription] == []

    async def test_decode_error_reaches_subscriber(self, box):
        """Test that a value that cannot be read fails the subscriber, not the writer."""
        subscription = box.stream("k", int)
        await anext(subscription)

        await box.set_string("k", "not a number")

        with pytest.raises(DecodeError):
            await anext(subscription)
        subscription.cancel()


class TestSubscriptionCancel:
    """Test suite for cancelling subscriptions."""

    def _subscription(self, value=None):
        async def fetch():
            return value

        register = Mock()
        unregister = Mock()
        return Subscription(fetch, register, unregister), register, unregister

    async def test_unregisters_exactly_once(self):
        """Test that repeated cancel removes the listener once."""
        subscription, register, unregister = self._subscription("v")
        assert await anext(subscription) == "v"
        register.assert_called_once()

        subscription.cancel()
        subscription.cancel()
        await subscription.aclose()

        unregister.assert_called_once_with(register.call_args.args[0])

    async def test_concurrent_cancel(self):
        """Test that cancelling from several tasks removes the listener once."""
        subscription, _, unregister = self._subscription()
        await anext(subscription)

        await asyncio.gather(*(subscription.aclose() for _ in range(5)))

        unregister.assert_called_once()

    async def test_cancel_before_start(self):
        """Test that a subscription cancelled before iteration never registers."""
        subscription, register, unregister = self._subscription()
        subscription.cancel()

        assert [value async for value in subscription] == []
        register.assert_not_called()
        unregister.assert_not_called()
