"""Tests for conversation routing, ordering and read tracking."""

from __future__ import annotations

import asyncio
import copy
import unittest
from datetime import timedelta

from onlyif_messaging.schemas.messaging import SendMessageInput
from onlyif_messaging.services.chat_service import ChatService
from onlyif_messaging.utils.errors import (
    ConversationNotFound,
    ForbiddenParticipantPair,
    UnknownParticipant,
    ValidationFailed,
)
from tests.helpers import StepClock, make_stores


def _send(sender_id, sender_role, recipient_id=None, recipient_role=None, text="hello", **extra) -> SendMessageInput:
    return SendMessageInput(
        sender_id=sender_id,
        sender_role=sender_role,
        recipient_id=recipient_id,
        recipient_role=recipient_role,
        message_text=text,
        **extra,
    )


class ChatServiceTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.conversations, self.messages, self.registry = make_stores()
        self.clock = StepClock()
        self.service = ChatService(self.messages, self.conversations, self.registry, clock=self.clock)


class SendMessageTests(ChatServiceTestCase):
    async def test_first_message_creates_buyer_agent_conversation(self) -> None:
        msg = await self.service.send_message(
            _send("b1", "buyer", "a1", "agent", text="Hi, interested in #42", property_id="42")
        )

        convo = await self.conversations.get(msg["conversation_id"])
        self.assertEqual(convo["type"], "buyer_agent")
        self.assertEqual([p["user_id"] for p in convo["participants"]], ["b1", "a1"])
        self.assertEqual(convo["property_id"], "42")
        self.assertEqual(convo["unread_counters"]["a1"], 1)
        self.assertEqual(convo["unread_counters"]["b1"], 0)
        self.assertEqual(convo["last_message"]["id"], msg["_id"])
        self.assertFalse(msg["read"])
        self.assertEqual(msg["message_text"], "Hi, interested in #42")
        self.assertEqual(len(await self.service.get_messages(convo["_id"])), 1)

    async def test_reply_updates_last_message_and_updated_at(self) -> None:
        first = await self.service.send_message(_send("b1", "buyer", "a1", "agent"))
        before = await self.conversations.get(first["conversation_id"])

        reply = await self.service.send_message(
            _send("a1", "agent", text="Happy to help", conversation_id=first["conversation_id"])
        )

        after = await self.conversations.get(first["conversation_id"])
        self.assertEqual(after["last_message"]["sender_id"], "a1")
        self.assertEqual(after["last_message"]["id"], reply["_id"])
        self.assertGreater(after["updated_at"], before["updated_at"])
        self.assertEqual(after["unread_counters"]["b1"], 1)
        self.assertEqual(len(await self.service.get_messages(first["conversation_id"])), 2)

    async def test_second_message_reuses_conversation_for_same_property(self) -> None:
        first = await self.service.send_message(_send("b1", "buyer", "a1", "agent", property_id="42"))
        again = await self.service.send_message(_send("a1", "agent", "b1", "buyer", property_id="42"))
        other = await self.service.send_message(_send("b1", "buyer", "a1", "agent", property_id="7"))

        self.assertEqual(first["conversation_id"], again["conversation_id"])
        self.assertNotEqual(first["conversation_id"], other["conversation_id"])

    async def test_buyer_to_seller_is_rejected_without_side_effects(self) -> None:
        await self.service.send_message(_send("b1", "buyer", "a1", "agent"))
        snapshot = (copy.deepcopy(self.conversations._items), copy.deepcopy(dict(self.messages._by_conversation)))

        with self.assertRaises(ForbiddenParticipantPair) as ctx:
            await self.service.send_message(_send("b1", "buyer", "s1", "seller", text="Direct offer"))

        self.assertIn("through an agent", ctx.exception.message)
        self.assertEqual(self.conversations._items, snapshot[0])
        self.assertEqual(dict(self.messages._by_conversation), snapshot[1])

    async def test_registry_roles_are_enforced_without_declared_roles(self) -> None:
        with self.assertRaises(ForbiddenParticipantPair):
            await self.service.send_message(_send("s1", None, "b1", None))
        self.assertEqual(await self.conversations.list_for_user("s1"), [])

    async def test_buyer_buyer_and_seller_seller_are_rejected(self) -> None:
        with self.assertRaises(ForbiddenParticipantPair):
            await self.service.send_message(_send("b1", "buyer", "b2", "buyer"))
        with self.assertRaises(ForbiddenParticipantPair):
            await self.service.send_message(_send("b1", None, "b2", None))

    async def test_agent_to_agent_is_allowed(self) -> None:
        msg = await self.service.send_message(_send("a1", "agent", "a2", "agent"))
        convo = await self.conversations.get(msg["conversation_id"])
        self.assertEqual(convo["type"], "agent_agent")

    async def test_forbidden_recipient_role_checked_before_conversation_lookup(self) -> None:
        with self.assertRaises(ForbiddenParticipantPair):
            await self.service.send_message(
                _send("b1", "buyer", "s1", "seller", conversation_id="does-not-exist")
            )

    async def test_validation_errors(self) -> None:
        with self.assertRaises(ValidationFailed):
            await self.service.send_message(_send("", "buyer", "a1", "agent"))
        with self.assertRaises(ValidationFailed):
            await self.service.send_message(_send("b1", "buyer", "a1", "agent", text="   "))
        with self.assertRaises(ValidationFailed):
            await self.service.send_message(_send("b1", "buyer"))
        with self.assertRaises(ValidationFailed):
            await self.service.send_message(_send("a1", "agent", "a1", "agent"))

    async def test_unknown_conversation_id_without_recipient(self) -> None:
        with self.assertRaises(ConversationNotFound):
            await self.service.send_message(_send("b1", "buyer", text="hi", conversation_id="missing"))

    async def test_stale_conversation_id_with_recipient_opens_conversation(self) -> None:
        msg = await self.service.send_message(_send("b1", "buyer", "a1", "agent", text="hi", conversation_id="conv-new"))

        self.assertNotEqual(msg["conversation_id"], "conv-new")
        convo = await self.conversations.get(msg["conversation_id"])
        self.assertEqual(convo["type"], "buyer_agent")
        self.assertEqual(convo["last_message"]["id"], msg["_id"])

        again = await self.service.send_message(_send("b1", "buyer", "a1", "agent", conversation_id="conv-new"))
        self.assertEqual(again["conversation_id"], msg["conversation_id"])

    async def test_stale_conversation_id_still_checks_registry_roles(self) -> None:
        # declared roles look fine, registry says s1 is a seller
        with self.assertRaises(ForbiddenParticipantPair):
            await self.service.send_message(_send("b1", "buyer", "s1", "agent", conversation_id="conv-new"))
        self.assertEqual(await self.conversations.list_for_user("b1"), [])

    async def test_reused_conversation_is_not_logged_as_new(self) -> None:
        await self.service.send_message(_send("b1", "buyer", "a1", "agent"))
        with self.assertLogs("onlyif_messaging.services.chat_service", level="INFO") as logs:
            await self.service.send_message(_send("b1", "buyer", "a1", "agent"))
        self.assertFalse(any("conversation" in line and "Opened" in line for line in logs.output))

    async def test_sender_must_belong_to_conversation(self) -> None:
        first = await self.service.send_message(_send("b1", "buyer", "a1", "agent"))
        with self.assertRaises(ValidationFailed):
            await self.service.send_message(_send("a2", "agent", text="hi", conversation_id=first["conversation_id"]))

    async def test_unknown_participant(self) -> None:
        with self.assertRaises(UnknownParticipant):
            await self.service.send_message(_send("b1", "buyer", "ghost", "agent"))

    async def test_declared_roles_used_when_trusted(self) -> None:
        service = ChatService(self.messages, self.conversations, self.registry, trust_declared_roles=True, clock=self.clock)
        msg = await service.send_message(_send("b1", "buyer", "new-agent", "agent"))
        convo = await self.conversations.get(msg["conversation_id"])
        self.assertEqual(convo["participants"][1], {"user_id": "new-agent", "name": "new-agent", "role": "agent", "email": ""})

    async def test_message_text_is_trimmed(self) -> None:
        msg = await self.service.send_message(_send("b1", "buyer", "a1", "agent", text="  hello there \n"))
        self.assertEqual(msg["message_text"], "hello there")

    async def test_participants_are_two_distinct_users(self) -> None:
        await self.service.send_message(_send("b1", "buyer", "a1", "agent"))
        await self.service.send_message(_send("a1", "agent", "s1", "seller"))
        await self.service.send_message(_send("a2", "agent", "a1", "agent"))
        for user in ("a1", "a2", "b1", "s1"):
            for convo in await self.conversations.list_for_user(user):
                ids = [p["user_id"] for p in convo["participants"]]
                self.assertEqual(len(ids), 2)
                self.assertEqual(len(set(ids)), 2)


class OrderingTests(ChatServiceTestCase):
    async def test_equal_timestamps_keep_insertion_order(self) -> None:
        self.service = ChatService(self.messages, self.conversations, self.registry, clock=StepClock(step=timedelta(0)))
        first = await self.service.send_message(_send("b1", "buyer", "a1", "agent", text="m0"))
        cid = first["conversation_id"]
        for i in range(1, 6):
            sender, role = ("a1", "agent") if i % 2 else ("b1", "buyer")
            await self.service.send_message(_send(sender, role, text=f"m{i}", conversation_id=cid))

        texts = [m["message_text"] for m in await self.service.get_messages(cid)]
        self.assertEqual(texts, [f"m{i}" for i in range(6)])

    async def test_concurrent_sends_are_ordered_and_last_message_is_latest(self) -> None:
        first = await self.service.send_message(_send("b1", "buyer", "a1", "agent", text="start"))
        cid = first["conversation_id"]

        await asyncio.gather(*[
            self.service.send_message(_send("a1" if i % 2 else "b1", None, text=f"c{i}", conversation_id=cid))
            for i in range(20)
        ])

        messages = await self.service.get_messages(cid)
        self.assertEqual(len(messages), 21)
        stamps = [m["timestamp"] for m in messages]
        self.assertEqual(stamps, sorted(stamps))
        convo = await self.conversations.get(cid)
        latest = max(messages, key=lambda m: m["timestamp"])
        self.assertEqual(convo["last_message"]["id"], latest["_id"])
        self.assertEqual(convo["updated_at"], latest["timestamp"])

    async def test_concurrent_first_messages_share_one_conversation(self) -> None:
        results = await asyncio.gather(
            self.service.send_message(_send("b1", "buyer", "a1", "agent", property_id="9")),
            self.service.send_message(_send("a1", "agent", "b1", "buyer", property_id="9")),
        )
        self.assertEqual(results[0]["conversation_id"], results[1]["conversation_id"])
        self.assertEqual(len(await self.conversations.list_for_user("b1")), 1)

    async def test_timestamp_never_goes_backwards(self) -> None:
        first = await self.service.send_message(_send("b1", "buyer", "a1", "agent"))
        self.clock.now = self.clock.now - timedelta(hours=1)

        later = await self.service.send_message(_send("a1", "agent", conversation_id=first["conversation_id"]))

        self.assertGreaterEqual(later["timestamp"], first["timestamp"])
        convo = await self.conversations.get(first["conversation_id"])
        self.assertEqual(convo["last_message"]["id"], later["_id"])

    async def test_list_conversations_most_recent_first(self) -> None:
        older = await self.service.send_message(_send("b1", "buyer", "a1", "agent", property_id="1"))
        newer = await self.service.send_message(_send("a2", "agent", "b1", "buyer", property_id="2"))
        items = await self.service.list_conversations("b1")
        self.assertEqual([c["_id"] for c in items], [newer["conversation_id"], older["conversation_id"]])

        await self.service.send_message(_send("b1", "buyer", text="bump", conversation_id=older["conversation_id"]))
        items = await self.service.list_conversations("b1")
        self.assertEqual(items[0]["_id"], older["conversation_id"])

    async def test_list_conversations_requires_user(self) -> None:
        with self.assertRaises(ValidationFailed):
            await self.service.list_conversations("  ")

    async def test_list_conversations_without_fallback_is_empty(self) -> None:
        await self.service.send_message(_send("a1", "agent", "s1", "seller"))
        self.assertEqual(await self.service.list_conversations("new-seller", "seller"), [])

    async def test_get_messages_unknown_conversation(self) -> None:
        with self.assertRaises(ConversationNotFound):
            await self.service.get_messages("nope")
        with self.assertRaises(ValidationFailed):
            await self.service.get_messages("")


class MarkReadTests(ChatServiceTestCase):
    async def asyncSetUp(self) -> None:
        first = await self.service.send_message(_send("b1", "buyer", "a1", "agent", text="one"))
        self.cid = first["conversation_id"]
        await self.service.send_message(_send("a1", "agent", text="two", conversation_id=self.cid))
        await self.service.send_message(_send("a1", "agent", text="three", conversation_id=self.cid))

    async def test_marks_only_messages_sent_to_reader(self) -> None:
        updated = await self.service.mark_read(self.cid, "b1")

        self.assertEqual(updated, 2)
        for msg in await self.service.get_messages(self.cid):
            self.assertEqual(msg["read"], msg["sender_id"] != "b1")
        convo = await self.conversations.get(self.cid)
        self.assertEqual(convo["unread_counters"]["b1"], 0)
        self.assertEqual(convo["unread_counters"]["a1"], 1)

    async def test_mark_read_is_idempotent(self) -> None:
        await self.service.mark_read(self.cid, "b1")
        once = (await self.service.get_messages(self.cid), await self.conversations.get(self.cid))

        updated = await self.service.mark_read(self.cid, "b1")
        twice = (await self.service.get_messages(self.cid), await self.conversations.get(self.cid))

        self.assertEqual(updated, 0)
        self.assertEqual(once, twice)

    async def test_mark_read_errors(self) -> None:
        with self.assertRaises(ValidationFailed):
            await self.service.mark_read(self.cid, None)
        with self.assertRaises(ConversationNotFound):
            await self.service.mark_read("missing", "b1")

    async def test_unread_summary(self) -> None:
        await self.service.send_message(_send("a2", "agent", "b1", "buyer", text="other"))
        summary = await self.service.unread_summary("b1")
        self.assertEqual(summary["total"], 3)
        self.assertEqual(summary["conversations"][self.cid], 2)

        await self.service.mark_read(self.cid, "b1")
        summary = await self.service.unread_summary("b1")
        self.assertEqual(summary["total"], 1)


class EnsureConversationTests(ChatServiceTestCase):
    async def test_creates_empty_conversation_once(self) -> None:
        convo = await self.service.ensure_conversation("b1", "a1", property_id="42", property_title="Condo")
        again = await self.service.ensure_conversation("a1", "b1", property_id="42")

        self.assertEqual(convo["_id"], again["_id"])
        self.assertIsNone(convo["last_message"])
        self.assertEqual(convo["property_title"], "Condo")
        self.assertEqual(await self.service.get_messages(convo["_id"]), [])

    async def test_rejects_buyer_seller(self) -> None:
        with self.assertRaises(ForbiddenParticipantPair):
            await self.service.ensure_conversation("b1", "s1")

    async def test_requires_other_user(self) -> None:
        with self.assertRaises(ValidationFailed):
            await self.service.ensure_conversation("b1", None)


if __name__ == "__main__":
    unittest.main()
