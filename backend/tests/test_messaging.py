"""Tests for conversation resolution, message routing and read receipts.

Connections are represented by FakeWebSocket objects registered directly in
the connection directory, so these tests exercise the services without a
running server.
"""
import asyncio

import pytest

from together.chat.messaging import MessageTarget
from together.chat.store import DuplicateDirectConversation
from together.errors import (
    ConversationNotFound,
    InvalidMessage,
    MessageNotFound,
    NotAParticipant,
    UserNotFound,
)

from conftest import FakeWebSocket, connect, make_user


class TestConversationResolver:
    def test_first_contact_creates_direct_conversation(self, runtime):
        alice, bob = make_user("Alice"), make_user("Bob")
        resolution = runtime.resolver.resolve(alice, recipient_id=bob)
        assert resolution.created is True

        again = runtime.resolver.resolve(bob, recipient_id=alice)
        assert again.created is False
        assert again.conversation_id == resolution.conversation_id

    def test_explicit_conversation_id_passes_through(self, runtime):
        resolution = runtime.resolver.resolve("alice", conversation_id="conv-1")
        assert resolution.conversation_id == "conv-1"
        assert resolution.created is False

    def test_unknown_recipient(self, runtime):
        alice = make_user("Alice")
        with pytest.raises(UserNotFound):
            runtime.resolver.resolve(alice, recipient_id="ghost")

    def test_recipient_must_differ_from_sender(self, runtime):
        alice = make_user("Alice")
        with pytest.raises(InvalidMessage):
            runtime.resolver.resolve(alice, recipient_id=alice)

    def test_target_required(self, runtime):
        with pytest.raises(InvalidMessage):
            runtime.resolver.resolve("alice")

    def test_losing_concurrent_create_reuses_winner(self, runtime, monkeypatch):
        alice, bob = make_user("Alice"), make_user("Bob")
        winner = runtime.store.create_conversation([bob, alice])

        # Simulate the race: the lookup misses, then the insert collides.
        lookups = iter([None, winner])
        monkeypatch.setattr(runtime.store, "find_direct", lambda a, b: next(lookups))

        resolution = runtime.resolver.resolve(alice, recipient_id=bob)
        assert resolution.conversation_id == winner.id
        assert resolution.created is False

    def test_duplicate_insert_raises_in_store(self, runtime):
        alice, bob = make_user("Alice"), make_user("Bob")
        runtime.store.create_conversation([alice, bob])
        with pytest.raises(DuplicateDirectConversation):
            runtime.store.create_conversation([bob, alice])


class TestMessageRouter:
    @pytest.mark.asyncio
    async def test_empty_content_rejected(self, runtime):
        alice, bob = make_user("Alice"), make_user("Bob")
        with pytest.raises(InvalidMessage):
            await runtime.router.send(alice, MessageTarget(recipient_id=bob), "   ")
        assert runtime.store.list_for_user(alice) == []

    @pytest.mark.asyncio
    async def test_first_message_to_offline_recipient(self, runtime):
        alice, bob = make_user("Alice"), make_user("Bob")
        ws_alice, _ = connect(runtime, alice)

        result = await runtime.router.send(alice, MessageTarget(recipient_id=bob), "hi")
        assert result.created is True

        created = ws_alice.events("newConversationCreated")
        assert len(created) == 1
        assert created[0]["conversation"]["id"] == result.conversation_id
        assert {p["id"] for p in created[0]["conversation"]["participants"]} == {alice, bob}

        new_messages = ws_alice.events("newMessage")
        assert len(new_messages) == 1
        assert new_messages[0]["content"] == "hi"
        assert new_messages[0]["sender"]["id"] == alice
        assert new_messages[0]["readBy"] == [alice]
        assert new_messages[0]["conversationId"] == result.conversation_id

        listed = runtime.queries.list_for_user(bob)
        assert listed[0]["lastMessage"]["content"] == "hi"

    @pytest.mark.asyncio
    async def test_online_recipient_is_notified_and_joined(self, runtime):
        alice, bob = make_user("Alice"), make_user("Bob")
        ws_alice, _ = connect(runtime, alice)
        ws_bob, handle_bob = connect(runtime, bob)

        result = await runtime.router.send(alice, MessageTarget(recipient_id=bob), "hello")

        assert len(ws_bob.events("newConversationCreated")) == 1
        assert handle_bob in runtime.directory.members(result.conversation_id)
        assert ws_bob.events("newMessage")[0]["content"] == "hello"

    @pytest.mark.asyncio
    async def test_second_message_appends_to_same_conversation(self, runtime):
        alice, bob = make_user("Alice"), make_user("Bob")
        first = await runtime.router.send(alice, MessageTarget(recipient_id=bob), "one")
        second = await runtime.router.send(bob, MessageTarget(recipient_id=alice), "two")

        assert second.created is False
        assert second.conversation_id == first.conversation_id
        assert len(runtime.store.list_for_user(alice)) == 1

    @pytest.mark.asyncio
    async def test_last_message_matches_latest_append(self, runtime):
        alice, bob = make_user("Alice"), make_user("Bob")
        first = await runtime.router.send(alice, MessageTarget(recipient_id=bob), "m1")
        target = MessageTarget(conversation_id=first.conversation_id)
        results = [await runtime.router.send(bob, target, f"m{i}") for i in range(2, 6)]

        conversation = runtime.store.get(first.conversation_id)
        last = results[-1].message
        assert conversation.lastMessage.id == last.id
        assert conversation.lastMessage.senderId == bob
        assert conversation.lastMessage.content == "m5"
        assert conversation.lastMessage.timestamp == last.timestamp

    @pytest.mark.asyncio
    async def test_concurrent_sends_are_all_appended(self, runtime):
        alice, bob = make_user("Alice"), make_user("Bob")
        first = await runtime.router.send(alice, MessageTarget(recipient_id=bob), "start")
        target = MessageTarget(conversation_id=first.conversation_id)

        await asyncio.gather(*[runtime.router.send(alice, target, f"c{i}") for i in range(10)])

        conversation = runtime.store.get(first.conversation_id, with_messages=True)
        assert len(conversation.messages) == 11
        assert conversation.lastMessage.id == conversation.messages[-1].id

    @pytest.mark.asyncio
    async def test_unknown_conversation(self, runtime):
        alice = make_user("Alice")
        with pytest.raises(ConversationNotFound):
            await runtime.router.send(alice, MessageTarget(conversation_id="missing"), "hi")

    @pytest.mark.asyncio
    async def test_non_participant_cannot_send(self, runtime):
        alice, bob, mallory = make_user("Alice"), make_user("Bob"), make_user("Mallory")
        first = await runtime.router.send(alice, MessageTarget(recipient_id=bob), "hi")
        with pytest.raises(NotAParticipant):
            await runtime.router.send(mallory, MessageTarget(conversation_id=first.conversation_id), "x")


class TestReadReceipts:
    @pytest.mark.asyncio
    async def test_mark_read_adds_reader_and_broadcasts(self, runtime):
        alice, bob = make_user("Alice"), make_user("Bob")
        sent = await runtime.router.send(alice, MessageTarget(recipient_id=bob), "hi")
        ws_alice, _ = connect(runtime, alice)
        ws_bob, handle_bob = connect(runtime, bob)

        await runtime.receipts.mark_read(bob, sent.conversation_id, sent.message.id, handle_bob)

        message = runtime.store.get_message(sent.conversation_id, sent.message.id)
        assert sorted(message.readBy) == sorted([alice, bob])
        assert len(ws_alice.events("messageRead")) == 1
        assert len(ws_bob.events("messageRead")) == 1

    @pytest.mark.asyncio
    async def test_repeated_mark_read_always_rebroadcasts(self, runtime):
        alice, bob = make_user("Alice"), make_user("Bob")
        sent = await runtime.router.send(alice, MessageTarget(recipient_id=bob), "hi")
        ws_alice, _ = connect(runtime, alice)

        for _ in range(3):
            await runtime.receipts.mark_read(bob, sent.conversation_id, sent.message.id)

        message = runtime.store.get_message(sent.conversation_id, sent.message.id)
        assert message.readBy.count(bob) == 1
        assert alice in message.readBy
        assert len(ws_alice.events("messageRead")) == 3

    @pytest.mark.asyncio
    async def test_reporter_outside_room_gets_echo(self, runtime):
        alice, bob = make_user("Alice"), make_user("Bob")
        sent = await runtime.router.send(alice, MessageTarget(recipient_id=bob), "hi")
        ws = FakeWebSocket()
        handle = runtime.directory.register(ws, bob)

        await runtime.receipts.mark_read(bob, sent.conversation_id, sent.message.id, handle)

        events = ws.events("messageRead")
        assert len(events) == 1
        message = events[0]["conversation"]["messages"][0]
        assert bob in message["readBy"]

    @pytest.mark.asyncio
    async def test_unknown_message_is_swallowed(self, runtime):
        alice, bob = make_user("Alice"), make_user("Bob")
        sent = await runtime.router.send(alice, MessageTarget(recipient_id=bob), "hi")
        ws_alice, _ = connect(runtime, alice)

        assert await runtime.receipts.mark_read(bob, sent.conversation_id, "missing") is None
        assert await runtime.receipts.mark_read(bob, "missing", sent.message.id) is None
        assert ws_alice.events("messageRead") == []

    @pytest.mark.asyncio
    async def test_reporter_in_room_gets_exactly_one_frame(self, runtime):
        alice, bob = make_user("Alice"), make_user("Bob")
        sent = await runtime.router.send(alice, MessageTarget(recipient_id=bob), "hi")
        ws_alice, _ = connect(runtime, alice)
        ws_bob, handle_bob = connect(runtime, bob)
        assert handle_bob in runtime.directory.members(sent.conversation_id)

        await runtime.receipts.mark_read(bob, sent.conversation_id, sent.message.id, handle_bob)

        assert len(ws_bob.events("messageRead")) == 1
        assert len(ws_alice.events("messageRead")) == 1

    def test_require_message_errors(self, runtime):
        alice, bob, eve = make_user("Alice"), make_user("Bob"), make_user("Eve")
        conversation = runtime.store.create_conversation([alice, bob])

        with pytest.raises(MessageNotFound):
            runtime.receipts._require_message(bob, conversation.id, "missing")
        with pytest.raises(NotAParticipant):
            runtime.receipts._require_message(eve, conversation.id, "missing")
        with pytest.raises(ConversationNotFound):
            runtime.receipts._require_message(bob, "missing", "missing")

    @pytest.mark.asyncio
    async def test_outsider_read_is_dropped(self, runtime):
        alice, bob, eve = make_user("Alice"), make_user("Bob"), make_user("Eve")
        sent = await runtime.router.send(alice, MessageTarget(recipient_id=bob), "hi")
        ws_alice, _ = connect(runtime, alice)

        assert await runtime.receipts.mark_read(eve, sent.conversation_id, sent.message.id) is None
        assert eve not in runtime.store.get_message(sent.conversation_id, sent.message.id).readBy
        assert ws_alice.events("messageRead") == []
