"""
Tests for read-state synchronization.

- format_unread_badge
- ReadStateTracker: de-duplication, out-of-order events, deletions,
  receipts, optimistic mark-read, memory bound
- ReadStateService: watermark updates, unread counts, read receipts
"""

from datetime import datetime, timedelta, timezone as dt_timezone

import pytest
from django.utils import timezone
from freezegun import freeze_time

from chat.models import MessageType, Participant
from chat.read_state import (
    EventKind,
    MessageEvent,
    ReadStateService,
    ReadStateTracker,
    format_unread_badge,
)
from chat.tests.factories import DirectConversationFactory, GroupFactory, MessageFactory, add_participant

ME = 1
OTHER = 2
CONV = "c1"
T0 = datetime(2026, 3, 1, 12, 0, tzinfo=dt_timezone.utc)


def _at(seconds):
    return T0 + timedelta(seconds=seconds)


def _event(mid, seconds, sender=OTHER, kind=EventKind.CREATED, conversation=CONV, message_type=MessageType.TEXT):
    return MessageEvent(
        message_id=mid,
        conversation_id=conversation,
        sender_id=sender,
        created_at=_at(seconds),
        kind=kind,
        message_type=message_type,
    )


class TestBadge:
    @pytest.mark.parametrize(
        "count,expected",
        [(0, ""), (-3, ""), (1, "1"), (99, "99"), (100, "99+"), (5000, "99+")],
    )
    def test_badge(self, count, expected):
        assert format_unread_badge(count) == expected

    def test_cap_from_settings(self, settings):
        settings.CHAT_UNREAD_BADGE_CAP = 9

        assert format_unread_badge(10) == "9+"


class TestTrackerIngest:
    def test_new_message_from_other_is_unread(self):
        tracker = ReadStateTracker(ME)

        delta = tracker.ingest(_event("m1", 1))

        assert delta.counted
        assert delta.unread_count == 1
        assert tracker.unread_ids(CONV) == ["m1"]

    def test_duplicate_event_yields_none(self):
        tracker = ReadStateTracker(ME)
        tracker.ingest(_event("m1", 1))

        assert tracker.ingest(_event("m1", 1)) is None
        assert tracker.unread_count(CONV) == 1

    def test_own_messages_never_unread(self):
        tracker = ReadStateTracker(ME)

        delta = tracker.ingest(_event("m1", 1, sender=ME))

        assert delta is not None
        assert not delta.counted
        assert tracker.unread_count(CONV) == 0

    def test_system_messages_never_unread(self):
        tracker = ReadStateTracker(ME)

        delta = tracker.ingest(_event("s1", 1, sender=None, message_type=MessageType.SYSTEM))

        assert not delta.counted
        assert tracker.unread_count(CONV) == 0

    def test_event_at_or_below_watermark_is_seen_not_unread(self):
        tracker = ReadStateTracker(ME)
        tracker.seed(CONV, _at(10), {})

        at_watermark = tracker.ingest(_event("m1", 10))
        below = tracker.ingest(_event("m0", 5))

        assert not at_watermark.counted
        assert not below.counted
        assert tracker.unread_count(CONV) == 0
        assert tracker.ingest(_event("m0", 5)) is None

    def test_out_of_order_arrival_counts_each_once(self):
        tracker = ReadStateTracker(ME)

        tracker.ingest(_event("m3", 3))
        tracker.ingest(_event("m1", 1))
        tracker.ingest(_event("m2", 2))
        tracker.ingest(_event("m1", 1))

        assert tracker.unread_ids(CONV) == ["m1", "m2", "m3"]

    def test_deletion_of_unread_decrements(self):
        tracker = ReadStateTracker(ME)
        tracker.ingest(_event("m1", 1))
        tracker.ingest(_event("m2", 2))

        delta = tracker.ingest(_event("m1", 1, kind=EventKind.DELETED))

        assert delta.kind == EventKind.DELETED
        assert delta.unread_count == 1
        assert tracker.unread_ids(CONV) == ["m2"]

    def test_repeated_deletion_yields_none(self):
        tracker = ReadStateTracker(ME)
        tracker.ingest(_event("m1", 1))
        tracker.ingest(_event("m1", 1, kind=EventKind.DELETED))

        assert tracker.ingest(_event("m1", 1, kind=EventKind.DELETED)) is None

    def test_deletion_before_creation_drops_late_creation(self):
        tracker = ReadStateTracker(ME)

        tracker.ingest(_event("m1", 1, kind=EventKind.DELETED))

        assert tracker.ingest(_event("m1", 1)) is None
        assert tracker.unread_count(CONV) == 0

    def test_conversations_are_independent(self):
        tracker = ReadStateTracker(ME)
        tracker.ingest(_event("m1", 1, conversation="a"))
        tracker.ingest(_event("m2", 2, conversation="b"))
        tracker.ingest(_event("m3", 3, conversation="b"))

        assert tracker.unread_counts() == {"a": 1, "b": 2}
        assert tracker.total_unread() == 3


class TestTrackerWatermark:
    def test_receipt_returns_newly_read_oldest_first(self):
        tracker = ReadStateTracker(ME)
        for mid, seconds in [("m2", 2), ("m1", 1), ("m3", 3)]:
            tracker.ingest(_event(mid, seconds))

        became_read = tracker.apply_receipt(CONV, _at(2))

        assert became_read == ["m1", "m2"]
        assert tracker.unread_ids(CONV) == ["m3"]
        assert tracker.last_read_at(CONV) == _at(2)

    def test_receipt_never_moves_backwards(self):
        tracker = ReadStateTracker(ME)
        tracker.apply_receipt(CONV, _at(10))
        tracker.ingest(_event("m1", 11))

        assert tracker.apply_receipt(CONV, _at(5)) == []
        assert tracker.apply_receipt(CONV, _at(10)) == []
        assert tracker.last_read_at(CONV) == _at(10)
        assert tracker.unread_count(CONV) == 1

    def test_message_arriving_after_receipt_below_watermark_not_unread(self):
        tracker = ReadStateTracker(ME)
        tracker.apply_receipt(CONV, _at(10))

        delta = tracker.ingest(_event("late", 8))

        assert not delta.counted

    def test_mark_read_up_to_message_id(self):
        tracker = ReadStateTracker(ME)
        tracker.ingest(_event("m1", 1))
        tracker.ingest(_event("m2", 2))

        assert tracker.mark_read(CONV, "m1") == ["m1"]
        assert tracker.unread_ids(CONV) == ["m2"]

    def test_mark_read_defaults_to_newest_seen(self):
        tracker = ReadStateTracker(ME)
        tracker.ingest(_event("m1", 1))
        tracker.ingest(_event("m2", 2))

        assert tracker.mark_read(CONV) == ["m1", "m2"]
        assert tracker.badge(CONV) == ""

    def test_mark_read_unknown_id_is_noop(self):
        tracker = ReadStateTracker(ME)
        tracker.ingest(_event("m1", 1))

        assert tracker.mark_read(CONV, "missing") == []
        assert tracker.unread_count(CONV) == 1

    def test_seed_replaces_state(self):
        tracker = ReadStateTracker(ME)
        tracker.ingest(_event("old", 1))

        tracker.seed(CONV, _at(5), {"m6": _at(6), "m7": _at(7), "m4": _at(4)})

        assert tracker.unread_ids(CONV) == ["m6", "m7"]
        assert tracker.ingest(_event("m6", 6)) is None
        assert tracker.ingest(_event("m4", 4)) is None

    def test_seed_accepts_events(self):
        tracker = ReadStateTracker(ME)

        tracker.seed(CONV, None, [_event("m1", 1), _event("m2", 2)])

        assert tracker.unread_count(CONV) == 2


class TestTrackerMemoryBound:
    def test_max_seen_must_be_positive(self):
        with pytest.raises(ValueError):
            ReadStateTracker(ME, max_seen=0)

    def test_prunes_below_watermark_first(self):
        tracker = ReadStateTracker(ME, max_seen=3)
        tracker.ingest(_event("m1", 1))
        tracker.ingest(_event("m2", 2))
        tracker.apply_receipt(CONV, _at(2))
        tracker.ingest(_event("m3", 3))

        tracker.ingest(_event("m4", 4))

        assert tracker.seen_count(CONV) == 3
        assert tracker.unread_ids(CONV) == ["m3", "m4"]
        # m1 was pruned; m2 is still remembered
        assert tracker.ingest(_event("m2", 2)) is None

    def test_bound_holds_with_everything_unread(self):
        tracker = ReadStateTracker(ME, max_seen=5)
        for i in range(20):
            tracker.ingest(_event(f"m{i}", i))

        assert tracker.seen_count(CONV) == 5
        assert tracker.unread_count(CONV) == 20
        # Unread ids stay de-duplicated after their seen entry is pruned
        assert tracker.ingest(_event("m0", 0)) is None

    def test_tombstone_outlives_unread_ids(self):
        tracker = ReadStateTracker(ME, max_seen=3)
        tracker.ingest(_event("late", 10, kind=EventKind.DELETED))
        for i in range(5):
            tracker.ingest(_event(f"m{i}", i))

        assert tracker.ingest(_event("late", 10)) is None
        assert tracker.unread_count(CONV) == 5
        assert tracker.seen_count(CONV) == 3

    def test_tombstones_alone_stay_bounded(self):
        tracker = ReadStateTracker(ME, max_seen=2)
        for i in range(4):
            tracker.ingest(_event(f"d{i}", i, kind=EventKind.DELETED))

        assert tracker.seen_count(CONV) == 2
        assert tracker.ingest(_event("d3", 3)) is None


class TestMessageEvent:
    def test_from_payload_with_sender_card(self):
        event = MessageEvent.from_payload(
            {
                "id": "abc",
                "conversation_id": "c9",
                "sender": {"id": 7},
                "created_at": "2026-03-01T12:00:00Z",
                "message_type": "text",
            }
        )

        assert event.sender_id == 7
        assert event.created_at == T0
        assert event.kind == EventKind.CREATED

    def test_from_message(self, user):
        message = MessageFactory(sender=user)

        event = MessageEvent.from_message(message, kind=EventKind.DELETED)

        assert event.message_id == str(message.id)
        assert event.conversation_id == str(message.conversation_id)
        assert event.sender_id == user.id


class TestReadStateService:
    @pytest.fixture
    def conversation(self, user, other_user):
        return DirectConversationFactory(user1=user, user2=other_user)

    def test_unread_rules(self, conversation, user, other_user):
        MessageFactory(conversation=conversation, sender=other_user)
        MessageFactory(conversation=conversation, sender=user)
        deleted = MessageFactory(conversation=conversation, sender=other_user)
        deleted.soft_delete()
        MessageFactory(conversation=conversation, sender=None, message_type=MessageType.SYSTEM, content="{}")

        assert ReadStateService.unread_count(conversation, user) == 1
        assert ReadStateService.unread_count(conversation, other_user) == 1

    def test_mark_read_up_to_message(self, conversation, user, other_user):
        with freeze_time("2026-03-01 10:00"):
            first = MessageFactory(conversation=conversation, sender=other_user)
        with freeze_time("2026-03-01 10:05"):
            MessageFactory(conversation=conversation, sender=other_user)

        result = ReadStateService.mark_read(conversation, user, first.id)

        assert result.success
        assert result.data.advanced
        assert result.data.last_read_at == first.created_at
        assert ReadStateService.unread_count(conversation, user) == 1

    def test_mark_read_is_monotonic_and_idempotent(self, conversation, user, other_user):
        with freeze_time("2026-03-01 10:00"):
            first = MessageFactory(conversation=conversation, sender=other_user)
        with freeze_time("2026-03-01 10:05"):
            second = MessageFactory(conversation=conversation, sender=other_user)

        assert ReadStateService.mark_read(conversation, user, second).data.advanced
        again = ReadStateService.mark_read(conversation, user, second)
        backwards = ReadStateService.mark_read(conversation, user, first)

        assert not again.data.advanced
        assert not backwards.data.advanced
        participant = Participant.objects.get(conversation=conversation, user=user)
        assert participant.last_read_at == second.created_at
        assert participant.last_read_message == second

    def test_mark_read_without_target_reads_everything(self, conversation, user, other_user):
        MessageFactory.create_batch(3, conversation=conversation, sender=other_user)

        result = ReadStateService.mark_read(conversation, user)

        assert result.data.advanced
        assert ReadStateService.unread_count(conversation, user) == 0

    def test_mark_read_without_target_twice(self, conversation, user, other_user):
        with freeze_time("2026-03-01 10:00"):
            latest = MessageFactory(conversation=conversation, sender=other_user)

        with freeze_time("2026-03-01 11:00"):
            first = ReadStateService.mark_read(conversation, user)
        with freeze_time("2026-03-01 11:05"):
            repeat = ReadStateService.mark_read(conversation, user)

        assert first.data.advanced
        assert first.data.last_read_at == latest.created_at
        assert not repeat.data.advanced
        assert repeat.data.last_read_at == latest.created_at

    def test_mark_read_empty_conversation(self, conversation, user):
        result = ReadStateService.mark_read(conversation, user)

        assert result.success
        assert not result.data.advanced
        assert result.data.last_read_at is None

    def test_mark_read_unknown_message(self, conversation, user):
        assert ReadStateService.mark_read(conversation, user, "not-a-uuid").error_code == "MESSAGE_NOT_FOUND"

    def test_mark_read_message_from_other_conversation(self, conversation, user):
        stranger = MessageFactory()

        assert ReadStateService.mark_read(conversation, user, stranger).error_code == "MESSAGE_NOT_FOUND"

    def test_mark_read_requires_participant(self, conversation):
        from authentication.tests.factories import UserFactory

        result = ReadStateService.mark_read(conversation, UserFactory())

        assert result.error_code == "NOT_PARTICIPANT"
        assert result.status_code == 403

    def test_advanced_receipt_is_broadcast(self, conversation, user, other_user, mocker):
        MessageFactory(conversation=conversation, sender=other_user)
        publish = mocker.patch("chat.broadcast.publish")

        ReadStateService.mark_read(conversation, user)
        ReadStateService.mark_read(conversation, user)

        event_types = [call.args[1] for call in publish.call_args_list]
        assert event_types == ["chat.read_receipt", "unread.count"]

    def test_unread_counts_in_bulk(self, user, other_user):
        direct = DirectConversationFactory(user1=user, user2=other_user)
        group = GroupFactory(created_by=other_user)
        add_participant(group, user)
        quiet = GroupFactory(created_by=user)
        MessageFactory.create_batch(2, conversation=direct, sender=other_user)
        MessageFactory.create_batch(3, conversation=group, sender=other_user)

        counts = ReadStateService.unread_counts(user)

        assert counts == {direct.id: 2, group.id: 3, quiet.id: 0}
        assert ReadStateService.total_unread(user) == 5

    def test_unread_counts_ignore_left_conversations(self, user, other_user):
        group = GroupFactory(created_by=other_user)
        participant = add_participant(group, user)
        MessageFactory(conversation=group, sender=other_user)
        participant.left_at = timezone.now()
        participant.save()

        assert ReadStateService.unread_counts(user) == {}

    def test_read_by_and_status(self, conversation, user, other_user):
        message = MessageFactory(conversation=conversation, sender=user)

        assert ReadStateService.message_status(message, user) == "sent"
        assert ReadStateService.message_status(message, other_user) == "sent"

        ReadStateService.mark_read(conversation, other_user)

        assert list(ReadStateService.read_by(message).values_list("user_id", flat=True)) == [other_user.id]
        assert ReadStateService.message_status(message, user) == "read"
        assert ReadStateService.message_status(message, other_user) == "read"
