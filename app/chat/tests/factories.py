"""
Factory Boy factories for chat models.

Usage:
    from chat.tests.factories import GroupFactory, MessageFactory, add_participant

    group = GroupFactory(created_by=owner)          # owner participant included
    add_participant(group, member)
    message = MessageFactory(conversation=group, sender=member)

Services are the normal way to build conversations in service and view
tests; factories cover models and read-state tests that need exact
timestamps.
"""

import factory

from authentication.tests.factories import UserFactory
from chat.models import (
    Conversation,
    ConversationType,
    DirectConversationPair,
    GroupJoinRequest,
    Message,
    MessageType,
    Participant,
    ParticipantRole,
)


class GroupFactory(factory.django.DjangoModelFactory):
    """Group conversation whose creator is its owner."""

    class Meta:
        model = Conversation
        skip_postgeneration_save = True

    conversation_type = ConversationType.GROUP
    title = factory.Sequence(lambda n: f"Study Group {n}")
    created_by = factory.SubFactory(UserFactory)
    participant_count = 1

    @factory.post_generation
    def owner(self, create, extracted, **kwargs):
        if create:
            Participant.objects.create(conversation=self, user=self.created_by, role=ParticipantRole.OWNER)


class DirectConversationFactory(factory.django.DjangoModelFactory):
    """
    Direct conversation between ``user1`` and ``user2``.

    Usage:
        DirectConversationFactory(user1=alice, user2=bob)
    """

    class Meta:
        model = Conversation

    conversation_type = ConversationType.DIRECT
    participant_count = 2
    user1 = factory.SubFactory(UserFactory)
    user2 = factory.SubFactory(UserFactory)

    @classmethod
    def _create(cls, model_class, *args, user1=None, user2=None, **kwargs):
        conversation = super()._create(model_class, *args, **kwargs)
        lower, higher = sorted([user1, user2], key=lambda u: u.pk)
        DirectConversationPair.objects.create(conversation=conversation, user_lower=lower, user_higher=higher)
        Participant.objects.create(conversation=conversation, user=lower)
        Participant.objects.create(conversation=conversation, user=higher)
        return conversation


def add_participant(conversation, user, role=ParticipantRole.MEMBER):
    participant = Participant.objects.create(conversation=conversation, user=user, role=role)
    conversation.participant_count += 1
    conversation.save(update_fields=["participant_count"])
    return participant


class MessageFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Message

    conversation = factory.SubFactory(GroupFactory)
    sender = factory.SubFactory(UserFactory)
    message_type = MessageType.TEXT
    content = factory.Faker("sentence")


class JoinRequestFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = GroupJoinRequest

    conversation = factory.SubFactory(GroupFactory)
    user = factory.SubFactory(UserFactory)
    academic_year = "Year 2"
    major = "Physics"
    interest_statement = "I want to study together."
