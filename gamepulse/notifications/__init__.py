# gamepulse/notifications/__init__.py

"""
Notification targeting, delivery channels and the dispatcher.
"""

from .channels import ChannelResult, FCMChannel, NotificationChannel, NtfyChannel, OneSignalChannel
from .dispatcher import (
    DispatchResult, NotificationDispatcher, NotificationKind, NotificationRequest, build_deep_link
)
from .targeting import (
    AllOf, AnyOf, ConditionTarget, RecipientTarget, Tag, TopicTarget, TopicsTarget,
    all_of, any_of, sanitize_topic_name, team_tag
)

__all__ = [
    'ChannelResult',
    'NotificationChannel',
    'FCMChannel',
    'OneSignalChannel',
    'NtfyChannel',
    'NotificationDispatcher',
    'NotificationKind',
    'NotificationRequest',
    'DispatchResult',
    'build_deep_link',
    'Tag',
    'AllOf',
    'AnyOf',
    'all_of',
    'any_of',
    'RecipientTarget',
    'TopicTarget',
    'TopicsTarget',
    'ConditionTarget',
    'sanitize_topic_name',
    'team_tag',
]
