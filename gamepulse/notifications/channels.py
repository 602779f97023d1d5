# gamepulse/notifications/channels.py

"""
Notification Channels

Delivery backends behind a common contract. Each send returns a
ChannelResult instead of raising, so the dispatcher can count and log
failures without special-casing any backend.

- FCMChannel: Firebase Cloud Messaging (topics, conditions, device tokens)
- OneSignalChannel: OneSignal REST API (tag filters, subscription ids)
- NtfyChannel: ntfy.sh (single topics only)
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp
import firebase_admin
from aiohttp import ClientSession, ClientTimeout
from firebase_admin import credentials, messaging
from firebase_admin.exceptions import FirebaseError

from ..exceptions import ChannelNotConfiguredError
from .targeting import TagExpression

logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = 'gamepulse'


@dataclass(frozen=True)
class ChannelResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class NotificationChannel:
    """
    Base class for delivery channels.

    Subclasses implement send_to_topic and override the condition and
    recipient sends when they support them.
    """

    name = 'channel'
    supports_conditions = False
    supports_recipients = False

    def initialize(self) -> bool:
        """Prepare credentials; returns whether the channel can send."""
        return self.is_configured()

    def is_configured(self) -> bool:
        return True

    async def send_to_topic(self, topic: str, title: str, body: str,
                            data: Dict[str, str]) -> ChannelResult:
        raise NotImplementedError

    async def send_to_condition(self, expression: TagExpression, title: str, body: str,
                                data: Dict[str, str]) -> ChannelResult:
        return ChannelResult(False, error=f"{self.name} does not support conditions")

    async def send_to_recipient(self, token: str, title: str, body: str,
                                data: Dict[str, str]) -> ChannelResult:
        return ChannelResult(False, error=f"{self.name} does not support direct recipients")

    async def close(self):
        pass


def _string_data(data: Dict[str, Any]) -> Dict[str, str]:
    return {str(k): '' if v is None else str(v) for k, v in (data or {}).items()}


class FCMChannel(NotificationChannel):
    """Firebase Cloud Messaging through the firebase_admin SDK."""

    name = 'fcm'
    supports_conditions = True
    supports_recipients = True

    def __init__(self, config, app: Optional[firebase_admin.App] = None):
        self.config = config
        self._app = app

    def initialize(self) -> bool:
        if self._app is not None:
            return True
        cred = self._credentials()
        if cred is None:
            logger.warning("FCM not configured: no Firebase credentials provided")
            return False
        try:
            try:
                self._app = firebase_admin.get_app(FIREBASE_APP_NAME)
            except ValueError:
                self._app = firebase_admin.initialize_app(cred, name=FIREBASE_APP_NAME)
            logger.info("Firebase Admin SDK initialized successfully")
            return True
        except (ValueError, OSError) as e:
            logger.error(f"Failed to initialize Firebase Admin SDK: {e}")
            return False

    def _credentials(self):
        cfg = self.config
        try:
            if cfg.firebase_credentials_path:
                return credentials.Certificate(cfg.firebase_credentials_path)
            if cfg.firebase_project_id and cfg.firebase_client_email and cfg.firebase_private_key:
                return credentials.Certificate({
                    'type': 'service_account',
                    'project_id': cfg.firebase_project_id,
                    'client_email': cfg.firebase_client_email,
                    'private_key': cfg.firebase_private_key.replace('\\n', '\n'),
                    'token_uri': 'https://oauth2.googleapis.com/token',
                })
        except (ValueError, OSError) as e:
            logger.error(f"Invalid Firebase credentials: {e}")
        return None

    def is_configured(self) -> bool:
        return self._app is not None

    def _build_message(self, title: str, body: str, data: Dict[str, str], **target) -> messaging.Message:
        return messaging.Message(
            notification=messaging.Notification(title=title, body=body),
            data=_string_data(data),
            android=messaging.AndroidConfig(
                priority='high',
                notification=messaging.AndroidNotification(
                    channel_id='goals',
                    priority='high',
                    default_sound=True,
                ),
            ),
            apns=messaging.APNSConfig(
                payload=messaging.APNSPayload(
                    aps=messaging.Aps(sound='default', badge=1)
                )
            ),
            **target
        )

    async def _send(self, message: messaging.Message) -> ChannelResult:
        try:
            if self._app is None:
                raise ChannelNotConfiguredError('FCM not configured')
            # firebase_admin is blocking; keep it off the event loop
            message_id = await asyncio.to_thread(messaging.send, message, app=self._app)
            return ChannelResult(True, message_id=message_id)
        except ChannelNotConfiguredError as e:
            return ChannelResult(False, error=str(e))
        except (FirebaseError, ValueError) as e:
            return ChannelResult(False, error=str(e))

    async def send_to_topic(self, topic, title, body, data):
        return await self._send(self._build_message(title, body, data, topic=topic))

    async def send_to_condition(self, expression, title, body, data):
        condition = expression.to_fcm_condition()
        logger.debug(f"FCM condition: {condition}")
        return await self._send(self._build_message(title, body, data, condition=condition))

    async def send_to_recipient(self, token, title, body, data):
        return await self._send(self._build_message(title, body, data, token=token))


class HttpChannel(NotificationChannel):
    """Channel that posts JSON over a lazily created aiohttp session."""

    def __init__(self, config, session: Optional[ClientSession] = None):
        self.config = config
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> ClientSession:
        if self._session is None or self._session.closed:
            self._session = ClientSession(timeout=ClientTimeout(total=self.config.channel_timeout))
            self._owns_session = True
        return self._session

    async def close(self):
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None


def onesignal_tag_filter(tag: str) -> Dict[str, str]:
    return {'field': 'tag', 'key': tag, 'relation': '=', 'value': 'true'}


def onesignal_filters(expression: TagExpression) -> List[Dict[str, str]]:
    """
    Render a tag expression as a OneSignal filter list.

    OneSignal evaluates adjacent filters with AND and splits groups on an
    {"operator": "OR"} entry, i.e. disjunctive normal form.
    """
    filters: List[Dict[str, str]] = []
    for index, clause in enumerate(expression.to_dnf()):
        if index:
            filters.append({'operator': 'OR'})
        for position, tag in enumerate(clause):
            if position:
                filters.append({'operator': 'AND'})
            filters.append(onesignal_tag_filter(tag))
    return filters


class OneSignalChannel(HttpChannel):
    """OneSignal REST API."""

    name = 'onesignal'
    supports_conditions = True
    supports_recipients = True

    def is_configured(self) -> bool:
        return bool(self.config.onesignal_app_id and self.config.onesignal_rest_api_key)

    def build_payload(self, title: str, body: str, data: Dict[str, str], **target) -> Dict[str, Any]:
        payload = {
            'app_id': self.config.onesignal_app_id,
            'headings': {'en': title},
            'contents': {'en': body},
            'data': _string_data(data),
        }
        if data and data.get('url'):
            payload['url'] = data['url']
        payload.update(target)
        return payload

    async def _post(self, payload: Dict[str, Any]) -> ChannelResult:
        if not self.is_configured():
            return ChannelResult(False, error='OneSignal not configured')
        headers = {
            'Content-Type': 'application/json',
            'Authorization': f'Basic {self.config.onesignal_rest_api_key}',
        }
        try:
            session = await self._get_session()
            async with session.post(self.config.onesignal_api_url, json=payload, headers=headers) as response:
                result = await response.json(content_type=None) or {}
                errors = result.get('errors') if isinstance(result, dict) else None
                if response.status < 300 and not errors:
                    return ChannelResult(True, message_id=result.get('id'))
                error = errors[0] if isinstance(errors, list) and errors else (errors or f"HTTP {response.status}")
                return ChannelResult(False, error=str(error))
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            return ChannelResult(False, error=str(e) or type(e).__name__)

    async def send_to_topic(self, topic, title, body, data):
        return await self._post(self.build_payload(title, body, data, filters=[onesignal_tag_filter(topic)]))

    async def send_to_condition(self, expression, title, body, data):
        return await self._post(self.build_payload(title, body, data, filters=onesignal_filters(expression)))

    async def send_to_recipient(self, token, title, body, data):
        return await self._post(self.build_payload(title, body, data, include_subscription_ids=[token]))


class NtfyChannel(HttpChannel):
    """ntfy.sh publishing; every send addresses exactly one topic."""

    name = 'ntfy'

    def build_payload(self, topic: str, title: str, body: str, data: Dict[str, str]) -> Dict[str, Any]:
        kind = (data or {}).get('type', 'notification')
        payload = {
            'topic': topic,
            'title': title,
            'message': body,
            'tags': ['gamepulse', kind],
            'priority': 4 if kind in ('goal', 'highlight') else 3,
        }
        link = (data or {}).get('media_url') or (data or {}).get('url')
        if link:
            payload['click'] = link
            payload['actions'] = [{'action': 'view', 'label': 'Open', 'url': link}]
        return payload

    async def send_to_topic(self, topic, title, body, data):
        payload = self.build_payload(topic, title, body, data)
        try:
            session = await self._get_session()
            async with session.post(self.config.ntfy_base_url, json=payload) as response:
                if response.status >= 300:
                    return ChannelResult(False, error=f"HTTP {response.status}")
                result = await response.json(content_type=None) or {}
                return ChannelResult(True, message_id=result.get('id') if isinstance(result, dict) else None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            return ChannelResult(False, error=str(e) or type(e).__name__)
