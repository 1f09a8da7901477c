import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Dict, Optional

from firebase_admin import messaging, credentials, initialize_app, _apps  # type: ignore

from .config import settings
from .models import AlertPattern, DeliveredReminder
from .repository import DeviceTokenStore


logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Presents reminder notifications to the user.

    The dispatch token doubles as the notification id: presenting twice under
    one token replaces the first notification instead of adding a second.
    """

    @abstractmethod
    def present(self, token: int, delivered: DeliveredReminder, alert: AlertPattern) -> None:
        ...

    @abstractmethod
    def dismiss(self, token: int, user_id: Optional[str] = None) -> None:
        ...


def _ensure_firebase_initialized() -> None:
    if _apps:
        return

    proj = getattr(settings, "FCM_PROJECT_ID", None)
    env_gac_json = os.getenv("GOOGLE_APPLICATION_CREDENTIALS_JSON")
    env_gac = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    cfg_val = getattr(settings, "FCM_CREDENTIALS_JSON", None)

    logger.info(
        f"[FCM] Initializing Firebase | project_id={proj} "
        f"REMINDER_FCM_CREDENTIALS_JSON set={bool(cfg_val)}, "
        f"GOOGLE_APPLICATION_CREDENTIALS_JSON set={bool(env_gac_json)}, "
        f"GOOGLE_APPLICATION_CREDENTIALS set={bool(env_gac)}"
    )

    creds_json: Optional[str] = cfg_val or env_gac_json or env_gac
    if not creds_json or creds_json.strip() == "":
        logger.warning("[FCM] No credentials provided - push notifications will be disabled")
        return

    options = {"projectId": proj} if proj else None
    try:
        if creds_json.strip().startswith("{"):
            initialize_app(credentials.Certificate(json.loads(creds_json)), options=options)
            logger.info(f"[FCM] Firebase app initialized (inline JSON). apps={len(_apps)}")
        elif os.path.exists(creds_json):
            initialize_app(credentials.Certificate(creds_json), options=options)
            logger.info(f"[FCM] Firebase app initialized (file). apps={len(_apps)}")
        elif proj:
            initialize_app(options=options)
            logger.info(f"[FCM] Firebase app initialized (projectId only). apps={len(_apps)}")
        else:
            initialize_app()
            logger.info(f"[FCM] Firebase app initialized (default). apps={len(_apps)}")
    except (ValueError, IOError) as e:
        logger.error(f"[FCM] Failed to initialize Firebase: {e!r}")


class FcmNotifier(Notifier):
    """Pushes reminders to the user's device through Firebase Cloud Messaging"""

    def __init__(self, device_tokens: DeviceTokenStore):
        self.device_tokens = device_tokens

    def _device_for(self, user_id: Optional[str]) -> Optional[str]:
        if not user_id:
            return None
        _ensure_firebase_initialized()
        if not _apps:
            logger.warning("[FCM] Firebase not initialized - skipping push notification")
            return None
        device = self.device_tokens.get_latest(user_id)
        if not device:
            logger.warning(f"[FCM] No FCM token found for user {user_id}")
        return device

    def present(self, token: int, delivered: DeliveredReminder, alert: AlertPattern) -> None:
        device = self._device_for(delivered.user_id)
        if not device:
            return

        notification_id = str(token)
        data: Dict[str, str] = {
            "kind": "reminder",
            "notification_id": notification_id,
            "reminder_id": delivered.reminder_id,
            "reminder_type": delivered.type.value,
            "category": delivered.category,
            "actions": ",".join(action.value for action in delivered.actions),
            "fired_at": delivered.fired_at.isoformat(),
            "sound_uri": alert.sound_uri,
            "sound_seconds": str(alert.sound_seconds),
            "vibration": ",".join(str(ms) for ms in alert.vibration),
        }

        message = messaging.Message(
            token=device,
            notification=messaging.Notification(title=delivered.title, body=delivered.message),
            data=data,
            android=messaging.AndroidConfig(
                priority="high",
                collapse_key=notification_id,
                notification=messaging.AndroidNotification(
                    tag=notification_id,
                    channel_id=delivered.category,
                    sound=alert.sound_uri,
                    vibrate_timings_millis=list(alert.vibration),
                ),
            ),
            apns=messaging.APNSConfig(
                headers={
                    "apns-push-type": "alert",
                    "apns-priority": "10" if alert.urgent else "5",
                    # Same token => same collapse id, so a duplicate firing replaces
                    "apns-collapse-id": notification_id,
                }
            ),
        )
        result = messaging.send(message, dry_run=False)
        logger.info(f"[FCM] Notification {notification_id} sent: {result}")

    def dismiss(self, token: int, user_id: Optional[str] = None) -> None:
        # The device that sent the action already removes its own copy
        device = self._device_for(user_id)
        if not device:
            return
        message = messaging.Message(
            token=device,
            data={"kind": "dismiss", "notification_id": str(token)},
            android=messaging.AndroidConfig(priority="high"),
            apns=messaging.APNSConfig(
                headers={"apns-push-type": "background", "apns-priority": "5"},
                payload=messaging.APNSPayload(aps=messaging.Aps(content_available=True)),
            ),
        )
        messaging.send(message, dry_run=False)
        logger.info(f"[FCM] Dismiss sent for notification {token}")
