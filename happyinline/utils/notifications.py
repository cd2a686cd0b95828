import asyncio
import logging
from typing import Dict, List, Optional

from pyfcm import FCMNotification

from happyinline.config import FCM_PROJECT_ID, FCM_SERVICE_ACCOUNT_FILE

logger = logging.getLogger(__name__)


class NoopPush:

    enabled = False

    async def send_fcm(self, tokens: List[str], title: str, body: str, data: Optional[Dict[str, str]] = None) -> int:
        return 0


class FcmPush:

    enabled = True

    def __init__(self, service_account_file: str, project_id: str) -> None:
        self._client = FCMNotification(service_account_file=service_account_file, project_id=project_id)

    async def send_fcm(self, tokens: List[str], title: str, body: str, data: Optional[Dict[str, str]] = None) -> int:
        """Send to every token; returns how many sends succeeded."""
        sent = 0
        for token in tokens:
            try:
                # pyfcm is sync, keep it off the event loop
                await asyncio.to_thread(
                    self._client.notify,
                    fcm_token=token,
                    notification_title=title,
                    notification_body=body,
                    data_payload=data or {},
                )
                sent += 1
            except Exception:
                logger.warning("FCM send failed for token %s...", token[:12], exc_info=True)
        return sent


_push = None


async def get_push():
    global _push
    if _push is not None:
        return _push
    if not (FCM_SERVICE_ACCOUNT_FILE and FCM_PROJECT_ID):
        logger.info("FCM is not configured; push notifications disabled")
        _push = NoopPush()
        return _push
    _push = FcmPush(FCM_SERVICE_ACCOUNT_FILE, FCM_PROJECT_ID)
    return _push
