import requests
from lot_scroll import log


class ChatNotifier:
    """Posts product summaries to a Google Chat incoming webhook."""

    def __init__(self, webhook_url, thread_key="", timeout=15, session=None):
        self.webhook_url = webhook_url or ""
        self.thread_key = thread_key or ""
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings):
        return cls(settings.chat_webhook_url, settings.chat_thread_key)

    def send(self, text) -> bool:
        if not self.webhook_url:
            log("[notify] WARNING: chat webhook not configured; skipping notification")
            return False
        payload = {"text": text}
        params = {}
        if self.thread_key:
            payload["thread"] = {"threadKey": self.thread_key}
            params["messageReplyOption"] = "REPLY_MESSAGE_FALLBACK_TO_NEW_THREAD"
        try:
            resp = self.session.post(self.webhook_url, params=params, json=payload, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            log(f"[notify] chat webhook post failed: {e}")
            return False
        log("[notify] summary sent")
        return True
