"""Test doubles for the SMS provider and the hosted chat model."""

import json
from typing import Optional

from localdink.services.sms_service import SmsError


class FakeSmsClient:
    """Records outgoing texts instead of calling the provider."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def is_configured(self) -> bool:
        return True

    async def send(self, to: str, body: str, from_: Optional[str] = None) -> str:
        if self.fail:
            raise SmsError("[21610] Attempt to send to unsubscribed recipient")
        self.sent.append({"to": to, "body": body})
        return f"SM{len(self.sent):032d}"


class _FakeResponse:
    def __init__(self, text: str):
        self.text = text


class _FakeModels:
    def __init__(self, owner):
        self.owner = owner

    def generate_content(self, model, contents, config=None):
        self.owner.calls.append({"model": model, "contents": contents, "config": config})
        if self.owner.error is not None:
            raise self.owner.error
        return _FakeResponse(self.owner.reply_text)


class FakeGeminiClient:
    """Mimics the `client.models.generate_content` surface of google-genai."""

    def __init__(self, reply: Optional[dict] = None, reply_text: Optional[str] = None,
                 error: Optional[Exception] = None):
        self.reply_text = reply_text if reply_text is not None else json.dumps(reply or {})
        self.error = error
        self.calls = []
        self.models = _FakeModels(self)
