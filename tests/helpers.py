"""Helpers shared by the test modules (imported after conftest configures the env)."""
from marketplace.auth.utils import create_access_token
from marketplace.models import User

DEFAULT_PASSWORD = "Secreta123"


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


class FakeWebSocket:
    """Collects frames sent by the hub."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send_text(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(text)
