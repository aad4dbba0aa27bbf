from dataclasses import dataclass
from typing import Optional

from studydeck.services.auth_service import AuthResult


@dataclass
class SessionState:
    uid: Optional[str] = None
    email: Optional[str] = None
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.uid and self.id_token)

    def sign_in(self, result: AuthResult) -> None:
        self.uid = result.uid
        self.email = result.email
        self.id_token = result.id_token
        self.refresh_token = result.refresh_token

    def clear(self) -> None:
        self.uid = None
        self.email = None
        self.id_token = None
        self.refresh_token = None
