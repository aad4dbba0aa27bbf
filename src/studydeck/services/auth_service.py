from dataclasses import dataclass
import logging
from typing import Any, Dict, Mapping, Optional, Tuple
import requests
from requests import RequestException

from studydeck.config.settings import settings


logger = logging.getLogger(__name__)


class AuthServiceError(Exception):
    pass


@dataclass(frozen=True)
class AuthUser:
    uid: str
    email: str = ""
    name: str = ""


@dataclass
class AuthResult:
    uid: str
    email: str
    id_token: str
    refresh_token: str


class AuthService:
    def get_current_user(self, token: Optional[str]) -> AuthUser:
        raise NotImplementedError


class TrustedHeaderAuthService(AuthService):
    """Local mode: the caller's token *is* the user id (x-user-id style)."""

    def get_current_user(self, token: Optional[str]) -> AuthUser:
        uid = (token or "").strip()
        if not uid:
            raise AuthServiceError("Missing user id")
        return AuthUser(uid=uid)


class AppwriteAuthService(AuthService):
    """Email/password auth over the Appwrite REST API.

    Signing in creates a session and then mints a short-lived JWT for it.
    The JWT is the ``id_token`` sent with every action; the session secret is
    kept as ``refresh_token`` so :meth:`create_jwt` can mint a fresh one.
    """

    SIGN_UP_PATH = "/account"
    LOGIN_PATH = "/account/sessions/email"
    JWT_PATH = "/account/jwts"
    ACCOUNT_PATH = "/account"

    def __init__(self, endpoint: str, project_id: str, timeout: float = 15) -> None:
        if not endpoint:
            raise AuthServiceError("Missing APPWRITE_ENDPOINT in environment")
        if not project_id:
            raise AuthServiceError("Missing APPWRITE_PROJECT_ID in environment")
        self.endpoint = endpoint.rstrip("/")
        self.project_id = project_id
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "AppwriteAuthService":
        return cls(settings.appwrite_endpoint, settings.appwrite_project_id)

    @property
    def session_cookie(self) -> str:
        return f"a_session_{self.project_id}"

    def sign_up(self, email: str, password: str, name: Optional[str] = None) -> AuthResult:
        payload = {
            "userId": "unique()",
            "email": email,
            "password": password,
        }
        if name and name.strip():
            payload["name"] = name.strip()
        self._request("POST", self.SIGN_UP_PATH, payload)
        return self.sign_in(email, password)

    def sign_in(self, email: str, password: str) -> AuthResult:
        payload = {
            "email": email,
            "password": password,
        }
        session, cookies = self._send("POST", self.LOGIN_PATH, payload)
        uid = str(session.get("userId") or "")
        # Client-created sessions come back with an empty secret; the session
        # cookie carries it instead.
        secret = str(session.get("secret") or cookies.get(self.session_cookie) or "")
        if not uid or not secret:
            raise AuthServiceError("INVALID_APPWRITE_SESSION")
        return AuthResult(
            uid=uid,
            email=email,
            id_token=self.create_jwt(secret),
            refresh_token=secret,
        )

    def create_jwt(self, session_secret: str) -> str:
        data = self._request("POST", self.JWT_PATH, headers={"X-Appwrite-Session": session_secret})
        token = str(data.get("jwt") or "")
        if not token:
            raise AuthServiceError("INVALID_APPWRITE_SESSION")
        return token

    def get_current_user(self, token: Optional[str]) -> AuthUser:
        if not token:
            raise AuthServiceError("Missing session token")
        data = self._request("GET", self.ACCOUNT_PATH, headers={"X-Appwrite-JWT": token})
        uid = str(data.get("$id") or "")
        if not uid:
            raise AuthServiceError("INVALID_APPWRITE_SESSION")
        return AuthUser(uid=uid, email=str(data.get("email") or ""), name=str(data.get("name") or ""))

    def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        return self._send(method, path, payload, headers)[0]

    def _send(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Tuple[Dict[str, Any], Mapping[str, str]]:
        url = f"{self.endpoint}{path}"
        request_headers = {
            "X-Appwrite-Project": self.project_id,
            "Content-Type": "application/json",
        }
        request_headers.update(headers or {})
        try:
            res = requests.request(method, url, headers=request_headers, json=payload, timeout=self.timeout)
        except RequestException as exc:
            logger.warning("Appwrite auth request %s %s failed: %s", method, path, exc)
            raise AuthServiceError("AUTH_SERVICE_UNAVAILABLE") from exc
        try:
            data = res.json()
        except ValueError:
            raise AuthServiceError("AUTH_SERVICE_UNAVAILABLE")

        if res.status_code >= 400:
            error_key = str(data.get("message") or data.get("type") or "AUTH_ERROR")
            raise AuthServiceError(error_key)

        return data, res.cookies


def from_settings() -> AuthService:
    if settings.backend == "sqlite":
        logger.warning(
            "Local backend: the x-user-id header is trusted as the caller's identity. "
            "Do not expose this server beyond localhost."
        )
        return TrustedHeaderAuthService()
    return AppwriteAuthService.from_settings()
