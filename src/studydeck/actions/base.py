"""Plumbing shared by every server action.

An action resolves the current user, checks ownership, performs one CRUD
operation and marks view paths stale. Whatever happens, the caller gets an
envelope: ``{"success": True, **payload}`` or ``{"success": False, "error": msg}``.
"""

from dataclasses import dataclass, field
import functools
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from studydeck.errors import (
    ActionError,
    AuthenticationError,
    AuthorizationError,
    RemoteOperationError,
    UNEXPECTED,
    ValidationError,
)
from studydeck.services.auth_service import AuthService, AuthServiceError, AuthUser
from studydeck.services.revalidation import PathInvalidator
from studydeck.services.row_store import RowStore, RowStoreError


logger = logging.getLogger(__name__)

Envelope = Dict[str, Any]
ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass
class ActionContext:
    store: RowStore
    auth: AuthService
    invalidator: PathInvalidator = field(default_factory=PathInvalidator)
    token: Optional[str] = None

    def current_user(self) -> AuthUser:
        try:
            return self.auth.get_current_user(self.token)
        except AuthServiceError as exc:
            raise AuthenticationError() from exc

    def revalidate(self, *paths: str) -> None:
        self.invalidator.revalidate(*paths)


def ok(**payload: Any) -> Envelope:
    return {"success": True, **payload}


def fail(message: str) -> Envelope:
    return {"success": False, "error": message}


def _pydantic_message(exc: PydanticValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return ValidationError.default_message
    first = errors[0]
    message = str(first.get("msg", ValidationError.default_message))
    if message.startswith("Value error, "):
        return message[len("Value error, "):]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {message}" if location else message


def server_action(fn: Callable[..., Optional[Mapping[str, Any]]]) -> Callable[..., Envelope]:
    """Run ``fn(ctx, user, ...)`` behind the authentication check and the
    envelope boundary. Nothing raised inside reaches the caller."""

    @functools.wraps(fn)
    def wrapper(ctx: ActionContext, *args: Any, **kwargs: Any) -> Envelope:
        name = fn.__name__
        try:
            user = ctx.current_user()
            payload = fn(ctx, user, *args, **kwargs) or {}
            return ok(**payload)
        except AuthenticationError as exc:
            return fail(exc.message)
        except (AuthorizationError, ValidationError) as exc:
            logger.info("%s rejected: %s", name, exc.message)
            return fail(exc.message)
        except ActionError as exc:
            logger.error("%s failed: %s", name, exc.message)
            return fail(exc.message)
        except PydanticValidationError as exc:
            message = _pydantic_message(exc)
            logger.info("%s rejected: %s", name, message)
            return fail(message)
        except RowStoreError as exc:
            logger.error("%s store error: %s", name, exc)
            return fail(str(exc) or RemoteOperationError.default_message)
        except Exception:
            logger.exception("%s raised unexpectedly", name)
            return fail(UNEXPECTED)

    return wrapper


def parse(model: Type[ModelT], data: Any) -> ModelT:
    if isinstance(data, model):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    return model.model_validate(data or {})


def require_owned(
    store: RowStore,
    table: str,
    row_id: str,
    user: AuthUser,
    *,
    owner_column: str = "user_id",
    not_found: str = "Not found",
) -> Dict[str, Any]:
    """Fetch a row by id and make sure ``user`` owns it."""
    if not row_id:
        raise ValidationError(f"{table[:-1].replace('_', ' ').capitalize()} id is required")
    row = store.find_first(table, {"id": row_id}, shared=True)
    if row is None:
        raise ValidationError(not_found)
    if row.get(owner_column) != user.uid:
        raise AuthorizationError()
    return row


def remote(fallback: str, call: Callable[[], Any]) -> Any:
    """Run a store call, reporting failures as RemoteOperationError."""
    try:
        return call()
    except RowStoreError as exc:
        raise RemoteOperationError.wrap(exc, fallback) from exc
