from dataclasses import dataclass, field
from typing import Optional

from studydeck.actions.base import ActionContext
from studydeck.services import auth_service, row_store
from studydeck.services.auth_service import AuthService
from studydeck.services.revalidation import PathInvalidator
from studydeck.services.row_store import RowStore
from studydeck.state.session_state import SessionState


@dataclass
class AppState:
    session: SessionState = field(default_factory=SessionState)
    invalidator: PathInvalidator = field(default_factory=PathInvalidator)
    store: Optional[RowStore] = None
    auth: Optional[AuthService] = None

    def context(self) -> ActionContext:
        """Action context for the signed-in session; services are built lazily from settings."""
        if self.store is None:
            self.store = row_store.from_settings()
        if self.auth is None:
            self.auth = auth_service.from_settings()
        return ActionContext(
            store=self.store,
            auth=self.auth,
            invalidator=self.invalidator,
            token=self.session.id_token,
        )


app_state = AppState()
