import logging
from typing import Optional

from marketsafe.errors import DuplicateSubmissionError, NotAuthenticatedError
from marketsafe.models import Role, Subscription, User

logger = logging.getLogger(__name__)


class SessionStore:
    """
    In-memory state of the current actor: either no user or one
    authenticated ``User``, plus a pending flag while a login is outstanding.

    The store never talks to the network or the disk. Users are replaced on
    every transition, never mutated in place, and readers get copies.
    """

    def __init__(self) -> None:
        self._user: Optional[User] = None
        self._pending = False

    # ── transitions ───────────────────────────────────────────────────────────

    def begin_authentication(self) -> None:
        if self._pending:
            raise DuplicateSubmissionError("authentication")
        self._pending = True

    def complete_authentication(self, user: User) -> None:
        # also the hydration path, so no preceding begin is required
        self._user = user.model_copy(deep=True)
        self._pending = False
        logger.info("Session established for user %s (%s)", user.id, user.role.value)

    def fail_authentication(self) -> None:
        self._user = None
        self._pending = False

    def end_session(self) -> None:
        if self._user is not None:
            logger.info("Session ended for user %s", self._user.id)
        self._user = None
        self._pending = False

    def update_profile(self, name: str, email: str) -> None:
        user = self._require_user()
        self._user = user.model_copy(update={"name": name, "email": email})

    def update_subscription(self, subscription: Subscription) -> None:
        user = self._require_user()
        self._user = user.model_copy(update={"subscription": subscription.model_copy()})

    # ── reads ─────────────────────────────────────────────────────────────────

    @property
    def user(self) -> Optional[User]:
        return self._user.model_copy(deep=True) if self._user else None

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    @property
    def pending(self) -> bool:
        return self._pending

    @property
    def token(self) -> Optional[str]:
        return self._user.token if self._user else None

    @property
    def role(self) -> Optional[Role]:
        return self._user.role if self._user else None

    @property
    def identity(self) -> Optional[tuple[str, str]]:
        """(user id, token) of the current session, used to detect stale responses."""
        return (self._user.id, self._user.token) if self._user else None

    def _require_user(self) -> User:
        if self._user is None:
            raise NotAuthenticatedError("No authenticated session")
        return self._user
