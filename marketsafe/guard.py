"""
Route authorization.

``authorize`` maps a route requirement and the current user to a decision.
It never raises and never navigates; the caller acts on the result.
"""

from dataclasses import dataclass
from typing import Optional, Union

from marketsafe.models import Role, User

LOGIN_PATH = "/login"
DASHBOARD_PATH = "/dashboard"


@dataclass(frozen=True)
class Requirement:
    authenticated: bool = True
    roles: Optional[frozenset[Role]] = None

    def __post_init__(self):
        if self.roles is not None:
            if not self.roles:
                raise ValueError("roles must be a non-empty set when given")
            object.__setattr__(self, "roles", frozenset(Role(r) for r in self.roles))
            # a role restriction implies a session
            object.__setattr__(self, "authenticated", True)


@dataclass(frozen=True)
class Allow:
    pass


@dataclass(frozen=True)
class RedirectTo:
    target: str


Decision = Union[Allow, RedirectTo]


def authorize(requirement: Optional[Requirement], user: Optional[User]) -> Decision:
    if requirement is None:
        return Allow()
    if requirement.authenticated and user is None:
        return RedirectTo(LOGIN_PATH)
    if requirement.roles is not None and user.role not in requirement.roles:
        return RedirectTo(DASHBOARD_PATH)
    return Allow()


SELLERS_ONLY = Requirement(roles=frozenset({Role.SELLER}))

ROUTES: dict[str, Optional[Requirement]] = {
    "/": None,
    "/login": None,
    "/register": None,
    "/marketplace": None,
    "/dashboard": Requirement(),
    "/profile": Requirement(),
    "/upload": SELLERS_ONLY,
    "/subscribe": SELLERS_ONLY,
}


def authorize_path(path: str, user: Optional[User]) -> Decision:
    # unknown paths are public; they render the not-found page
    normalized = path.rstrip("/") or "/"
    return authorize(ROUTES.get(normalized), user)
