"""
Unit tests for route authorization.
"""

import pytest

from marketsafe.guard import (
    Allow,
    RedirectTo,
    Requirement,
    authorize,
    authorize_path,
)
from marketsafe.models import Role, User


def user(role: Role) -> User:
    return User(id="U-1", name="N", email="n@example.com", role=role, token="t")


SELLER_ONLY = Requirement(authenticated=True, roles=frozenset({Role.SELLER}))


class TestAuthorize:
    def test_unauthenticated_redirects_to_login(self):
        assert authorize(SELLER_ONLY, None) == RedirectTo("/login")

    def test_wrong_role_redirects_to_dashboard(self):
        assert authorize(SELLER_ONLY, user(Role.BUYER)) == RedirectTo("/dashboard")

    def test_matching_role_allowed(self):
        assert authorize(SELLER_ONLY, user(Role.SELLER)) == Allow()

    def test_public_requirement_allows_anyone(self):
        assert authorize(None, None) == Allow()

    def test_authenticated_only(self):
        assert authorize(Requirement(), None) == RedirectTo("/login")
        assert authorize(Requirement(), user(Role.BUYER)) == Allow()

    def test_empty_role_set_rejected(self):
        with pytest.raises(ValueError):
            Requirement(roles=frozenset())

    def test_roles_accept_plain_strings(self):
        requirement = Requirement(roles=frozenset({"buyer"}))
        assert authorize(requirement, user(Role.BUYER)) == Allow()

    def test_deterministic(self):
        results = {authorize(SELLER_ONLY, user(Role.BUYER)) for _ in range(5)}
        assert results == {RedirectTo("/dashboard")}


class TestRouteTable:
    def test_upload_is_seller_only(self):
        assert authorize_path("/upload", None) == RedirectTo("/login")
        assert authorize_path("/upload", user(Role.BUYER)) == RedirectTo("/dashboard")
        assert authorize_path("/upload", user(Role.SELLER)) == Allow()

    def test_marketplace_is_public(self):
        assert authorize_path("/marketplace", None) == Allow()

    def test_trailing_slash_ignored(self):
        assert authorize_path("/dashboard/", None) == RedirectTo("/login")

    def test_unknown_path_allowed(self):
        assert authorize_path("/no-such-page", None) == Allow()
