#!/usr/bin/env python3
"""
Tests for the sign-in flow with a fake msal application and secret store
"""

import sys
import unittest.mock as mock

import pytest
from keyring.errors import KeyringError, PasswordDeleteError

from cal365_tui.auth import REDIRECT_URI, SCOPES, AuthError, Authenticator, KeyringStore


class MemoryStore:
    def __init__(self, secret=None):
        self.secret = secret

    def get(self):
        return self.secret

    def set(self, secret):
        self.secret = secret

    def delete(self):
        self.secret = None


def make_authenticator(store, app, code=None):
    return Authenticator(
        "client-id",
        secret_store=store,
        app=app,
        open_browser=mock.Mock(return_value=True),
        wait_for_code=lambda: code or {"code": "abc", "state": "s"},
    )


def test_refresh_token_is_exchanged():
    print("\n" + "="*60)
    print("Testing refresh token exchange")
    print("="*60)

    app = mock.Mock()
    app.acquire_token_by_refresh_token.return_value = {"access_token": "at-1", "refresh_token": "rt-2"}
    store = MemoryStore("rt-1")
    auth = make_authenticator(store, app)

    assert auth.authenticate() == "at-1"
    app.acquire_token_by_refresh_token.assert_called_once_with("rt-1", scopes=SCOPES)
    app.initiate_auth_code_flow.assert_not_called()
    assert auth.access_token == "at-1"
    assert store.secret == "rt-2", "Rotated refresh token is saved"
    print("   ✓ No browser login needed")


def test_rejected_refresh_token_falls_back_to_login():
    app = mock.Mock()
    app.acquire_token_by_refresh_token.return_value = {"error": "invalid_grant"}
    app.initiate_auth_code_flow.return_value = {"auth_uri": "https://login.example/authorize", "state": "s"}
    app.acquire_token_by_auth_code_flow.return_value = {"access_token": "at-new", "refresh_token": "rt-new"}
    store = MemoryStore("stale")
    auth = make_authenticator(store, app)

    assert auth.authenticate() == "at-new"
    app.initiate_auth_code_flow.assert_called_once_with(SCOPES, redirect_uri=REDIRECT_URI)
    auth.open_browser.assert_called_once_with("https://login.example/authorize")
    flow, response = app.acquire_token_by_auth_code_flow.call_args[0]
    assert response == {"code": "abc", "state": "s"}
    assert store.secret == "rt-new"


def test_refresh_without_stored_token():
    auth = make_authenticator(MemoryStore(), mock.Mock())
    with pytest.raises(AuthError, match="No refresh token"):
        auth.refresh_access_token()


def test_login_failures():
    app = mock.Mock()
    app.initiate_auth_code_flow.return_value = {"auth_uri": "https://login.example/authorize"}
    app.acquire_token_by_auth_code_flow.side_effect = ValueError("state mismatch")
    auth = make_authenticator(MemoryStore(), app)
    with pytest.raises(AuthError, match="Invalid login redirect"):
        auth.login()

    app.acquire_token_by_auth_code_flow.side_effect = None
    app.acquire_token_by_auth_code_flow.return_value = {"error": "access_denied",
                                                        "error_description": "User declined"}
    with pytest.raises(AuthError, match="User declined"):
        auth.login()
    assert auth.access_token is None

    app.initiate_auth_code_flow.return_value = {"error": "invalid_client"}
    with pytest.raises(AuthError, match="invalid_client"):
        auth.login()


def test_keyring_store_swallows_backend_errors():
    with mock.patch("cal365_tui.auth.keyring") as backend:
        backend.get_password.side_effect = KeyringError("locked")
        backend.delete_password.side_effect = PasswordDeleteError("missing")
        store = KeyringStore()
        assert store.get() is None
        store.delete()
        store.set("secret")
        backend.set_password.assert_called_once_with("365cal-tui", "microsoft_refresh_token", "secret")


if __name__ == '__main__':
    sys.exit(pytest.main([__file__, "-v", "-s"]))
