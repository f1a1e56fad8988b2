"""
Microsoft identity platform sign-in.

The refresh token lives in the system keyring. On startup it is exchanged
for an access token; when that fails the browser-based authorization code
flow (with PKCE) runs against a one-shot listener on localhost:8080.
"""

import logging
import urllib.parse
import webbrowser
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Callable, Dict, Optional

import keyring
import msal
from keyring.errors import KeyringError, PasswordDeleteError

logger = logging.getLogger(__name__)

AUTHORITY = "https://login.microsoftonline.com/common"
REDIRECT_PORT = 8080
REDIRECT_URI = f"http://localhost:{REDIRECT_PORT}"
# msal adds offline_access itself and rejects it when passed explicitly
SCOPES = ["User.Read", "Calendars.Read"]

KEYRING_SERVICE = "365cal-tui"
KEYRING_ACCOUNT = "microsoft_refresh_token"

LOGIN_TIMEOUT_SECONDS = 300


class AuthError(Exception):
    """Raised when no access token could be obtained"""


class KeyringStore:
    """Refresh token storage in the system keyring"""

    def __init__(self, service: str = KEYRING_SERVICE, account: str = KEYRING_ACCOUNT):
        self.service = service
        self.account = account

    def get(self) -> Optional[str]:
        try:
            return keyring.get_password(self.service, self.account)
        except KeyringError as e:
            logger.warning(f"Could not read refresh token from keyring: {e}")
            return None

    def set(self, secret: str):
        try:
            keyring.set_password(self.service, self.account, secret)
        except KeyringError as e:
            logger.warning(f"Could not save refresh token to keyring: {e}")

    def delete(self):
        try:
            keyring.delete_password(self.service, self.account)
        except PasswordDeleteError:
            pass  # nothing stored
        except KeyringError as e:
            logger.warning(f"Could not delete refresh token from keyring: {e}")


class _CallbackHandler(BaseHTTPRequestHandler):
    """Captures the query string of the redirect"""

    def do_GET(self):
        query = urllib.parse.urlparse(self.path).query
        params = {k: v[0] for k, v in urllib.parse.parse_qs(query).items()}
        if 'code' not in params and 'error' not in params:
            # favicon and friends
            self.send_response(404)
            self.end_headers()
            return
        self.server.auth_response = params
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.end_headers()
        if 'code' in params:
            self.wfile.write(b"<h1>Login successful! You can close this window.</h1>")
        else:
            self.wfile.write(b"<h1>Login failed. You can close this window.</h1>")

    def log_message(self, format, *args):
        logger.debug("callback: " + format % args)


class _CallbackServer(HTTPServer):
    auth_response: Optional[Dict[str, str]] = None
    timed_out = False

    def handle_timeout(self):
        self.timed_out = True


def wait_for_redirect(port: int = REDIRECT_PORT, timeout: float = LOGIN_TIMEOUT_SECONDS) -> Dict[str, str]:
    """Serve localhost:port until the authorization redirect arrives"""
    try:
        server = _CallbackServer(("localhost", port), _CallbackHandler)
    except OSError as e:
        raise AuthError(f"Could not listen on port {port} for the login redirect: {e}") from e
    server.timeout = timeout
    try:
        while server.auth_response is None:
            server.handle_request()
            if server.timed_out:
                raise AuthError("Timed out waiting for the login redirect")
    finally:
        server.server_close()
    return server.auth_response


class Authenticator:
    """Obtains and refreshes Graph access tokens for one client id"""

    def __init__(self, client_id: str, secret_store: Optional[KeyringStore] = None,
                 app: Optional[msal.PublicClientApplication] = None,
                 open_browser: Callable[[str], bool] = webbrowser.open,
                 wait_for_code: Callable[[], Dict[str, str]] = wait_for_redirect):
        self.client_id = client_id
        self.secret_store = secret_store or KeyringStore()
        self.app = app or msal.PublicClientApplication(client_id, authority=AUTHORITY)
        self.open_browser = open_browser
        self.wait_for_code = wait_for_code
        self.access_token: Optional[str] = None

    def _accept(self, result: Dict) -> str:
        """Keep the tokens from a successful msal result"""
        self.access_token = result['access_token']
        refresh_token = result.get('refresh_token')
        if refresh_token:
            self.secret_store.set(refresh_token)
        return self.access_token

    def refresh_access_token(self) -> str:
        """Exchange the stored refresh token for a new access token.

        Raises AuthError when there is no stored token or it was rejected.
        """
        refresh_token = self.secret_store.get()
        if not refresh_token:
            raise AuthError("No refresh token stored")
        result = self.app.acquire_token_by_refresh_token(refresh_token, scopes=SCOPES)
        if not result or 'access_token' not in result:
            error = (result or {}).get('error_description') or (result or {}).get('error') or 'unknown error'
            raise AuthError(f"Token refresh failed: {error}")
        logger.info("Access token refreshed")
        return self._accept(result)

    def login(self) -> str:
        """Interactive authorization code flow with PKCE"""
        flow = self.app.initiate_auth_code_flow(SCOPES, redirect_uri=REDIRECT_URI)
        if 'auth_uri' not in flow:
            raise AuthError(f"Could not start login: {flow.get('error_description') or flow.get('error')}")

        print("Opening browser for Microsoft login...")
        print(f"If it doesn't open, visit:\n{flow['auth_uri']}")
        self.open_browser(flow['auth_uri'])

        auth_response = self.wait_for_code()
        try:
            result = self.app.acquire_token_by_auth_code_flow(flow, auth_response)
        except ValueError as e:
            # state mismatch or malformed redirect
            raise AuthError(f"Invalid login redirect: {e}") from e
        if 'access_token' not in result:
            raise AuthError(f"Login failed: {result.get('error_description') or result.get('error')}")
        logger.info("Signed in with authorization code flow")
        return self._accept(result)

    def authenticate(self) -> str:
        """Return an access token, preferring the stored refresh token"""
        if self.secret_store.get():
            try:
                return self.refresh_access_token()
            except AuthError as e:
                logger.warning(f"Stored refresh token unusable, logging in again: {e}")
                self.secret_store.delete()
        return self.login()
