"""OAuth2 authorization-code flow with a transient localhost callback."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import html
import logging
import secrets
import socket
from typing import Any, Callable
from urllib.parse import urlencode
import webbrowser

import httpx
from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import HTMLResponse
from starlette.routing import Route
import typer
import uvicorn

from .config import Config, ConfigStore, expiry_from_now
from .models import (
    AuthenticationError,
    OAuthError,
    OAuthProtocolError,
    OAuthServerError,
    OAuthStateError,
    OAuthTimeoutError,
)

logger = logging.getLogger(__name__)

AUTH_URL = "https://ticktick.com/oauth/authorize"
TOKEN_URL = "https://ticktick.com/oauth/token"
CALLBACK_HOST = "127.0.0.1"
CALLBACK_PORT = 8080
REDIRECT_URI = "http://localhost:8080/callback"
SCOPE = "tasks:read tasks:write"
OAUTH_TIMEOUT = 5 * 60.0
TOKEN_TIMEOUT = 30.0
DEFAULT_EXPIRES_IN = 3600
CLOSE_DELAY = 0.1

_CLOSE_HEADERS = {"Connection": "close"}

SUCCESS_PAGE = """<!DOCTYPE html>
<html>
<head>
  <title>TickTick CLI - Authorization Successful</title>
  <style>
    body { font-family: -apple-system, "Segoe UI", Roboto, sans-serif; display: flex;
           justify-content: center; align-items: center; height: 100vh; margin: 0;
           background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); }
    .container { background: white; padding: 3rem; border-radius: 10px;
                 box-shadow: 0 10px 40px rgba(0,0,0,0.2); text-align: center; }
    h1 { color: #667eea; }
    p { color: #666; }
  </style>
</head>
<body>
  <div class="container">
    <h1>Authorization Successful!</h1>
    <p>You have successfully authorized the TickTick CLI.</p>
    <p>You can now close this window and return to your terminal.</p>
  </div>
</body>
</html>
"""

_FAILURE_PAGE = """<!DOCTYPE html>
<html>
<head>
  <title>TickTick CLI - Authorization Failed</title>
  <style>
    body {{ font-family: -apple-system, "Segoe UI", Roboto, sans-serif; display: flex;
            justify-content: center; align-items: center; height: 100vh; margin: 0;
            background: linear-gradient(135deg, #f093fb 0%, #f5576c 100%); }}
    .container {{ background: white; padding: 3rem; border-radius: 10px; max-width: 500px;
                  box-shadow: 0 10px 40px rgba(0,0,0,0.2); text-align: center; }}
    h1 {{ color: #f5576c; }}
    .error {{ color: #f5576c; font-family: monospace; background: #fee; padding: 1rem;
              border-radius: 5px; }}
  </style>
</head>
<body>
  <div class="container">
    <h1>Authorization Failed</h1>
    <p class="error">{error}: {description}</p>
    <p>Please close this window and try again in your terminal.</p>
  </div>
</body>
</html>
"""


def failure_page(error: str, description: str) -> str:
    return _FAILURE_PAGE.format(error=html.escape(error), description=html.escape(description))


@dataclass(frozen=True, slots=True)
class OAuthResult:
    access_token: str
    refresh_token: str
    expires_in: int


class Settlement:
    """Single-assignment outcome slot: the first resolve/reject wins, later ones are no-ops."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._settled = False
        self.result: OAuthResult | None = None
        self.error: BaseException | None = None

    @property
    def settled(self) -> bool:
        return self._settled

    def resolve(self, result: OAuthResult) -> bool:
        if self._settled:
            return False
        self._settled = True
        self.result = result
        self._event.set()
        return True

    def reject(self, error: BaseException) -> bool:
        if self._settled:
            return False
        self._settled = True
        self.error = error
        self._event.set()
        return True

    async def wait(self) -> OAuthResult:
        await self._event.wait()
        if self.error is not None:
            raise self.error
        return self.result


def build_authorization_url(client_id: str, state: str, redirect_uri: str = REDIRECT_URI) -> str:
    query = urlencode(
        {
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "state": state,
            "scope": SCOPE,
            "response_type": "code",
        }
    )
    return f"{AUTH_URL}?{query}"


def _token_result(payload: Any, previous_refresh_token: str = "") -> OAuthResult:
    if not isinstance(payload, dict):
        raise OAuthProtocolError("Token response is not a JSON object")
    if payload.get("error"):
        raise OAuthError(str(payload["error"]), str(payload.get("error_description") or ""))
    access_token = payload.get("access_token")
    if not access_token:
        raise OAuthProtocolError("No access token in response")
    return OAuthResult(
        access_token=str(access_token),
        refresh_token=str(payload.get("refresh_token") or previous_refresh_token),
        expires_in=int(payload.get("expires_in") or DEFAULT_EXPIRES_IN),
    )


async def _post_token_form(
    form: dict[str, str],
    *,
    token_url: str,
    transport: httpx.AsyncBaseTransport | None,
) -> Any:
    async with httpx.AsyncClient(timeout=TOKEN_TIMEOUT, transport=transport) as http:
        try:
            response = await http.post(token_url, data=form, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            raise OAuthError("token_request_failed", str(exc)) from exc

    try:
        payload = response.json()
    except ValueError:
        payload = None
    if response.is_error:
        if isinstance(payload, dict) and payload.get("error"):
            raise OAuthError(str(payload["error"]), str(payload.get("error_description") or ""))
        raise OAuthError("token_request_failed", f"HTTP {response.status_code}")
    return payload


async def exchange_code_for_token(
    client_id: str,
    client_secret: str,
    code: str,
    *,
    redirect_uri: str = REDIRECT_URI,
    token_url: str = TOKEN_URL,
    transport: httpx.AsyncBaseTransport | None = None,
) -> OAuthResult:
    payload = await _post_token_form(
        {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": client_id,
            "client_secret": client_secret,
            "redirect_uri": redirect_uri,
        },
        token_url=token_url,
        transport=transport,
    )
    return _token_result(payload)


async def refresh_access_token(
    client_id: str,
    client_secret: str,
    refresh_token: str,
    *,
    token_url: str = TOKEN_URL,
    transport: httpx.AsyncBaseTransport | None = None,
) -> OAuthResult:
    payload = await _post_token_form(
        {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client_id,
            "client_secret": client_secret,
        },
        token_url=token_url,
        transport=transport,
    )
    return _token_result(payload, previous_refresh_token=refresh_token)


async def ensure_fresh_token(
    store: ConfigStore,
    config: Config,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Config:
    """Refresh and persist an expired access token when a refresh token is available."""
    if not config.is_token_expired():
        return config
    auth = config.auth
    if not (auth.refresh_token and auth.client_id and auth.client_secret):
        return config

    logger.debug("Access token expired; refreshing")
    try:
        result = await refresh_access_token(
            auth.client_id,
            auth.client_secret,
            auth.refresh_token,
            transport=transport,
        )
    except OAuthError as exc:
        raise AuthenticationError(
            f"Token refresh failed ({exc}). Run 'ticktick auth login'"
        ) from exc
    return store.update_auth(
        auth.client_id,
        auth.client_secret,
        result.access_token,
        result.refresh_token,
        expiry_from_now(result.expires_in),
    )


class OAuthFlow:
    """One login attempt: local callback listener, browser hand-off, token exchange.

    The callback handler, the background token exchange, and the timeout timer
    race to settle ``self.settlement``. ``run`` always shuts the listener down,
    forcing it closed when the timeout wins.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        host: str = CALLBACK_HOST,
        port: int = CALLBACK_PORT,
        redirect_uri: str = REDIRECT_URI,
        timeout: float = OAUTH_TIMEOUT,
        open_browser: Callable[[str], bool] = webbrowser.open,
        notify: Callable[[str], None] = typer.echo,
        token_url: str = TOKEN_URL,
        token_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.host = host
        self.port = port
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self.open_browser = open_browser
        self.notify = notify
        self.token_url = token_url
        self.token_transport = token_transport
        self.state = secrets.token_urlsafe(32)
        self.settlement = Settlement()
        self.exchange_attempted = False
        self.app = Starlette(routes=[Route("/callback", self.callback, methods=["GET"])])

    @property
    def authorization_url(self) -> str:
        return build_authorization_url(self.client_id, self.state, self.redirect_uri)

    def _fail(self, error: OAuthError, title: str, description: str) -> HTMLResponse:
        self.settlement.reject(error)
        return HTMLResponse(failure_page(title, description), status_code=400, headers=_CLOSE_HEADERS)

    async def callback(self, request: Request) -> HTMLResponse:
        if self.settlement.settled or self.exchange_attempted:
            return HTMLResponse(
                failure_page("Already completed", "This login attempt has already finished"),
                status_code=400,
                headers=_CLOSE_HEADERS,
            )

        params = request.query_params
        error = params.get("error")
        if error:
            description = params.get("error_description") or ""
            return self._fail(OAuthError(error, description), error, description)
        if params.get("state") != self.state:
            return self._fail(OAuthStateError(), "Invalid state", "Possible CSRF attack")
        code = params.get("code")
        if not code:
            return self._fail(
                OAuthError("missing_code", "No authorization code received"),
                "No code",
                "No authorization code received",
            )

        self.exchange_attempted = True
        return HTMLResponse(
            SUCCESS_PAGE,
            headers=_CLOSE_HEADERS,
            background=BackgroundTask(self._exchange, code),
        )

    async def _exchange(self, code: str) -> None:
        if self.settlement.settled:
            return
        self.notify("\nExchanging authorization code for access token...")
        try:
            result = await exchange_code_for_token(
                self.client_id,
                self.client_secret,
                code,
                redirect_uri=self.redirect_uri,
                token_url=self.token_url,
                transport=self.token_transport,
            )
        except Exception as exc:  # settles the flow; re-raised from run()
            self.settlement.reject(exc)
        else:
            self.settlement.resolve(result)

    def _on_timeout(self) -> None:
        if self.settlement.reject(OAuthTimeoutError(self.timeout)):
            logger.debug("OAuth flow timed out after %ss", self.timeout)

    def _bind(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
        except OSError as exc:
            sock.close()
            raise OAuthServerError(str(exc)) from exc
        self.port = sock.getsockname()[1]
        return sock

    def _announce(self) -> None:
        url = self.authorization_url
        self.notify("Starting OAuth 2.0 authentication flow...\n")
        self.notify("Opening browser for authorization...")
        self.notify(f"If the browser doesn't open, visit this URL:\n{url}\n")
        try:
            opened = self.open_browser(url)
        except webbrowser.Error as exc:
            self.notify(f"Failed to open browser automatically: {exc}")
            return
        if not opened:
            self.notify("Failed to open browser automatically.")

    async def run(self) -> OAuthResult:
        sock = self._bind()
        config = uvicorn.Config(
            self.app,
            lifespan="off",
            log_config=None,
            log_level="warning",
            access_log=False,
            timeout_keep_alive=1,
        )
        server = uvicorn.Server(config)
        serve_task = asyncio.create_task(server.serve(sockets=[sock]))
        timer = asyncio.get_running_loop().call_later(self.timeout, self._on_timeout)
        logger.debug("Callback listener starting on %s:%s", self.host, self.port)
        try:
            while not server.started:
                if serve_task.done():
                    raise OAuthServerError("listener exited during startup")
                await asyncio.sleep(0.01)
            self._announce()
            return await self.settlement.wait()
        finally:
            timer.cancel()
            force = isinstance(self.settlement.error, OAuthTimeoutError)
            await self._shutdown(server, serve_task, force=force)
            sock.close()

    async def _shutdown(self, server: uvicorn.Server, serve_task: asyncio.Task, *, force: bool) -> None:
        if not force and server.started:
            # Let the browser receive the final page before the listener goes away.
            await asyncio.sleep(CLOSE_DELAY)
        server.should_exit = True
        server.force_exit = force
        try:
            await serve_task
        except (Exception, SystemExit) as exc:
            logger.warning("Callback listener stopped with error: %s", exc)
        logger.debug("Callback listener closed (force=%s)", force)


async def login(
    client_id: str,
    client_secret: str,
    store: ConfigStore,
    **flow_options: Any,
) -> tuple[OAuthResult, Config]:
    result = await OAuthFlow(client_id, client_secret, **flow_options).run()
    config = store.update_auth(
        client_id,
        client_secret,
        result.access_token,
        result.refresh_token,
        expiry_from_now(result.expires_in),
    )
    return result, config


__all__ = [
    "OAuthFlow",
    "OAuthResult",
    "Settlement",
    "build_authorization_url",
    "ensure_fresh_token",
    "exchange_code_for_token",
    "login",
    "refresh_access_token",
]
