"""
HTTP-backed validate and refresh hooks built on httpx.

Each builder returns a plain callable taking the plaintext field values, so
the resulting hooks plug into any ConnectionDefinition. Failures are mapped
onto AuthError reasons:

    401 / 403                       -> invalid-credential
    400 with OAuth2 ``invalid_grant`` -> invalid-credential
    timeouts and transport errors   -> network
    anything else                   -> unknown
"""

import base64
from typing import Callable, Dict, Mapping, Optional

import httpx

from ..constants import Timeouts
from ..enums import AuthErrorReason
from ..exceptions import AuthError
from ..schemas.credential_schemas import RefreshResult
from ..utils.logger import get_logger

HeaderBuilder = Callable[[Mapping[str, str]], Dict[str, str]]

_REJECTED_STATUSES = frozenset([401, 403])


def _client(timeout: float, transport: Optional[httpx.BaseTransport]) -> httpx.Client:
    return httpx.Client(timeout=httpx.Timeout(timeout), transport=transport)


def _transport_failure(action: str, url: str, error: httpx.HTTPError) -> AuthError:
    timed_out = isinstance(error, httpx.TimeoutException)
    return AuthError(
        f"{action} request to {url} {'timed out' if timed_out else 'failed to connect'}",
        reason=AuthErrorReason.NETWORK,
        url=url,
        timed_out=timed_out,
        error_type=type(error).__name__,
        cause=error,
    )


def _status_failure(action: str, url: str, response: httpx.Response) -> AuthError:
    if response.status_code in _REJECTED_STATUSES:
        reason = AuthErrorReason.INVALID_CREDENTIAL
    else:
        reason = AuthErrorReason.UNKNOWN
    return AuthError(
        f"{action} request to {url} returned HTTP {response.status_code}",
        reason=reason,
        url=url,
        http_status=response.status_code,
    )


def bearer_header(field_name: str) -> HeaderBuilder:
    """Send one field as ``Authorization: Bearer <value>``."""

    def build(values: Mapping[str, str]) -> Dict[str, str]:
        return {"Authorization": f"Bearer {values[field_name]}"}

    return build


def basic_auth_header(username_field: str = "username", password_field: str = "password") -> HeaderBuilder:
    """Send two fields as HTTP basic credentials."""

    def build(values: Mapping[str, str]) -> Dict[str, str]:
        raw = f"{values[username_field]}:{values.get(password_field, '')}".encode("utf-8")
        return {"Authorization": f"Basic {base64.b64encode(raw).decode('ascii')}"}

    return build


def http_validator(
    url: str,
    build_headers: HeaderBuilder,
    method: str = "GET",
    timeout: float = Timeouts.EXTERNAL_API_CALL,
    transport: Optional[httpx.BaseTransport] = None,
) -> Callable[[Mapping[str, str]], None]:
    """
    Build a "who-am-i" validate hook.

    Any 2xx response means the credential authenticates.

    Args:
        url: Endpoint that requires authentication
        build_headers: Turns field values into request headers
        method: HTTP method to use
        timeout: Bound on the whole request, in seconds
        transport: Optional httpx transport (tests pass httpx.MockTransport)
    """

    def validate(values: Mapping[str, str]) -> None:
        logger = get_logger()
        try:
            with _client(timeout, transport) as client:
                response = client.request(method, url, headers=build_headers(values))
        except httpx.HTTPError as e:
            raise _transport_failure("Validation", url, e) from e

        logger.debug("Validation response received", extra={"url": url, "http_status": response.status_code})
        if not response.is_success:
            raise _status_failure("Validation", url, response)

    return validate


def _oauth2_error_code(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    return body.get("error") if isinstance(body, dict) else None


def oauth2_refresher(
    token_url: str,
    access_token_field: str = "accessToken",
    refresh_token_field: str = "refreshToken",
    client_id_field: str = "clientId",
    client_secret_field: str = "clientSecret",
    client_credential_location: str = "body",
    timeout: float = Timeouts.EXTERNAL_API_CALL,
    transport: Optional[httpx.BaseTransport] = None,
) -> Callable[[Mapping[str, str]], RefreshResult]:
    """
    Build a refresh hook exchanging a refresh token at ``token_url``.

    Client credentials, when the instance holds them, go in the form body or
    in a basic Authorization header (``client_credential_location="header"``).
    A rotated refresh token in the response replaces the stored one.
    """
    if client_credential_location not in ("body", "header"):
        raise ValueError("client_credential_location must be 'body' or 'header'")

    def refresh(values: Mapping[str, str]) -> RefreshResult:
        logger = get_logger()
        refresh_token = values.get(refresh_token_field)
        if not refresh_token:
            raise AuthError(
                "Credential holds no refresh token",
                reason=AuthErrorReason.INVALID_CREDENTIAL,
                field=refresh_token_field,
            )

        headers = {"Accept": "application/json"}
        payload = {"grant_type": "refresh_token", "refresh_token": refresh_token}

        client_id = values.get(client_id_field)
        client_secret = values.get(client_secret_field)
        if client_id:
            if client_credential_location == "header":
                raw = f"{client_id}:{client_secret or ''}".encode("utf-8")
                headers["Authorization"] = f"Basic {base64.b64encode(raw).decode('ascii')}"
            else:
                payload["client_id"] = client_id
                if client_secret:
                    payload["client_secret"] = client_secret

        try:
            with _client(timeout, transport) as client:
                response = client.post(token_url, headers=headers, data=payload)
        except httpx.HTTPError as e:
            raise _transport_failure("Token refresh", token_url, e) from e

        logger.info(
            "Token refresh response received",
            extra={"url": token_url, "http_status": response.status_code},
        )

        if response.status_code == 400 and _oauth2_error_code(response) == "invalid_grant":
            raise AuthError(
                "Refresh token was rejected by the authorization server",
                reason=AuthErrorReason.INVALID_CREDENTIAL,
                url=token_url,
                http_status=400,
                oauth_error="invalid_grant",
            )
        if not response.is_success:
            raise _status_failure("Token refresh", token_url, response)

        try:
            body = response.json()
        except ValueError as e:
            raise AuthError(
                "Token endpoint returned a non-JSON body",
                reason=AuthErrorReason.UNKNOWN,
                url=token_url,
                cause=e,
            ) from e

        access_token = body.get("access_token") if isinstance(body, dict) else None
        if not access_token:
            raise AuthError(
                "Token endpoint response has no access_token",
                reason=AuthErrorReason.UNKNOWN,
                url=token_url,
            )

        new_values = {access_token_field: access_token}
        if body.get("refresh_token"):
            new_values[refresh_token_field] = body["refresh_token"]

        expires_in = body.get("expires_in")
        try:
            expires_in = int(expires_in) if expires_in is not None else None
        except (TypeError, ValueError):
            expires_in = None

        return RefreshResult(
            values=new_values,
            expires_in=expires_in if expires_in and expires_in > 0 else None,
        )

    return refresh
