r"""
``ginweb``: Client for the GIN account and key service
=========================================================

This module provides :class:`GinClient`, a small REST client for the
account service. It can look up public account information and list or
register the SSH public keys of the logged-in user.

Every request distinguishes three kinds of failure:

    * :class:`GinConnectionError`: the host could not be reached
    * :class:`RequestFailedError`: the server answered with a
      non-success status (:class:`NotFoundError` for 404)
    * :class:`InvalidResponseError`: success status, unparseable body

Errors are always raised, so a caller never holds a partially filled
:class:`Account` or key list.
"""

# Standard library
import logging
from datetime import datetime
from typing import List, Optional
from urllib.parse import quote

# Third-party
import httpx
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

# Local imports
from .ginerror import (
    GinConnectionError,
    InvalidResponseError,
    NotFoundError,
    RequestFailedError)
from .gintoken import TokenStore, UserToken


# Module logger
logger = logging.getLogger(__name__)

# Seconds before giving up on a request
TIMEOUT = 30.0


# --- Data model ---
class Affiliation(BaseModel):
    r"""Institutional affiliation of an account"""
    model_config = ConfigDict(frozen=True)

    institute: str = ""
    department: str = ""
    city: str = ""
    country: str = ""
    is_public: bool = False


class Account(BaseModel):
    r"""Public information of one GIN account

    Optional fields (*title*, *middle_name*, *affiliation*) are ``None``
    when the server omits them or sends ``null``.
    """
    model_config = ConfigDict(frozen=True)

    url: Optional[str] = None
    uuid: str
    login: str
    title: Optional[str] = None
    first_name: str = ""
    middle_name: Optional[str] = None
    last_name: str = ""
    affiliation: Optional[Affiliation] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        # Skip missing middle name
        parts = [self.first_name, self.middle_name, self.last_name]
        return " ".join(p for p in parts if p)


class SSHKey(BaseModel):
    r"""SSH public key registered with an account"""
    model_config = ConfigDict(frozen=True)

    url: Optional[str] = None
    fingerprint: str
    key: str
    description: str = ""
    login: str = ""
    account_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Validator for key lists
_SSHKEY_LIST = TypeAdapter(List[SSHKey])


# --- Client ---
class GinClient(object):
    r"""REST client for account lookup and SSH key management

    :Call:
        >>> client = GinClient(host, store=None, transport=None)
    :Inputs:
        *host*: :class:`str`
            Base URL of the service, e.g. ``https://web.gin.g-node.org:443``
        *store*: {``None``} | :class:`TokenStore`
            Token storage (default from environment)
        *transport*: {``None``} | :class:`httpx.BaseTransport`
            Custom HTTP transport, mainly for testing
    :Outputs:
        *client*: :class:`GinClient`
            Account/key client
    :Versions:
        * 2026-10-12 ``@ginsync``: v1.0
    """
   # --- Class attributes ---
    __slots__ = (
        "host",
        "store",
        "transport")

   # --- __dunder__ ---
    def __init__(self, host: str, store=None, transport=None):
        self.host = host.rstrip("/") if host else ""
        self.store = TokenStore.from_env() if store is None else store
        self.transport = transport

   # --- Accounts ---
    def request_account(self, login: str) -> Account:
        r"""Look up public information of an account

        :Call:
            >>> acc = client.request_account(login)
        :Inputs:
            *client*: :class:`GinClient`
                Account/key client
            *login*: :class:`str`
                Account name
        :Outputs:
            *acc*: :class:`Account`
                Account information
        :Raises:
            * :class:`NotFoundError` if no such account
            * :class:`RequestFailedError` for other non-2xx status
            * :class:`GinConnectionError` if host unreachable
            * :class:`InvalidResponseError` if body can't be parsed
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
        """
        # Send request
        resp = self._request("GET", "/api/accounts/%s" % _q(login))
        # Check status
        self._check_status(resp, "Account '%s'" % login)
        # Parse
        try:
            return Account.model_validate_json(resp.content)
        except ValidationError as err:
            raise InvalidResponseError(
                "Invalid account information for '%s': %s" % (login, err))

   # --- Keys ---
    def get_user_keys(self) -> List[SSHKey]:
        r"""List SSH keys of the logged-in user, in server order

        :Call:
            >>> keys = client.get_user_keys()
        :Outputs:
            *keys*: :class:`list`\ [:class:`SSHKey`]
                Registered public keys
        :Raises:
            * :class:`NotLoggedInError` (no request is sent)
            * :class:`RequestFailedError` for non-2xx status
            * :class:`GinConnectionError` if host unreachable
            * :class:`InvalidResponseError` if body can't be parsed
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
        """
        # Session first; raises NotLoggedInError before any I/O
        usertoken = self.store.load_token()
        # Send request
        resp = self._request(
            "GET", "/api/accounts/%s/keys" % _q(usertoken.username),
            usertoken=usertoken)
        # Check status
        self._check_status(resp, "Keys of '%s'" % usertoken.username)
        # Parse
        try:
            return _SSHKEY_LIST.validate_json(resp.content)
        except ValidationError as err:
            raise InvalidResponseError("Invalid key list: %s" % err)

    def add_key(self, key: str, description: str, public: bool = False):
        r"""Register a new SSH public key with the logged-in account

        The server may process the key asynchronously and answer with
        ``202 Accepted``; any 2xx status counts as success.

        :Call:
            >>> client.add_key(key, description, public=False)
        :Inputs:
            *client*: :class:`GinClient`
                Account/key client
            *key*: :class:`str`
                Public key material, e.g. ``"ssh-rsa AAAA... user@host"``
            *description*: :class:`str`
                Human-readable label for the key
            *public*: ``True`` | {``False``}
                Whether the key was requested as public; the server
                record has no such field, so it only affects logging
        :Raises:
            * :class:`NotLoggedInError` (no request is sent)
            * :class:`RequestFailedError` for non-2xx status
            * :class:`GinConnectionError` if host unreachable
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
        """
        # Session first
        usertoken = self.store.load_token()
        # Body
        body = {"key": key, "description": description}
        # Send request
        resp = self._request(
            "POST", "/api/accounts/%s/keys" % _q(usertoken.username),
            usertoken=usertoken, json=body)
        # Check status
        self._check_status(resp, "Adding key for '%s'" % usertoken.username)
        logger.info(
            "Added %s key '%s' for user '%s'",
            "public" if public else "private", description, usertoken.username)

   # --- HTTP ---
    def _request(self, method: str, path: str, usertoken=None, **kw):
        # No host means no connection
        if not self.host:
            raise GinConnectionError("No server address configured")
        # Full URL
        url = self.host + path
        # Authorization
        headers = {}
        if isinstance(usertoken, UserToken):
            headers["Authorization"] = "Bearer %s" % usertoken.token
        logger.debug("%s %s", method, url)
        # Send it
        try:
            with httpx.Client(transport=self.transport, timeout=TIMEOUT) as web:
                return web.request(method, url, headers=headers, **kw)
        except (httpx.TransportError, httpx.InvalidURL) as err:
            raise GinConnectionError(
                "Server %s is unreachable: %s" % (self.host, err))

    def _check_status(self, resp: httpx.Response, what: str):
        # Check for success
        if resp.is_success:
            return
        logger.debug("%s: HTTP %i", what, resp.status_code)
        # Not found
        if resp.status_code == 404:
            raise NotFoundError("%s not found" % what, resp.status_code)
        # Other failures
        raise RequestFailedError(
            "%s: server returned %i %s" % (
                what, resp.status_code, resp.reason_phrase),
            resp.status_code)


def _q(part: str) -> str:
    # Quote one URL path segment
    return quote(part, safe="")
