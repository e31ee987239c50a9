r"""
``gintoken``: Session token storage
=====================================

A successful login yields a :class:`UserToken`. It is stored as a small
YAML file named ``token`` in the configuration directory (see
:func:`ginconfig.config_path`) and read back for every authenticated
request.

The file is written to a temporary name and then renamed over the old
one, so readers never see a partially written token.
"""

# Standard library
import logging
import os
import tempfile
from dataclasses import dataclass
from typing import Optional

# Third-party
import yaml

# Local imports
from .ginconfig import config_path
from .ginerror import CorruptStateError, GinIOError, NotLoggedInError


# Module logger
logger = logging.getLogger(__name__)

# Name of token file within config dir
TOKEN_FILENAME = "token"


@dataclass(frozen=True)
class UserToken:
    r"""Authenticated session of one user"""
    username: str
    token: str


class TokenStore(object):
    r"""Persist one session token under a configuration root

    :Call:
        >>> store = TokenStore(root)
        >>> store = TokenStore.from_env()
    :Inputs:
        *root*: ``None`` | :class:`str`
            Configuration folder; ``None`` means no usable location
    :Outputs:
        *store*: :class:`TokenStore`
            Token storage interface
    :Versions:
        * 2026-10-12 ``@ginsync``: v1.0
    """
   # --- Class attributes ---
    __slots__ = ("root",)

   # --- __dunder__ ---
    def __init__(self, root: Optional[str]):
        self.root = root

    def __repr__(self):
        return "%s(%r)" % (self.__class__.__name__, self.root)

    @classmethod
    def from_env(cls):
        r"""Create store at the default configuration directory"""
        return cls(config_path())

   # --- Files ---
    def get_tokenfile(self) -> Optional[str]:
        r"""Get absolute path to the token file, if root is usable"""
        # Check for root
        if not self.root:
            return None
        return os.path.join(self.root, TOKEN_FILENAME)

   # --- Operations ---
    def store_token(self, usertoken: UserToken):
        r"""Save *usertoken*, replacing any previous token

        :Call:
            >>> store.store_token(usertoken)
        :Inputs:
            *store*: :class:`TokenStore`
                Token storage interface
            *usertoken*: :class:`UserToken`
                Username and token to persist
        :Raises:
            :class:`GinIOError` if root is unset or not writable
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
        """
        # Get file name
        ftoken = self.get_tokenfile()
        if ftoken is None:
            raise GinIOError("No configuration directory to store token")
        # Contents
        txt = yaml.safe_dump(
            {"username": usertoken.username, "token": usertoken.token},
            default_flow_style=False)
        # Write temp file in same folder, then replace
        try:
            os.makedirs(self.root, exist_ok=True)
            fd, ftmp = tempfile.mkstemp(prefix=".token-", dir=self.root)
        except OSError as err:
            raise GinIOError("Cannot write token to %s: %s" % (self.root, err))
        try:
            with os.fdopen(fd, "w") as fp:
                fp.write(txt)
            # mkstemp already uses 0600; enforce in case of odd umask
            os.chmod(ftmp, 0o600)
            os.replace(ftmp, ftoken)
        except OSError as err:
            # Clean up partial temp file
            if os.path.exists(ftmp):
                os.remove(ftmp)
            raise GinIOError("Cannot write token file %s: %s" % (ftoken, err))
        logger.debug("Saved token for user '%s'", usertoken.username)

    def load_token(self, username: Optional[str] = None) -> UserToken:
        r"""Read the stored token

        :Call:
            >>> usertoken = store.load_token(username=None)
        :Inputs:
            *store*: :class:`TokenStore`
                Token storage interface
            *username*: {``None``} | :class:`str`
                Only accept a token belonging to this user
        :Outputs:
            *usertoken*: :class:`UserToken`
                Stored username and token
        :Raises:
            * :class:`NotLoggedInError` if no token is stored
            * :class:`GinIOError` if the token file can't be read
            * :class:`CorruptStateError` if contents can't be parsed
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
        """
        # Get file name
        ftoken = self.get_tokenfile()
        # Check for a token
        if ftoken is None or not os.path.isfile(ftoken):
            raise NotLoggedInError("You are not logged in")
        # Read it
        try:
            with open(ftoken, "r") as fp:
                txt = fp.read()
        except OSError as err:
            raise GinIOError("Cannot read token file %s: %s" % (ftoken, err))
        # Parse it
        try:
            data = yaml.safe_load(txt)
        except yaml.YAMLError as err:
            raise CorruptStateError("Token file %s is corrupt: %s" % (ftoken, err))
        # Validate contents
        if not isinstance(data, dict):
            raise CorruptStateError("Token file %s is corrupt" % ftoken)
        user = data.get("username")
        token = data.get("token")
        if not isinstance(user, str) or not isinstance(token, str):
            raise CorruptStateError(
                "Token file %s is missing username or token" % ftoken)
        # Check for requested user
        if username is not None and username != user:
            raise NotLoggedInError("User '%s' is not logged in" % username)
        # Output
        return UserToken(user, token)

    def delete_token(self):
        r"""Remove stored token, if any (logout)

        :Call:
            >>> store.delete_token()
        :Raises:
            :class:`GinIOError` if an existing token can't be removed
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
        """
        # Get file name
        ftoken = self.get_tokenfile()
        if ftoken is None:
            return
        try:
            os.remove(ftoken)
        except FileNotFoundError:
            # Already logged out
            return
        except OSError as err:
            raise GinIOError("Cannot remove token file %s: %s" % (ftoken, err))
        logger.debug("Removed token file %s", ftoken)
