r"""
``ginerror``: Errors for :mod:`ginsync` modules
===========================================================

This module provides a collection of error types relevant to the
:mod:`ginsync` package. They are essentially the same as standard error
types such as :class:`ConnectionError`, :class:`ValueError`, etc. but
with an extra parent of :class:`GinError` to enable catching all errors
specifically raised by this package.

The error kinds matter to callers: a :class:`GinConnectionError` may be
retried, a :class:`RequestFailedError` should fail fast, and an
:class:`InvalidResponseError` points at a corrupted payload.
"""


# Basic error family
class GinError(Exception):
    r"""Parent error class for :mod:`ginsync` errors

    Inherits from :class:`Exception`
    """
    pass


class NotLoggedInError(GinError):
    r"""No readable session token for the current configuration root
    """
    pass


class GinConnectionError(ConnectionError, GinError):
    r"""Host unreachable, or no usable host address configured

    Inherits from :class:`ConnectionError` and :class:`GinError`
    """
    pass


class RequestFailedError(GinError):
    r"""Server answered with a non-success HTTP status

    :Call:
        >>> err = RequestFailedError(msg, status_code=None)
    :Inputs:
        *msg*: :class:`str`
            Error message
        *status_code*: {``None``} | :class:`int`
            HTTP status returned by the server
    :Versions:
        * 2026-10-12 ``@ginsync``: v1.0
    """
    def __init__(self, msg: str, status_code=None):
        GinError.__init__(self, msg)
        self.status_code = status_code


class NotFoundError(RequestFailedError):
    r"""Requested resource does not exist (HTTP 404)
    """
    pass


class InvalidResponseError(ValueError, GinError):
    r"""Successful HTTP status, but body could not be parsed

    Inherits from :class:`ValueError` and :class:`GinError`
    """
    pass


class GinIOError(IOError, GinError):
    r"""Local filesystem error (config root, token file, work tree)

    Inherits from :class:`IOError` and :class:`GinError`
    """
    pass


class CorruptStateError(ValueError, GinError):
    r"""Persisted state (e.g. token file) exists but cannot be parsed
    """
    pass


class VCSError(SystemError, GinError):
    r"""Exception for failures of ``git`` or ``git-annex`` commands
    """
    pass


class InvalidRepoPathError(ValueError, GinError):
    r"""Repository path is not of the form ``owner/repository``
    """
    pass


class GinValueError(ValueError, GinError):
    r"""Exception for unexpected value of a configuration setting
    """
    pass


# Check type of a configuration value
def assert_isinstance(obj, cls, desc: str):
    r"""Check that a configuration value has the expected type

    :Call:
        >>> assert_isinstance(obj, cls, desc)
    :Inputs:
        *obj*: :class:`object`
            Value read from a configuration file
        *cls*: :class:`type` | :class:`tuple`\ [:class:`type`]
            Allowed type(s)
        *desc*: :class:`str`
            Name of the setting, used in the error message
    :Raises:
        :class:`GinValueError` naming *desc* and both types
    :Versions:
        * 2026-10-12 ``@ginsync``: v1.0
        * 2026-10-18 ``@ginsync``: v1.1; configuration values only
    """
    # Valid value
    if isinstance(obj, cls):
        return
    # Allowed type name(s)
    if isinstance(cls, tuple):
        expected = " or ".join(c.__name__ for c in cls)
    else:
        expected = cls.__name__
    raise GinValueError(
        "Setting %s must be %s, not %s" % (desc, expected, type(obj).__name__))
