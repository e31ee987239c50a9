# Third-party
import pytest

# Local imports
from ginsync import ginerror


# Error family
def test_hierarchy():
    # Every kind can be caught as GinError
    for cls in (
            ginerror.NotLoggedInError,
            ginerror.GinConnectionError,
            ginerror.RequestFailedError,
            ginerror.NotFoundError,
            ginerror.InvalidResponseError,
            ginerror.GinIOError,
            ginerror.CorruptStateError,
            ginerror.VCSError,
            ginerror.InvalidRepoPathError,
            ginerror.GinValueError):
        assert issubclass(cls, ginerror.GinError)
    # Builtin parents
    assert issubclass(ginerror.GinConnectionError, ConnectionError)
    assert issubclass(ginerror.GinIOError, IOError)
    assert issubclass(ginerror.VCSError, SystemError)
    assert issubclass(ginerror.InvalidRepoPathError, ValueError)
    # 404 is a special failed request
    assert issubclass(ginerror.NotFoundError, ginerror.RequestFailedError)
    # Kinds that callers treat differently must not overlap
    assert not issubclass(
        ginerror.InvalidResponseError, ginerror.RequestFailedError)
    assert not issubclass(
        ginerror.GinConnectionError, ginerror.RequestFailedError)


# Status code on failed requests
def test_status_code():
    err = ginerror.RequestFailedError("boom", 500)
    assert err.status_code == 500
    assert str(err) == "boom"
    err = ginerror.NotFoundError("gone", 404)
    assert err.status_code == 404


# Test type checker for config values
def test_isinstance():
    # Valid value
    ginerror.assert_isinstance([], list, "annex.exclude")
    # Failed check: single type
    with pytest.raises(ginerror.GinValueError) as excinfo:
        ginerror.assert_isinstance("*.md", list, "annex.exclude")
    assert str(excinfo.value) == (
        "Setting annex.exclude must be list, not str")
    # Failed check: multiple types
    with pytest.raises(ginerror.GinValueError) as excinfo:
        ginerror.assert_isinstance(1, (str, float), "annex.minsize")
    assert "must be str or float, not int" in str(excinfo.value)
