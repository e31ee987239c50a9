# Standard library
import os
import stat
import sys

# Third-party
import pytest

# Local imports
from ginsync.ginerror import CorruptStateError, GinIOError, NotLoggedInError
from ginsync.gintoken import TOKEN_FILENAME, TokenStore, UserToken


# Store, load, delete
def test_token01(confdir):
    # Store at default location
    store = TokenStore.from_env()
    assert store.root == confdir
    # Nothing stored yet
    with pytest.raises(NotLoggedInError):
        store.load_token()
    # Store a token
    store.store_token(UserToken("alice", "some_sort_of_token"))
    ftoken = os.path.join(confdir, TOKEN_FILENAME)
    assert os.path.isfile(ftoken)
    # Read it back
    usertoken = store.load_token()
    assert usertoken == UserToken("alice", "some_sort_of_token")
    assert store.load_token("alice") == usertoken
    # Different user
    with pytest.raises(NotLoggedInError):
        store.load_token("bob")
    # Replace it
    store.store_token(UserToken("bob", "123"))
    assert store.load_token() == UserToken("bob", "123")
    # No temp files left behind
    assert os.listdir(confdir) == [TOKEN_FILENAME]
    # Logout, twice
    store.delete_token()
    store.delete_token()
    with pytest.raises(NotLoggedInError):
        store.load_token()


# Empty token differs from missing token
def test_token_empty(confdir):
    store = TokenStore(confdir)
    store.store_token(UserToken("", ""))
    assert store.load_token() == UserToken("", "")


# Permissions
@pytest.mark.skipif(sys.platform.startswith("win"), reason="POSIX modes")
def test_token_mode(confdir):
    store = TokenStore(confdir)
    store.store_token(UserToken("alice", "secret"))
    fmode = os.stat(store.get_tokenfile()).st_mode
    assert stat.S_IMODE(fmode) == 0o600


# No usable root
def test_token_noroot(monkeypatch):
    # Override set to empty string
    monkeypatch.setenv("GIN_CONFIG_DIR", "")
    store = TokenStore.from_env()
    assert store.root is None
    # Reading: not logged in
    with pytest.raises(NotLoggedInError):
        store.load_token()
    # Writing: I/O error
    with pytest.raises(GinIOError):
        store.store_token(UserToken("alice", "x"))
    # Deleting: nothing to do
    store.delete_token()


# Root that is a file
def test_token_unwritable(tmp_path):
    fbad = tmp_path / "notadir"
    fbad.write_text("")
    store = TokenStore(str(fbad))
    with pytest.raises(GinIOError):
        store.store_token(UserToken("alice", "x"))


# Corrupt contents
def test_token_corrupt(confdir):
    store = TokenStore(confdir)
    ftoken = store.get_tokenfile()
    # Not YAML
    with open(ftoken, "w") as fp:
        fp.write("username: [\n")
    with pytest.raises(CorruptStateError):
        store.load_token()
    # YAML, but not a mapping
    with open(ftoken, "w") as fp:
        fp.write("just a string\n")
    with pytest.raises(CorruptStateError):
        store.load_token()
    # Missing token
    with open(ftoken, "w") as fp:
        fp.write("username: alice\n")
    with pytest.raises(CorruptStateError):
        store.load_token()
