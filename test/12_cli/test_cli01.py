# Standard library
import functools
import json
import os

# Third-party
import httpx
import pytest
from click.testing import CliRunner

# Local imports
from ginsync import cli
from ginsync.ginengine import SyncEngine
from ginsync.gintoken import TokenStore, UserToken
from ginsync.ginweb import GinClient


# Test server address
HOST = "http://testserver:3000"

# Server responses
ALICE_INFO = {
    "uuid": "alice_test_uuid",
    "login": "alice",
    "first_name": "Alice",
    "middle_name": None,
    "last_name": "Goodwill",
    "affiliation": {
        "institute": "The Institute",
        "department": "Some department",
        "city": "Munich",
        "country": "Germany",
        "is_public": True,
    },
}
ALICE_KEYS = [
    {"fingerprint": "fp_one", "key": "ssh-rsa AAAA1 a@host", "description": "a@host"},
    {"fingerprint": "fp_two", "key": "ssh-rsa AAAA2 b@host", "description": "b@host"},
]


# Fake server
def handler(request):
    # Record posts
    if request.method == "POST":
        handler.posts.append(json.loads(request.content))
        return httpx.Response(202)
    if request.url.path == "/api/accounts/alice":
        return httpx.Response(200, json=ALICE_INFO)
    elif request.url.path == "/api/accounts/alice/keys":
        return httpx.Response(200, json=ALICE_KEYS)
    return httpx.Response(404)


@pytest.fixture
def client(monkeypatch, confdir):
    # Route all requests to fake server
    handler.posts = []

    def make_client(conf):
        return GinClient(
            HOST, store=TokenStore(conf.confdir),
            transport=httpx.MockTransport(handler))
    monkeypatch.setattr(cli, "_make_client", make_client)
    return handler


@pytest.fixture
def login(confdir):
    TokenStore(confdir).store_token(UserToken("alice", "secret"))


# Clone stand-in with no files
class EmptyRepo(object):
    calls = []

    def __init__(self, where=None, bins=None, env=None):
        self.gitdir = where

    @classmethod
    def clone(cls, url, dest, bins=None, env=None):
        cls.calls.append(("clone", url))
        os.mkdir(dest)
        return cls(dest)

    def annex_init(self, description=""):
        pass

    def set_config(self, opt, val):
        self.calls.append(("set_config", opt))

    def ls_files(self, *fnames):
        return []

    def annex_files(self):
        return {}

    def commit_if_new(self, remote="origin"):
        self.calls.append(("commit_if_new", self.gitdir))
        return True


# Transfers need a session
def test_get_notloggedin(sandbox):
    result = CliRunner().invoke(cli.main, ["get", "alice/example"])
    assert result.exit_code == cli.IERR_ERROR
    assert "NotLoggedInError" in result.output
    assert not os.path.exists("example")


# Bad repository path
def test_get_badpath(sandbox, login):
    result = CliRunner().invoke(cli.main, ["get", "example"])
    assert result.exit_code == cli.IERR_ERROR
    assert "InvalidRepoPathError" in result.output


# Successful (empty) clone
def test_get01(sandbox, login, monkeypatch):
    EmptyRepo.calls = []
    monkeypatch.setattr(
        cli, "SyncEngine", functools.partial(SyncEngine, repo_class=EmptyRepo))
    result = CliRunner().invoke(cli.main, ["get", "--json", "alice/example"])
    assert result.exit_code == cli.IERR_OK
    # Only the summary record
    records = [json.loads(line) for line in result.output.splitlines()]
    assert records[-1]["state"] == "done"
    assert records[-1]["filename"] == "alice/example"
    # Initial commit made in the new clone
    assert EmptyRepo.calls == [
        ("clone", "ssh://git@gin.g-node.org:22/alice/example"),
        ("set_config", "annex.largefiles"),
        ("commit_if_new", os.path.join(sandbox, "example")),
    ]


# Upload outside of any repository
def test_upload_norepo(sandbox, login):
    result = CliRunner().invoke(cli.main, ["upload", "."])
    assert result.exit_code == cli.IERR_ERROR
    assert "must be run from inside a gin repository" in result.output


# List keys
def test_keys01(login, client):
    result = CliRunner().invoke(cli.main, ["keys"])
    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert lines[0] == "You have 2 key(s) associated with your account."
    assert lines[1] == '[1] "a@host"  Fingerprint: fp_one'
    assert lines[2] == '[2] "b@host"  Fingerprint: fp_two'


# List keys as JSON
def test_keys02(login, client):
    result = CliRunner().invoke(cli.main, ["keys", "--json"])
    assert result.exit_code == 0
    keys = json.loads(result.output)
    assert [k["fingerprint"] for k in keys] == ["fp_one", "fp_two"]


# Add key; label from key comment
def test_keys_add(login, client, tmp_path):
    fkey = tmp_path / "id_test.pub"
    fkey.write_text("ssh-ed25519 AAAAC3 me@laptop\n")
    result = CliRunner().invoke(cli.main, ["keys", "--add", str(fkey)])
    assert result.exit_code == 0
    assert client.posts == [
        {"key": "ssh-ed25519 AAAAC3 me@laptop", "description": "me@laptop"}]
    # Explicit label
    result = CliRunner().invoke(
        cli.main, ["keys", "--add", str(fkey), "--description", "work"])
    assert client.posts[-1]["description"] == "work"


# Keys need a session
def test_keys_notloggedin(client):
    result = CliRunner().invoke(cli.main, ["keys"])
    assert result.exit_code == cli.IERR_ERROR
    assert "NotLoggedInError" in result.output


# Account info
def test_info01(client):
    result = CliRunner().invoke(cli.main, ["info", "alice"])
    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert lines[0] == "User alice"
    assert lines[1] == "Name: Alice Goodwill"
    assert lines[2] == (
        "Affiliation: Some department, The Institute, Munich, Germany")


# Unknown account
def test_info_notfound(client):
    result = CliRunner().invoke(cli.main, ["info", "nobody"])
    assert result.exit_code == cli.IERR_ERROR
    assert "NotFoundError" in result.output


# Logout twice
def test_logout(confdir, login):
    store = TokenStore(confdir)
    assert os.path.isfile(store.get_tokenfile())
    result = CliRunner().invoke(cli.main, ["logout"])
    assert result.exit_code == 0
    assert not os.path.exists(store.get_tokenfile())
    result = CliRunner().invoke(cli.main, ["logout"])
    assert result.exit_code == 0
