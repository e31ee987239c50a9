# Standard library
import json
import re

# Third-party
import httpx
import pytest

# Local imports
from ginsync.ginerror import (
    GinConnectionError,
    InvalidResponseError,
    NotFoundError,
    NotLoggedInError,
    RequestFailedError)
from ginsync.gintoken import TokenStore, UserToken
from ginsync.ginweb import Account, GinClient


# Test server address
HOST = "http://testserver:3000"

# Account responses
ALICE_INFO = (
    '{"url":"test_server/api/accounts/alice","uuid":"alice_test_uuid",'
    '"login":"alice","title":null,"first_name":"Alice","middle_name":null,'
    '"last_name":"Goodwill",%s"created_at":"2016-11-10T12:26:04.57208Z",'
    '"updated_at":"2016-11-10T12:26:04.57208+01:00"}')
ALICE_AFFIL = (
    '"affiliation":{"institute":"The Institute","department":'
    '"Some department","city":"Munich","country":"Germany",'
    '"is_public":true},')

# Key responses
ALICE_KEYS = (
    '[{"url":"test_server/api/keys?fingerprint=fingerprint_one",'
    '"fingerprint":"fingerprint_one","key":"ssh-rsa SSHKEY12344567 name@host",'
    '"description":"name@host","login":"alice",'
    '"account_url":"test_server/api/accounts/alice",'
    '"created_at":"2016-12-12T18:11:54.131134+01:00",'
    '"updated_at":"2016-12-12T18:11:54.131134+01:00"},'
    '{"url":"test_server/api/keys?fingerprint=fingerprint_two",'
    '"fingerprint":"fingerprint_two",'
    '"key":"ssh-rsa SSHKEYTHESECONDONE name@host",'
    '"description":"name@host_2","login":"alice",'
    '"account_url":"test_server/api/accounts/alice",'
    '"created_at":"2016-12-12T18:11:54.131134+01:00",'
    '"updated_at":"2016-12-12T18:11:54.131134+01:00"}]')


# Handlers
def account_handler(request):
    if request.url.path == "/api/accounts/alice":
        return httpx.Response(200, text=ALICE_INFO % "")
    elif request.url.path == "/api/accounts/alicewithaffil":
        return httpx.Response(200, text=ALICE_INFO % ALICE_AFFIL)
    elif request.url.path == "/api/accounts/broken":
        return httpx.Response(500, text="Server returned error")
    return httpx.Response(404)


def keys_handler(request):
    if request.url.path == "/api/accounts/alice/keys":
        return httpx.Response(200, text=ALICE_KEYS)
    elif request.url.path == "/api/accounts/errorinducer/keys":
        return httpx.Response(500, text="Server returned error")
    elif request.url.path == "/api/accounts/badresponse/keys":
        return httpx.Response(200, text="not_json_response")
    return httpx.Response(404)


def add_key_handler(request):
    # Only accept well-formed posts
    if not re.fullmatch("/api/accounts/[a-zA-Z]+/keys", request.url.path):
        return httpx.Response(404)
    try:
        body = json.loads(request.content)
    except ValueError:
        return httpx.Response(400, text="Bad data")
    if set(body) != {"key", "description"}:
        return httpx.Response(400, text="Bad data")
    if request.headers.get("Authorization") != "Bearer some_sort_of_token":
        return httpx.Response(401)
    return httpx.Response(202)


# Transport that must never be used
def no_network(request):
    raise AssertionError("Unexpected request to %s" % request.url)


def make_client(handler, confdir, host=HOST):
    return GinClient(
        host, store=TokenStore(confdir),
        transport=httpx.MockTransport(handler))


# Account lookup
def test_request_account(confdir):
    client = make_client(account_handler, confdir)
    # alice (no affiliation)
    acc = client.request_account("alice")
    assert acc.login == "alice"
    assert acc.uuid == "alice_test_uuid"
    assert acc.title is None
    assert acc.first_name == "Alice"
    assert acc.middle_name is None
    assert acc.last_name == "Goodwill"
    assert acc.full_name == "Alice Goodwill"
    # Absent affiliation is None, not empty
    assert acc.affiliation is None
    # alice (with affiliation)
    acc = client.request_account("alicewithaffil")
    affil = acc.affiliation
    assert affil.institute == "The Institute"
    assert affil.department == "Some department"
    assert affil.city == "Munich"
    assert affil.country == "Germany"
    assert affil.is_public
    # Accounts are immutable
    with pytest.raises(Exception):
        acc.login = "mallory"


# Account lookup failures
def test_request_account_errors(confdir):
    client = make_client(account_handler, confdir)
    # Non-existent user
    with pytest.raises(NotFoundError) as excinfo:
        client.request_account("I don't exist")
    assert excinfo.value.status_code == 404
    # Server error
    with pytest.raises(RequestFailedError) as excinfo:
        client.request_account("broken")
    assert not isinstance(excinfo.value, NotFoundError)
    assert excinfo.value.status_code == 500
    # No server
    client = make_client(no_network, confdir, host="")
    with pytest.raises(GinConnectionError):
        client.request_account("server is broken")


# Body that isn't an account
def test_request_account_badbody(confdir):
    client = make_client(
        lambda request: httpx.Response(200, text='{"login": 3}'), confdir)
    with pytest.raises(InvalidResponseError):
        client.request_account("alice")


# Unreachable host
def test_request_account_unreachable(confdir):
    # Transport that fails like a refused connection
    def refuse(request):
        raise httpx.ConnectError("Connection refused", request=request)
    client = make_client(refuse, confdir)
    with pytest.raises(GinConnectionError):
        client.request_account("alice")


# Key listing
def test_get_user_keys(confdir):
    store = TokenStore(confdir)
    client = make_client(keys_handler, confdir)
    # alice with 2 keys
    store.store_token(UserToken("alice", "some_sort_of_token"))
    keys = client.get_user_keys()
    assert len(keys) == 2
    assert keys[0].key == "ssh-rsa SSHKEY12344567 name@host"
    assert keys[0].description == "name@host"
    assert keys[0].login == "alice"
    assert keys[0].fingerprint == "fingerprint_one"
    assert keys[1].key == "ssh-rsa SSHKEYTHESECONDONE name@host"
    assert keys[1].description == "name@host_2"
    assert keys[1].login == "alice"
    assert keys[1].fingerprint == "fingerprint_two"


# Key listing failures
def test_get_user_keys_errors(confdir, monkeypatch):
    store = TokenStore(confdir)
    client = make_client(keys_handler, confdir)
    # Non-existent user
    store.store_token(UserToken("I do not exist", "some_sort_of_token"))
    with pytest.raises(RequestFailedError):
        client.get_user_keys()
    # Error-inducing request
    store.store_token(UserToken("errorinducer", "some_sort_of_token"))
    with pytest.raises(RequestFailedError) as excinfo:
        client.get_user_keys()
    assert excinfo.value.status_code == 500
    # Bad response
    store.store_token(UserToken("badresponse", "some_sort_of_token"))
    with pytest.raises(InvalidResponseError):
        client.get_user_keys()
    # Not logged in: no request is sent
    monkeypatch.setenv("GIN_CONFIG_DIR", "")
    client = GinClient(
        HOST, store=TokenStore.from_env(),
        transport=httpx.MockTransport(no_network))
    with pytest.raises(NotLoggedInError):
        client.get_user_keys()
    # Bad server
    store.store_token(UserToken("", ""))
    client = make_client(no_network, confdir, host="")
    with pytest.raises(GinConnectionError):
        client.get_user_keys()


# Adding keys
def test_add_key(confdir, monkeypatch):
    store = TokenStore(confdir)
    store.store_token(UserToken("alice", "some_sort_of_token"))
    # Accepted
    client = make_client(add_key_handler, confdir)
    client.add_key("KEY123", "a test key", False)
    # Public flag does not change the request body
    client.add_key("KEY123", "a test key", public=True)
    # Bad server, regardless of key content
    client = make_client(no_network, confdir, host="")
    with pytest.raises(GinConnectionError):
        client.add_key("", "", False)
    # Rejected
    store.store_token(UserToken("alice", "wrong_token"))
    client = make_client(add_key_handler, confdir)
    with pytest.raises(RequestFailedError) as excinfo:
        client.add_key("KEY123", "a test key")
    assert excinfo.value.status_code == 401
    # Not logged in
    monkeypatch.setenv("GIN_CONFIG_DIR", "")
    client = GinClient("", store=TokenStore.from_env())
    with pytest.raises(NotLoggedInError):
        client.add_key("", "")


# Model parsing without network
def test_account_model():
    acc = Account.model_validate_json(ALICE_INFO % ALICE_AFFIL)
    assert acc.affiliation.city == "Munich"
    assert acc.created_at.year == 2016
