r"""
``cli``: Command-line interface to ``gin``
=============================================

This module provides the ``gin`` command. The transfer commands are

    * ``gin get OWNER/REPO``: clone a repository and download the
      content of its annexed files
    * ``gin upload [PATH ...]``: add, commit, and push local changes

and the account commands are ``gin keys``, ``gin info``, and
``gin logout``. Transfer commands accept ``--json`` to print one JSON
record per progress event.

Exit status is ``0`` on success, ``1`` if a command could not run, and
``2`` if at least one file failed.
"""

# Standard library
import json
import logging
import os

# Third-party
import click

# Local imports
from .ginconfig import find_repo_root, read_config, split_repo_path
from .ginengine import SyncEngine
from .ginerror import GinError, GinIOError
from .ginreport import format_output
from .gintoken import TokenStore
from .ginweb import GinClient


# Error codes
IERR_OK = 0
IERR_ERROR = 1
IERR_FAILED = 2


class GinGroup(click.Group):
    r"""Command group that reports :class:`GinError` without traceback"""
    def invoke(self, ctx):
        try:
            return click.Group.invoke(self, ctx)
        except GinError as err:
            click.echo(f"{err.__class__.__name__}:", err=True)
            click.echo(f"  {err}", err=True)
            ctx.exit(IERR_ERROR)


@click.group(cls=GinGroup)
@click.option("-v", "--verbose", is_flag=True, help="Print debug log messages.")
def main(verbose):
    """Client for repositories on a GIN server.

    Track large files with git-annex and small files with git, and
    keep a local clone in sync with the server.
    """
    # Log to STDERR
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s")


def _make_client(conf) -> GinClient:
    # Token store from the same config folder as the snapshot
    return GinClient(conf.gin_host, store=TokenStore(conf.confdir))


def _require_login(client: GinClient):
    # Raises NotLoggedInError before any transfer starts
    return client.store.load_token()


# --- Transfers ---
@main.command("get")
@click.option("--json", "jsonout", is_flag=True, help="Print output in JSON format.")
@click.argument("repopath")
@click.pass_context
def get_repo(ctx, jsonout, repopath):
    """Retrieve (clone) a repository from the remote server.

    REPOPATH is the owner's username, followed by a "/" and the
    repository name, e.g. "alice/example".
    """
    # Configuration snapshot
    conf = read_config()
    client = _make_client(conf)
    _require_login(client)
    # Start clone; raises on invalid path
    engine = SyncEngine(conf)
    chan = engine.start_clone(repopath)
    # Print progress
    nerr = format_output(chan, jsonout)
    # Make sure an empty repository can be pushed to later
    if chan.error is None:
        _, name = split_repo_path(repopath)
        clone = SyncEngine(conf, where=os.path.join(engine.where, name))
        clone.commit_if_new("origin")
    # Exit status
    ctx.exit(IERR_FAILED if nerr else IERR_OK)


@main.command("upload")
@click.option("--json", "jsonout", is_flag=True, help="Print output in JSON format.")
@click.argument("paths", nargs=-1, type=click.Path())
@click.pass_context
def upload(ctx, jsonout, paths):
    """Upload local changes to the remote repository.

    With PATHS, new, modified, and deleted files under those paths are
    uploaded. Without PATHS, only changes to files already being
    tracked are uploaded.
    """
    # Must run in a repository
    try:
        rootdir = find_repo_root()
    except GinIOError:
        raise GinIOError("This command must be run from inside a gin repository.")
    # Configuration snapshot (includes repo annex settings)
    conf = read_config()
    client = _make_client(conf)
    _require_login(client)
    # Paths relative to repo root
    relpaths = [os.path.relpath(os.path.abspath(p), rootdir) for p in paths]
    # Start upload
    engine = SyncEngine(conf, where=rootdir)
    chan = engine.start_upload(relpaths)
    # Print progress
    nerr = format_output(chan, jsonout)
    ctx.exit(IERR_FAILED if nerr else IERR_OK)


# --- Accounts ---
@main.command("keys")
@click.option("--json", "jsonout", is_flag=True, help="Print output in JSON format.")
@click.option(
    "--add", "keyfile", type=click.Path(exists=True, dir_okay=False),
    help="Public key file to register.")
@click.option("--description", default=None, help="Label for the added key.")
def keys(jsonout, keyfile, description):
    """List or add SSH keys of the logged-in user."""
    # Configuration snapshot
    conf = read_config()
    client = _make_client(conf)
    # Add a key
    if keyfile:
        with open(keyfile, "r") as fp:
            key = fp.read().strip()
        # Default label: key comment or file name
        if description is None:
            parts = key.split()
            description = parts[2] if len(parts) > 2 else os.path.basename(keyfile)
        client.add_key(key, description)
        click.echo("New key added '%s'" % description)
        return
    # List keys
    keylist = client.get_user_keys()
    if jsonout:
        click.echo(json.dumps([k.model_dump(mode="json") for k in keylist]))
        return
    click.echo("You have %i key(s) associated with your account." % len(keylist))
    for j, k in enumerate(keylist):
        click.echo("[%i] \"%s\"  Fingerprint: %s" % (j + 1, k.description, k.fingerprint))


@main.command("info")
@click.option("--json", "jsonout", is_flag=True, help="Print output in JSON format.")
@click.argument("login")
def info(jsonout, login):
    """Print public information of an account."""
    # Configuration snapshot
    conf = read_config()
    client = _make_client(conf)
    acc = client.request_account(login)
    # Print
    if jsonout:
        click.echo(acc.model_dump_json())
        return
    click.echo("User %s" % acc.login)
    click.echo("Name: %s" % acc.full_name)
    # Only public affiliations
    affil = acc.affiliation
    if affil is not None and affil.is_public:
        parts = [affil.department, affil.institute, affil.city, affil.country]
        click.echo("Affiliation: %s" % ", ".join(p for p in parts if p))


@main.command("logout")
def logout():
    """Remove the stored session token."""
    # Configuration snapshot
    conf = read_config()
    TokenStore(conf.confdir).delete_token()
    click.echo("You have been logged out.")
