# -*- coding: utf-8 -*-
r"""
``ginrepo``: Interact with git/git-annex repos using system interface
========================================================================

This module provides the :class:`GinRepo` class, a thin interface to a
working repository that is tracked by both ``git`` and ``git-annex``.
Each method runs one external command. Commands on the same repository
are serialized with a lock so that worker threads never run two
``git`` processes against the same working copy at once.

"""

# Standard library
import logging
import os
import threading
from subprocess import Popen, PIPE

# Local imports
from .ginconfig import BinConfig
from .ginerror import GinIOError, VCSError


# Module logger
logger = logging.getLogger(__name__)

# Message for commits creating a new repository
INITIAL_COMMIT_MSG = "Initial commit"


# Run a command and capture output
def call_oe(cmd, cwd=None, env=None):
    r"""Run a command, capturing STDOUT and STDERR

    :Call:
        >>> stdout, stderr, ierr = call_oe(cmd, cwd=None, env=None)
    :Inputs:
        *cmd*: :class:`list`\ [:class:`str`]
            Command to run in list form
        *cwd*: {``None``} | :class:`str`
            Location in which to run subprocess
        *env*: {``None``} | :class:`dict`
            Extra environment variables
    :Outputs:
        *stdout*: :class:`str`
            Captured STDOUT
        *stderr*: :class:`str`
            Captured STDERR
        *ierr*: :class:`int`
            Return code
    :Versions:
        * 2026-10-12 ``@ginsync``: v1.0
    """
    # Full environment
    fullenv = None
    if env:
        fullenv = dict(os.environ)
        fullenv.update(env)
    logger.debug("> %s", " ".join(cmd))
    # Run command
    try:
        proc = Popen(cmd, stdout=PIPE, stderr=PIPE, cwd=cwd, env=fullenv)
    except OSError as err:
        # Missing executable, bad cwd, etc.
        raise VCSError("Cannot run '%s': %s" % (cmd[0], err))
    # Wait for command
    stdout, stderr = proc.communicate()
    # Output
    return (
        stdout.decode("utf-8", errors="replace"),
        stderr.decode("utf-8", errors="replace"),
        proc.returncode)


def check_o(cmd, codes=None, cwd=None, env=None) -> str:
    r"""Run a command, capturing STDOUT and checking return code

    :Call:
        >>> stdout = check_o(cmd, codes=None, cwd=None, env=None)
    :Inputs:
        *cmd*: :class:`list`\ [:class:`str`]
            Command to run in list form
        *codes*: {``None``} | :class:`list`\ [:class:`int`]
            Collection of allowed return codes (default only ``0``)
        *cwd*: {``None``} | :class:`str`
            Location in which to run subprocess
        *env*: {``None``} | :class:`dict`
            Extra environment variables
    :Outputs:
        *stdout*: :class:`str`
            Captured STDOUT from command, if any
    :Raises:
        :class:`VCSError` on any other return code
    :Versions:
        * 2026-10-12 ``@ginsync``: v1.0
    """
    # Run the command as requested, capturing STDOUT and STDERR
    stdout, stderr, ierr = call_oe(cmd, cwd=cwd, env=env)
    # Check for allowed nonzero codes
    if codes and ierr in codes:
        return stdout
    # Check for errors
    if ierr:
        raise VCSError(
            ("Unexpected exit code %i from command\n" % ierr) +
            ("> %s\n\n" % " ".join(cmd)) +
            ("Original error message:\n%s" % stderr.strip()))
    # Output
    return stdout


def make_ssh_env(conf) -> dict:
    r"""Environment making ``git`` use configured SSH and host key

    Writes ``known_hosts`` with the configured GIN host key to the
    configuration folder and points ``GIT_SSH_COMMAND`` at it.

    :Call:
        >>> env = make_ssh_env(conf)
    :Inputs:
        *conf*: :class:`GinConfiguration`
            Configuration snapshot
    :Outputs:
        *env*: :class:`dict`
            Extra environment variables (empty if no config folder)
    :Versions:
        * 2026-10-12 ``@ginsync``: v1.0
    """
    # Need a place to write the host key
    if not conf.confdir or not conf.git_hostkey:
        return {}
    # Path to file
    fhosts = os.path.join(conf.confdir, "known_hosts")
    # Write file
    try:
        os.makedirs(conf.confdir, exist_ok=True)
        with open(fhosts, "w") as fp:
            fp.write(conf.git_hostkey.strip() + "\n")
    except OSError as err:
        raise GinIOError("Cannot write %s: %s" % (fhosts, err))
    # SSH command
    sshcmd = "%s -o StrictHostKeyChecking=yes -o UserKnownHostsFile=%s" % (
        conf.bin.ssh, fhosts)
    return {"GIT_SSH_COMMAND": sshcmd}


# Class to interface one repo
class GinRepo(object):
    r"""Interface to a working git repository with a git-annex

    :Call:
        >>> repo = GinRepo(where=None, bins=None, env=None)
    :Inputs:
        *where*: {``None``} | :class:`str`
            Path from which to look for git repo (default is CWD)
        *bins*: {``None``} | :class:`BinConfig`
            Paths to ``git`` and ``git-annex`` executables
        *env*: {``None``} | :class:`dict`
            Extra environment for all commands (e.g. SSH settings)
    :Outputs:
        *repo*: :class:`GinRepo`
            Interface to git repository
    :Versions:
        * 2026-10-12 ``@ginsync``: v1.0
    """
   # --- Class attributes ---
    # Class attributes
    __slots__ = (
        "bins",
        "env",
        "gitdir",
        "_lock")

   # --- __dunder__ ---
    def __init__(self, where=None, bins=None, env=None):
        # Save settings
        self.bins = BinConfig() if bins is None else bins
        self.env = dict(env) if env else {}
        self._lock = threading.RLock()
        # Record root directory
        self.gitdir = get_gitdir(where, self.bins.git)

    def __repr__(self):
        return "%s(%r)" % (self.__class__.__name__, self.gitdir)

   # --- Clone ---
    @classmethod
    def clone(cls, url: str, dest: str, bins=None, env=None):
        r"""Clone a remote repository and return interface to it

        :Call:
            >>> repo = GinRepo.clone(url, dest, bins=None, env=None)
        :Inputs:
            *url*: :class:`str`
                URL of remote repository
            *dest*: :class:`str`
                Folder to create
            *bins*: {``None``} | :class:`BinConfig`
                External executables
            *env*: {``None``} | :class:`dict`
                Extra environment variables
        :Outputs:
            *repo*: :class:`GinRepo`
                Interface to new working repository
        :Raises:
            :class:`VCSError` if ``git clone`` fails
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
        """
        # Executables
        bins = BinConfig() if bins is None else bins
        # Check for existing folder
        if os.path.exists(dest):
            raise VCSError("Destination '%s' already exists" % dest)
        # Clone the repo using git
        check_o([bins.git, "clone", url, dest], env=env)
        # Instantiate
        return cls(dest, bins=bins, env=env)

   # --- Shell utilities ---
    def git(self, *args) -> list:
        r"""Form a ``git`` command list"""
        return [self.bins.git, *args]

    def annex(self, *args) -> list:
        r"""Form a ``git-annex`` command list"""
        return [self.bins.gitannex, *args]

    def check_o(self, cmd, codes=None) -> str:
        r"""Run a command in repo root, capturing STDOUT

        :Call:
            >>> stdout = repo.check_o(cmd, codes=None)
        :Inputs:
            *repo*: :class:`GinRepo`
                Interface to git repository
            *cmd*: :class:`list`\ [:class:`str`]
                Command to run in list form
            *codes*: {``None``} | :class:`list`\ [:class:`int`]
                Collection of allowed return codes (default only ``0``)
        :Outputs:
            *stdout*: :class:`str`
                Captured STDOUT from command, if any
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
        """
        with self._lock:
            return check_o(cmd, codes=codes, cwd=self.gitdir, env=self.env)

    def call_oe(self, cmd):
        r"""Run a command in repo root; return output and status"""
        with self._lock:
            return call_oe(cmd, cwd=self.gitdir, env=self.env)

   # --- Status Operations ---
    def ls_files(self, *fnames) -> list:
        r"""List files tracked by git (annexed files included)

        :Call:
            >>> filelist = repo.ls_files(*fnames)
        :Outputs:
            *filelist*: :class:`list`\ [:class:`str`]
                Paths relative to repo root, in git's order
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
        """
        # Null-separated to survive odd file names
        stdout = self.check_o(self.git("ls-files", "-z", "--", *fnames))
        return [fname for fname in stdout.split("\0") if fname]

    def status(self, *fnames, untracked=True) -> dict:
        r"""Get short status code of changed files

        :Call:
            >>> statusdict = repo.status(*fnames, untracked=True)
        :Inputs:
            *repo*: :class:`GinRepo`
                Interface to git repository
            *fnames*: :class:`tuple`\ [:class:`str`]
                Restrict to these files or folders
            *untracked*: {``True``} | ``False``
                Whether to include untracked files
        :Outputs:
            *statusdict*: :class:`dict`\ [:class:`str`]
                Two-letter status code (e.g. ``" M"``, ``"??"``) for
                each changed file, in git's order
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
        """
        # Form command
        cmd = self.git("status", "--porcelain", "-z")
        cmd.append("--untracked-files=%s" % ("all" if untracked else "no"))
        cmd.append("--")
        cmd.extend(fnames)
        # Run it
        stdout = self.check_o(cmd)
        return _parse_status(stdout)

    def is_annexed(self, fname: str) -> bool:
        r"""Check if a file is tracked by git-annex

        :Call:
            >>> q = repo.is_annexed(fname)
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
        """
        # lookupkey succeeds only for annexed files
        _, _, ierr = self.call_oe(self.annex("lookupkey", "--", fname))
        return ierr == 0

    def annex_files(self) -> dict:
        r"""Get all annexed files and their content sizes

        Includes files whose content is not present locally.

        :Call:
            >>> sizes = repo.annex_files()
        :Outputs:
            *sizes*: :class:`dict`\ [:class:`int`]
                Size in bytes for each annexed file (``-1`` if unknown)
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
        """
        # All annexed files, present or not
        stdout = self.check_o(self.annex(
            "find", "--include=*", "--format=${file}\\t${bytesize}\\n"))
        # Parse lines
        sizes = {}
        for line in stdout.splitlines():
            # Skip blank lines
            if not line.strip():
                continue
            fname, _, size = line.rpartition("\t")
            try:
                sizes[fname] = int(size)
            except ValueError:
                sizes[fname] = -1
        return sizes

    def has_commits(self) -> bool:
        r"""Check if current branch has at least one commit"""
        _, _, ierr = self.call_oe(self.git("rev-parse", "--verify", "-q", "HEAD"))
        return ierr == 0

    def has_staged(self) -> bool:
        r"""Check if there are staged changes waiting for a commit"""
        # Exit status 1 means differences
        _, _, ierr = self.call_oe(self.git("diff", "--cached", "--quiet"))
        return ierr != 0

    def remote_has_history(self, remote: str = "origin") -> bool:
        r"""Check if *remote* has at least one branch

        :Raises:
            :class:`VCSError` if *remote* can't be queried
        """
        stdout = self.check_o(self.git("ls-remote", "--heads", remote))
        return stdout.strip() != ""

   # --- Add ---
    def add(self, fname: str):
        r"""Stage a file for direct tracking by git"""
        # Keep git-annex smudge filter from annexing it
        self.check_o(self.git("-c", "annex.largefiles=nothing", "add", "--", fname))

    def annex_add(self, fname: str):
        r"""Stage a file for tracking by git-annex"""
        self.check_o(self.annex("add", "--force-large", "--", fname))

    def add_removed(self, fname: str):
        r"""Stage deletion of a file already removed from work tree"""
        self.check_o(self.git("rm", "--cached", "-q", "--ignore-unmatch", "--", fname))

   # --- Migrate ---
    def migrate(self, fname: str, annexed: bool):
        r"""Move a tracked file between git and git-annex

        :Call:
            >>> repo.migrate(fname, annexed)
        :Inputs:
            *repo*: :class:`GinRepo`
                Interface to git repository
            *fname*: :class:`str`
                Name of tracked file
            *annexed*: ``True`` | ``False``
                Target: annexed (``True``) or direct (``False``)
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
        """
        with self._lock:
            # Annexed -> direct needs the content in the work tree
            if not annexed:
                self.check_o(self.annex("unlock", "--", fname))
            # Drop from index; work tree copy stays
            self.check_o(self.git("rm", "--cached", "-q", "--", fname))
            # Add again with new mode
            if annexed:
                self.annex_add(fname)
            else:
                self.add(fname)

   # --- Commit ---
    def commit(self, msg: str):
        r"""Commit staged changes

        :Call:
            >>> repo.commit(msg)
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
        """
        self.check_o(self.git("commit", "-q", "-m", msg))

    def commit_if_new(self, remote: str = "origin") -> bool:
        r"""Create an initial commit if repository has no history

        Does nothing if *remote* already has history or if a local
        commit exists. Otherwise makes an empty commit so that the
        first push to an empty remote has something to send.

        :Call:
            >>> q = repo.commit_if_new(remote="origin")
        :Inputs:
            *repo*: :class:`GinRepo`
                Interface to git repository
            *remote*: {``"origin"``} | :class:`str`
                Name of remote
        :Outputs:
            *q*: ``True`` | ``False``
                Whether a commit was made
        :Raises:
            :class:`VCSError` if the commit fails
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
        """
        with self._lock:
            # Remote already has history
            if self.remote_has_history(remote):
                return False
            # Local history is enough to push
            if self.has_commits():
                return False
            # Empty initial commit
            self.check_o(self.git(
                "commit", "-q", "--allow-empty", "-m", INITIAL_COMMIT_MSG))
            logger.info("Created initial commit for new repository")
            return True

   # --- Transfer ---
    def push(self, remote: str = "origin"):
        r"""Push current branch to *remote*"""
        self.check_o(self.git("push", "-q", "--set-upstream", remote, "HEAD"))

    def annex_init(self, description: str = ""):
        r"""Initialize git-annex in this repository"""
        cmd = self.annex("init")
        if description:
            cmd.append(description)
        self.check_o(cmd)

    def annex_get(self, fname: str):
        r"""Download content of an annexed file"""
        self.check_o(self.annex("get", "--", fname))

    def annex_copy(self, fname: str, remote: str = "origin"):
        r"""Upload content of an annexed file to *remote*"""
        self.check_o(self.annex("copy", "--to=%s" % remote, "--", fname))

    def annex_copy_missing(self, remote: str = "origin"):
        r"""Upload content of all annexed files not yet on *remote*

        Uses the location log instead of asking the remote, so files
        already known to be there are skipped.

        :Call:
            >>> repo.annex_copy_missing(remote="origin")
        :Versions:
            * 2026-10-18 ``@ginsync``: v1.0
        """
        self.check_o(self.annex("copy", "--fast", "--to=%s" % remote))

    def annex_sync(self, remote: str = "origin"):
        r"""Push git-annex location information to *remote*"""
        self.check_o(self.annex(
            "sync", "--no-pull", "--no-content", remote))

   # --- Config ---
    def has_annex(self) -> bool:
        r"""Check if git-annex has been initialized in this repo

        :Call:
            >>> q = repo.has_annex()
        :Versions:
            * 2026-10-18 ``@ginsync``: v1.0
        """
        # Initialized repos have a UUID
        stdout, _, ierr = self.call_oe(self.git("config", "--get", "annex.uuid"))
        return ierr == 0 and stdout.strip() != ""

    def set_config(self, opt: str, val: str):
        r"""Set a local git config option

        :Call:
            >>> repo.set_config(opt, val)
        :Inputs:
            *repo*: :class:`GinRepo`
                Interface to git repository
            *opt*: :class:`str`
                Full option name, e.g. ``"annex.largefiles"``
            *val*: :class:`str`
                New value
        :Versions:
            * 2026-10-18 ``@ginsync``: v1.0
        """
        self.check_o(self.git("config", opt, val))


def get_gitdir(where=None, git="git") -> str:
    r"""Get absolute path to git repo root

    :Call:
        >>> gitdir = get_gitdir(where=None, git="git")
    :Inputs:
        *where*: {``None``} | :class:`str`
            Working directory (default is CWD)
        *git*: {``"git"``} | :class:`str`
            Path to ``git`` executable
    :Outputs:
        *gitdir*: :class:`str`
            Full path to top-level of working repo
    :Raises:
        :class:`VCSError` if *where* is not in a working repository
    :Versions:
        * 2026-10-12 ``@ginsync``: v1.0
    """
    # Default location
    cwd = os.getcwd() if where is None else where
    # Ask git
    stdout, _, ierr = call_oe([git, "rev-parse", "--show-toplevel"], cwd=cwd)
    # Check for issues
    if ierr or not stdout.strip():
        raise VCSError("Path is not a git repo: %s" % os.path.abspath(cwd))
    # Output
    return os.path.realpath(stdout.strip())


def _parse_status(stdout: str) -> dict:
    # Split NUL-terminated entries
    entries = stdout.split("\0")
    statusdict = {}
    # Loop through entries
    i = 0
    while i < len(entries):
        entry = entries[i]
        i += 1
        # Skip empty trailer
        if len(entry) < 4:
            continue
        # Split code and name
        code = entry[:2]
        fname = entry[3:]
        statusdict[fname] = code
        # Renames and copies are followed by the original name
        if code[0] in "RC":
            i += 1
    return statusdict
