r"""
``ginengine``: Repository synchronization engine
===================================================

This module provides :class:`SyncEngine`, which performs the two
transfer commands of the client:

    * :meth:`SyncEngine.clone_repo`: clone a remote repository and
      download the content of its annexed files
    * :meth:`SyncEngine.upload`: stage, commit, and push local changes,
      moving each file to git or git-annex according to
      :func:`ginannex.classify_file`

Both report progress as :class:`RepoFileStatus` events on a
:class:`StatusChannel`. The engine is the only producer and the caller
(see :mod:`ginreport`) the only consumer. The producer closes the
channel when it is finished; a fatal error is stored on the channel
before closing it.

A failure of one file is reported as a ``failed`` event for that file
and the run continues. Failures that prevent a run from starting
(invalid repository path, missing session) are raised by
:meth:`SyncEngine.start_clone` and :meth:`SyncEngine.start_upload`
before any channel exists.
"""

# Standard library
import enum
import logging
import os
import queue
import threading
from dataclasses import dataclass
from typing import Optional

# Local imports
from .ginannex import AnnexRule, TrackMode, classify_file, genr8_largefiles
from .ginconfig import split_repo_path, validate_repo_path
from .ginerror import GinError, InvalidRepoPathError
from .ginrepo import GinRepo, make_ssh_env


# Module logger
logger = logging.getLogger(__name__)

# Default remote name
REMOTE = "origin"
# Message for upload commits
UPLOAD_COMMIT_MSG = "gin upload"


class FileState(enum.Enum):
    r"""Progress state of one file"""
    CHECKING = "checking"
    ANNEXED = "annexed"
    TRACKED = "tracked"
    MIGRATING = "migrating"
    REMOVED = "removed"
    UPLOADING = "uploading"
    DOWNLOADING = "downloading"
    UPLOADED = "uploaded"
    DOWNLOADED = "downloaded"
    UNMODIFIED = "unmodified"
    FAILED = "failed"
    DONE = "done"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


# States after which no more events for the same file follow
TERMINAL_STATES = frozenset((
    FileState.UPLOADED,
    FileState.DOWNLOADED,
    FileState.UNMODIFIED,
    FileState.FAILED,
    FileState.DONE,
))


class RunState(enum.Enum):
    r"""State of one engine run"""
    IDLE = "idle"
    RESOLVING = "resolving"
    TRANSFERRING = "transferring"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class RepoFileStatus:
    r"""Progress or outcome of one file

    :Attributes:
        *filename*: :class:`str`
            Path relative to repository root (repository path for the
            final ``done`` event)
        *state*: :class:`FileState`
            What happened
        *progress*: {``""``} | :class:`str`
            Optional free-form progress text
        *err*: {``None``} | :class:`Exception`
            Cause of a ``failed`` state
    """
    filename: str
    state: FileState
    progress: str = ""
    err: Optional[Exception] = None

    def to_dict(self) -> dict:
        r"""Convert to JSON-serializable record"""
        return {
            "filename": self.filename,
            "state": self.state.value,
            "progress": self.progress,
            "err": "" if self.err is None else str(self.err),
        }


# Marker put on the queue by :meth:`StatusChannel.close`
_CLOSED = object()


class StatusChannel(object):
    r"""Unbounded single-consumer queue of :class:`RepoFileStatus`

    :meth:`put` never blocks. Iterating the channel yields events until
    :meth:`close` has been called; the fatal error passed to
    :meth:`close`, if any, is then available as :attr:`error`.

    :Call:
        >>> chan = StatusChannel()
        >>> chan.put(RepoFileStatus("a.dat", FileState.CHECKING))
        >>> chan.close()
        >>> events = list(chan)
    :Versions:
        * 2026-10-12 ``@ginsync``: v1.0
    """
   # --- Class attributes ---
    __slots__ = (
        "error",
        "_closed",
        "_queue")

   # --- __dunder__ ---
    def __init__(self):
        self.error = None
        self._closed = False
        self._queue = queue.Queue()

    def __iter__(self):
        # Drain until close marker
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                return
            yield item

   # --- Producer side ---
    def put(self, status: RepoFileStatus):
        r"""Send one event"""
        # Check for closed channel
        if self._closed:
            raise ValueError("put() on closed StatusChannel")
        self._queue.put(status)

    def close(self, err: Optional[Exception] = None):
        r"""Signal that no more events follow

        :Call:
            >>> chan.close(err=None)
        :Inputs:
            *err*: {``None``} | :class:`Exception`
                Fatal error that ended the run early
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
        """
        # Closing twice is harmless
        if self._closed:
            return
        self.error = err
        self._closed = True
        self._queue.put(_CLOSED)

    @property
    def closed(self) -> bool:
        return self._closed


# Class to run transfers
class SyncEngine(object):
    r"""Clone and upload repositories with per-file progress

    :Call:
        >>> engine = SyncEngine(conf, repo_class=GinRepo)
    :Inputs:
        *conf*: :class:`GinConfiguration`
            Configuration snapshot for this command
        *repo_class*: {:class:`GinRepo`} | :class:`type`
            Repository interface (replaceable for testing)
        *where*: {``None``} | :class:`str`
            Working directory for clone target / upload source
    :Outputs:
        *engine*: :class:`SyncEngine`
            Synchronization engine
    :Versions:
        * 2026-10-12 ``@ginsync``: v1.0
    """
   # --- Class attributes ---
    __slots__ = (
        "conf",
        "hosts",
        "repo_class",
        "rules",
        "state",
        "where")

   # --- __dunder__ ---
    def __init__(self, conf, repo_class=GinRepo, where=None):
        self.conf = conf
        self.hosts = conf.hosts
        self.rules = AnnexRule.from_config(conf)
        self.repo_class = repo_class
        self.where = os.getcwd() if where is None else where
        self.state = RunState.IDLE

   # --- Threads ---
    def start_clone(self, repopath: str) -> StatusChannel:
        r"""Validate *repopath*, then run :meth:`clone_repo` in a thread

        :Call:
            >>> chan = engine.start_clone(repopath)
        :Raises:
            :class:`InvalidRepoPathError` before anything else happens
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
        """
        # Check path first
        self._assert_repopath(repopath)
        return self._start(self.clone_repo, repopath)

    def start_upload(self, paths=()) -> StatusChannel:
        r"""Run :meth:`upload` in a thread

        :Call:
            >>> chan = engine.start_upload(paths)
        :Raises:
            :class:`VCSError` if not run inside a repository
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
        """
        # Open repo now so that "not a repo" is raised to the caller
        repo = self._open_repo()
        return self._start(self.upload, list(paths), repo=repo)

    def _start(self, func, *a, **kw) -> StatusChannel:
        # Create channel
        chan = StatusChannel()
        # Worker thread
        thread = threading.Thread(
            target=self._run, args=(func, chan, *a), kwargs=kw,
            name="gin-%s" % func.__name__, daemon=True)
        thread.start()
        return chan

    def _run(self, func, chan: StatusChannel, *a, **kw):
        # Make sure the consumer is released even on unexpected errors
        try:
            func(*a, chan, **kw)
        except Exception as err:
            logger.exception("Unexpected error in %s", func.__name__)
            self.state = RunState.FAILED
            chan.close(err)

   # --- Clone ---
    def clone_repo(self, repopath: str, out: StatusChannel):
        r"""Clone a repository and download annexed content

        :Call:
            >>> engine.clone_repo(repopath, out)
        :Inputs:
            *engine*: :class:`SyncEngine`
                Synchronization engine
            *repopath*: :class:`str`
                Repository path ``owner/name``
            *out*: :class:`StatusChannel`
                Channel for progress events; closed on return
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
            * 2026-10-18 ``@ginsync``: v1.1; apply annex rules to clone
        """
        # Check path before any process activity
        try:
            self._assert_repopath(repopath)
        except InvalidRepoPathError as err:
            self._fail(out, err)
            return
        # Resolve remote location
        self.state = RunState.RESOLVING
        _, name = split_repo_path(repopath)
        url = self.get_remote_url(repopath)
        dest = os.path.join(self.where, name)
        logger.info("Cloning %s into %s", url, dest)
        # Clone and initialize; failure here is fatal
        try:
            env = make_ssh_env(self.conf)
            repo = self.repo_class.clone(url, dest, bins=self.conf.bin, env=env)
            repo.annex_init()
            # Later "git annex add" follows the same rules
            repo.set_config("annex.largefiles", genr8_largefiles(self.rules))
            files = repo.ls_files()
            annexed = repo.annex_files()
        except GinError as err:
            self._fail(out, err)
            return
        # Per-file pass
        self.state = RunState.TRANSFERRING
        nfail = 0
        for fname in files:
            # Status update
            out.put(RepoFileStatus(fname, FileState.CHECKING))
            # Recorded mode is kept; report disagreement with rules
            is_annex = fname in annexed
            note = self._check_rules(repo, fname, annexed.get(fname), is_annex)
            # Directly tracked: content came with the clone
            if not is_annex:
                out.put(RepoFileStatus(fname, FileState.TRACKED, note))
                out.put(RepoFileStatus(fname, FileState.DOWNLOADED))
                continue
            # Annexed: fetch content
            out.put(RepoFileStatus(fname, FileState.ANNEXED, note))
            out.put(RepoFileStatus(
                fname, FileState.DOWNLOADING, _fmt_size(annexed[fname])))
            try:
                repo.annex_get(fname)
            except GinError as err:
                logger.warning("Failed to get content of %s: %s", fname, err)
                out.put(RepoFileStatus(fname, FileState.FAILED, err=err))
                nfail += 1
                continue
            out.put(RepoFileStatus(fname, FileState.DOWNLOADED))
        # Summary
        self.state = RunState.DONE
        out.put(RepoFileStatus(
            repopath, FileState.DONE, _fmt_summary(len(files), nfail)))
        out.close()

   # --- Upload ---
    def upload(self, paths, out: StatusChannel, repo=None):
        r"""Stage, commit, and push local changes

        :Call:
            >>> engine.upload(paths, out, repo=None)
        :Inputs:
            *engine*: :class:`SyncEngine`
                Synchronization engine
            *paths*: :class:`list`\ [:class:`str`]
                Files or folders to upload; empty list means all
                modified or deleted files that are already tracked
            *out*: :class:`StatusChannel`
                Channel for progress events; closed on return
            *repo*: {``None``} | :class:`GinRepo`
                Repository interface (default: repo at *engine.where*)
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
            * 2026-10-18 ``@ginsync``: v1.1; always push, resend content
        """
        # Find candidates
        self.state = RunState.RESOLVING
        try:
            if repo is None:
                repo = self._open_repo()
            statusdict = repo.status(*paths, untracked=bool(paths))
        except GinError as err:
            self._fail(out, err)
            return
        # Nothing changed; earlier commits and content may still be unsent
        if not statusdict:
            for fname in paths:
                out.put(RepoFileStatus(fname, FileState.UNMODIFIED))
        # Stage each file
        self.state = RunState.TRANSFERRING
        staged = {}
        nfail = 0
        for fname, code in statusdict.items():
            mode = self._stage_file(repo, fname, code, out)
            if mode is None:
                nfail += 1
            else:
                staged[fname] = mode
        # Commit and push
        self.state = RunState.FINALIZING
        try:
            repo.commit_if_new(REMOTE)
            if repo.has_staged():
                repo.commit(UPLOAD_COMMIT_MSG)
            repo.push(REMOTE)
        except GinError as err:
            # Nothing reached the remote
            logger.warning("Push failed: %s", err)
            for fname in staged:
                out.put(RepoFileStatus(fname, FileState.FAILED, err=err))
            self.state = RunState.FAILED
            out.put(RepoFileStatus(
                repo.gitdir, FileState.DONE,
                _fmt_summary(len(statusdict), len(statusdict))))
            out.close(err)
            return
        # Upload annexed content
        for fname, mode in staged.items():
            # Non-annexed files went with the push
            if mode is not FileState.ANNEXED:
                out.put(RepoFileStatus(fname, FileState.UPLOADED))
                continue
            out.put(RepoFileStatus(fname, FileState.UPLOADING))
            try:
                repo.annex_copy(fname, REMOTE)
            except GinError as err:
                logger.warning("Failed to upload content of %s: %s", fname, err)
                out.put(RepoFileStatus(fname, FileState.FAILED, err=err))
                nfail += 1
                continue
            out.put(RepoFileStatus(fname, FileState.UPLOADED))
        # Content left behind by earlier runs, and annex location info
        err = None
        try:
            if repo.has_annex():
                if not statusdict:
                    repo.annex_copy_missing(REMOTE)
                repo.annex_sync(REMOTE)
        except GinError as e:
            logger.warning("Failed to send annexed content: %s", e)
            err = e
        # Summary
        self.state = RunState.FAILED if err else RunState.DONE
        if statusdict:
            summary = _fmt_summary(len(statusdict), nfail)
        else:
            summary = "no local changes"
        out.put(RepoFileStatus(repo.gitdir, FileState.DONE, summary))
        out.close(err)

    def _stage_file(self, repo, fname: str, code: str, out: StatusChannel):
        # Status update
        out.put(RepoFileStatus(fname, FileState.CHECKING))
        try:
            # Deleted file
            if "D" in code:
                repo.add_removed(fname)
                out.put(RepoFileStatus(fname, FileState.REMOVED))
                return FileState.REMOVED
            # Desired mode
            fabs = os.path.join(repo.gitdir, fname)
            mode = classify_file(fname, os.path.getsize(fabs), self.rules)
            want_annex = mode is TrackMode.ANNEXED
            # Current mode of already tracked files
            if code != "??" and "A" not in code:
                is_annex = repo.is_annexed(fname)
                # Migrate if classification changed
                if is_annex != want_annex:
                    out.put(RepoFileStatus(
                        fname, FileState.MIGRATING,
                        "to annex" if want_annex else "to git"))
                    repo.migrate(fname, want_annex)
                    return self._put_mode(out, fname, want_annex)
            # Stage content
            if want_annex:
                repo.annex_add(fname)
            else:
                repo.add(fname)
        except (GinError, OSError) as err:
            logger.warning("Failed to add %s: %s", fname, err)
            out.put(RepoFileStatus(fname, FileState.FAILED, err=err))
            return None
        return self._put_mode(out, fname, want_annex)

    def _put_mode(self, out, fname, annexed):
        # Report mode and return it
        state = FileState.ANNEXED if annexed else FileState.TRACKED
        # Direct files are not finished until pushed
        progress = "" if annexed else "staged"
        out.put(RepoFileStatus(fname, state, progress))
        return state

    def _check_rules(self, repo, fname: str, size, is_annex: bool) -> str:
        # Direct files: size from work tree
        if size is None:
            try:
                size = os.path.getsize(os.path.join(repo.gitdir, fname))
            except OSError:
                return ""
        # Size of annexed content not known
        if size < 0:
            return ""
        # Compare recorded mode with rules
        mode = classify_file(fname, size, self.rules)
        if (mode is TrackMode.ANNEXED) == is_annex:
            return ""
        logger.info(
            "%s is %s but annex rules select %s", fname,
            "annexed" if is_annex else "in git", mode.value)
        return "rules: %s" % mode.value

   # --- Remote ---
    def get_remote_url(self, repopath: str) -> str:
        r"""Form SSH URL of a repository on the git host

        :Call:
            >>> url = engine.get_remote_url(repopath)
        :Outputs:
            *url*: :class:`str`
                ``ssh://<user>@<host:port>/<owner>/<name>``
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
        """
        return "ssh://%s@%s/%s" % (
            self.hosts.git_user, self.hosts.git_host, repopath)

    def commit_if_new(self, remote: str = REMOTE) -> bool:
        r"""Make an initial commit in the current repo if it has none

        :Call:
            >>> q = engine.commit_if_new(remote="origin")
        :Raises:
            :class:`VCSError` if the commit fails
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
        """
        return self._open_repo().commit_if_new(remote)

   # --- Helpers ---
    def _open_repo(self):
        return self.repo_class(
            self.where, bins=self.conf.bin, env=make_ssh_env(self.conf))

    def _assert_repopath(self, repopath: str):
        if not validate_repo_path(repopath):
            raise InvalidRepoPathError(
                "Invalid repository path '%s'. Full repository name should "
                "be the owner's username followed by the repository name, "
                "separated by a '/'." % repopath)

    def _fail(self, out: StatusChannel, err: Exception):
        # Fatal: close without further per-file events
        logger.error("%s", err)
        self.state = RunState.FAILED
        out.close(err)


def _fmt_size(nbytes: int) -> str:
    # Unknown size
    if nbytes < 0:
        return ""
    # Scale
    for unit in ("B", "kB", "MB", "GB", "TB"):
        if nbytes < 1000 or unit == "TB":
            break
        nbytes /= 1000.0
    if unit == "B":
        return "%i B" % nbytes
    return "%.1f %s" % (nbytes, unit)


def _fmt_summary(nfile: int, nfail: int) -> str:
    # Summary text for final event
    if nfail:
        return "%i files, %i failed" % (nfile, nfail)
    return "%i files" % nfile
