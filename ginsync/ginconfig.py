r"""
``ginconfig``: Client configuration and host resolution
==========================================================

This module reads the ``gin`` client configuration. Values come from
three layers, later ones overriding earlier ones:

    * built-in defaults (:data:`DEFAULTS`)
    * the user file ``config.yml`` in the configuration directory
    * the file ``config.yml`` at the root of the current repository,
      which may only set the ``annex`` section

The result is a frozen :class:`GinConfiguration` snapshot that is
passed explicitly to the components that need it. Nothing is cached
between calls to :func:`read_config`.
"""

# Standard library
import copy
import logging
import os
import re
import sys
from dataclasses import dataclass
from typing import Optional

# Third-party
import yaml

# Local imports
from .ginerror import GinIOError, GinValueError, assert_isinstance


# Module logger
logger = logging.getLogger(__name__)

# Environment variable that overrides the configuration directory
ENV_CONFIG_DIR = "GIN_CONFIG_DIR"
# Name of configuration files
CONFIG_FILENAME = "config.yml"

# Default GIN server host key
GIN_HOSTKEY = (
    "gin.g-node.org,141.84.41.216 ecdsa-sha2-nistp256 "
    "AAAAE2VjZHNhLXNoYTItbmlzdHAyNTYAAAAIbmlzdHAyNTYAAABBBE5IBgKP3nUryE"
    "FaACwY4N3jlqDx8Qw1xAxU2Xpt5V0p9RNefNnedVmnIBV6lA3n+9kT1OSbyqA/+Sgs"
    "Q57nHo0=")

# Built-in defaults
DEFAULTS = {
    "bin": {
        "git": "git",
        "gitannex": "git-annex",
        "ssh": "ssh",
    },
    "gin": {
        "address": "https://web.gin.g-node.org",
        "port": 443,
    },
    "git": {
        "address": "gin.g-node.org",
        "port": 22,
        "user": "git",
        "hostkey": GIN_HOSTKEY,
    },
    "annex": {
        "exclude": [],
        "minsize": "10M",
    },
}

# Valid repository path: exactly one "/" between owner and name
REGEX_REPO_PATH = re.compile(
    r"(?P<owner>[A-Za-z0-9_.-]+)/(?P<name>[A-Za-z0-9_.-]+)")


@dataclass(frozen=True)
class HostInfo:
    r"""Resolved addresses of the account service and git remote"""
    gin_host: str
    git_host: str
    git_user: str


@dataclass(frozen=True)
class BinConfig:
    r"""Paths to external executables"""
    git: str = "git"
    gitannex: str = "git-annex"
    ssh: str = "ssh"


@dataclass(frozen=True)
class AnnexConfig:
    r"""Raw annex settings; see :class:`ginannex.AnnexRule`"""
    exclude: tuple = ()
    minsize: str = "10M"


@dataclass(frozen=True)
class GinConfiguration:
    r"""Immutable snapshot of merged client configuration

    :Call:
        >>> conf = GinConfiguration(gin_host, git_host, git_user, ...)
    :Attributes:
        *gin_host*: :class:`str`
            Base URL (with port) of the account/web service
        *git_host*: :class:`str`
            ``address:port`` of the git SSH remote
        *git_user*: :class:`str`
            SSH user on the git remote
        *git_hostkey*: :class:`str`
            ``known_hosts`` line for the git remote
        *bin*: :class:`BinConfig`
            External executables
        *annex*: :class:`AnnexConfig`
            Annex exclusion patterns and size threshold
        *confdir*: ``None`` | :class:`str`
            Configuration directory the snapshot was read from
    :Versions:
        * 2026-10-12 ``@ginsync``: v1.0
    """
    gin_host: str
    git_host: str
    git_user: str
    git_hostkey: str = GIN_HOSTKEY
    bin: BinConfig = BinConfig()
    annex: AnnexConfig = AnnexConfig()
    confdir: Optional[str] = None

    @property
    def hosts(self) -> HostInfo:
        return HostInfo(self.gin_host, self.git_host, self.git_user)


# --- Repository paths ---
def validate_repo_path(repopath: str) -> bool:
    r"""Check that a repository path is ``owner/repository``

    :Call:
        >>> q = validate_repo_path(repopath)
    :Inputs:
        *repopath*: :class:`str`
            Repository identifier given by the user
    :Outputs:
        *q*: ``True`` | ``False``
            Whether *repopath* has exactly one ``/`` separating a
            non-empty owner and repository name
    :Versions:
        * 2026-10-12 ``@ginsync``: v1.0
    """
    # Check type
    if not isinstance(repopath, str):
        return False
    # Use full match so leading/trailing junk is rejected
    return REGEX_REPO_PATH.fullmatch(repopath) is not None


def split_repo_path(repopath: str):
    r"""Split a validated repository path into owner and name"""
    owner, name = repopath.split("/", 1)
    return owner, name


# --- Hosts ---
def resolve_hosts(values: dict) -> HostInfo:
    r"""Assemble host information from merged configuration values

    This is a pure function; no files are read.

    :Call:
        >>> hosts = resolve_hosts(values)
    :Inputs:
        *values*: :class:`dict`
            Merged configuration with ``gin`` and ``git`` sections
    :Outputs:
        *hosts*: :class:`HostInfo`
            Account service URL, git host, and git user
    :Versions:
        * 2026-10-12 ``@ginsync``: v1.0
    """
    # Sections
    gin = values.get("gin", {})
    git = values.get("git", {})
    # Assemble "address:port" strings
    gin_host = "%s:%s" % (gin.get("address", ""), _port(gin.get("port")))
    git_host = "%s:%s" % (git.get("address", ""), _port(git.get("port")))
    # Output
    return HostInfo(gin_host, git_host, str(git.get("user", "")))


def _port(port) -> int:
    # Ports may come from YAML as str or int
    try:
        return int(port)
    except (TypeError, ValueError):
        raise GinValueError("Invalid port number '%s'" % port)


# --- Config directory ---
def config_path(create: bool = False) -> Optional[str]:
    r"""Get directory where configuration files and token are stored

    If the ``GIN_CONFIG_DIR`` environment variable is set, its value is
    used; an empty value means no usable directory (``None``).
    Otherwise the platform default is used.

    :Call:
        >>> confdir = config_path(create=False)
    :Inputs:
        *create*: ``True`` | {``False``}
            Create the directory (and parents) if missing
    :Outputs:
        *confdir*: ``None`` | :class:`str`
            Absolute path to configuration directory
    :Raises:
        :class:`GinIOError` if *create* and directory can't be made
    :Versions:
        * 2026-10-12 ``@ginsync``: v1.0
    """
    # Check for override
    if ENV_CONFIG_DIR in os.environ:
        confdir = os.environ[ENV_CONFIG_DIR]
        # Set but empty: nothing usable
        if not confdir:
            return None
    else:
        confdir = _platform_config_dir()
    # Create if requested
    if create:
        try:
            os.makedirs(confdir, exist_ok=True)
        except OSError as err:
            raise GinIOError(
                "could not create config directory %s: %s" % (confdir, err))
    # Output
    return confdir


def _platform_config_dir() -> str:
    # Windows
    if sys.platform.startswith("win"):
        appdata = os.environ.get("APPDATA", os.path.expanduser("~"))
        return os.path.join(appdata, "g-node", "gin")
    # macOS
    if sys.platform == "darwin":
        return os.path.join(
            os.path.expanduser("~"),
            "Library", "Application Support", "g-node", "gin")
    # Other POSIX: XDG base directory
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if not xdg:
        xdg = os.path.join(os.path.expanduser("~"), ".config")
    return os.path.join(xdg, "gin")


# --- Repo root ---
def find_repo_root(where=None) -> str:
    r"""Find top-level folder of the git repository containing *where*

    Walks up one folder at a time until a ``.git`` entry is found or
    the filesystem root is reached.

    :Call:
        >>> rootdir = find_repo_root(where=None)
    :Inputs:
        *where*: {``None``} | :class:`str`
            Starting location (default is CWD)
    :Outputs:
        *rootdir*: :class:`str`
            Absolute path to repository root
    :Raises:
        :class:`GinIOError` if no repository contains *where*
    :Versions:
        * 2026-10-12 ``@ginsync``: v1.0
    """
    # Absolute starting point
    path = os.path.abspath(os.getcwd() if where is None else where)
    # Ascend
    while True:
        # Check for .git folder (or file for worktrees/submodules)
        if os.path.exists(os.path.join(path, ".git")):
            return path
        # Parent folder
        updir = os.path.dirname(path)
        # Check for filesystem root
        if updir == path:
            raise GinIOError("Not a repository: %s" % where)
        path = updir


# --- Reading ---
def read_config(confdir=None, where=None) -> GinConfiguration:
    r"""Read configuration from defaults and files

    :Call:
        >>> conf = read_config(confdir=None, where=None)
    :Inputs:
        *confdir*: {``None``} | :class:`str`
            Configuration folder (default from :func:`config_path`)
        *where*: {``None``} | :class:`str`
            Location inside a repository whose ``config.yml`` may
            override ``annex`` settings (default is CWD)
    :Outputs:
        *conf*: :class:`GinConfiguration`
            Merged configuration snapshot
    :Versions:
        * 2026-10-12 ``@ginsync``: v1.0
    """
    # Start with defaults
    values = copy.deepcopy(DEFAULTS)
    # Resolve user config folder
    if confdir is None:
        confdir = config_path()
    # Merge in user config file
    if confdir:
        fcfg = os.path.join(confdir, CONFIG_FILENAME)
        _merge(values, _read_yaml(fcfg))
    # Merge in annex section from the repo config, if any
    try:
        reporoot = find_repo_root(where)
    except GinIOError:
        reporoot = None
    if reporoot is not None:
        fcfg = os.path.join(reporoot, CONFIG_FILENAME)
        repovals = _read_yaml(fcfg)
        # Only annex settings are allowed per repository
        if "annex" in repovals:
            _merge(values, {"annex": repovals["annex"]})
    # Create snapshot
    conf = build_configuration(values, confdir)
    logger.debug("configuration values: %s", conf)
    # Output
    return conf


def build_configuration(values: dict, confdir=None) -> GinConfiguration:
    r"""Convert merged configuration values to a snapshot

    :Call:
        >>> conf = build_configuration(values, confdir=None)
    :Inputs:
        *values*: :class:`dict`
            Merged configuration (same structure as :data:`DEFAULTS`)
        *confdir*: {``None``} | :class:`str`
            Configuration folder to record in snapshot
    :Outputs:
        *conf*: :class:`GinConfiguration`
            Immutable configuration
    :Versions:
        * 2026-10-12 ``@ginsync``: v1.0
    """
    # Hosts
    hosts = resolve_hosts(values)
    # Binaries
    bins = values.get("bin", {})
    binconf = BinConfig(
        git=str(bins.get("git", "git")),
        gitannex=str(bins.get("gitannex", "git-annex")),
        ssh=str(bins.get("ssh", "ssh")))
    # Annex filters
    annex = values.get("annex", {})
    exclude = annex.get("exclude") or []
    # Allow a single pattern as a string
    if isinstance(exclude, str):
        exclude = [exclude]
    assert_isinstance(exclude, list, "annex.exclude")
    annexconf = AnnexConfig(
        exclude=tuple(str(pat) for pat in exclude),
        minsize=str(annex.get("minsize", "10M")))
    # Output
    return GinConfiguration(
        gin_host=hosts.gin_host,
        git_host=hosts.git_host,
        git_user=hosts.git_user,
        git_hostkey=str(values.get("git", {}).get("hostkey", "")),
        bin=binconf,
        annex=annexconf,
        confdir=confdir)


def _read_yaml(fname: str) -> dict:
    # Missing file is not an error
    if not os.path.isfile(fname):
        return {}
    # Read file
    try:
        with open(fname, "r") as fp:
            data = yaml.safe_load(fp)
    except yaml.YAMLError as err:
        raise GinValueError("Invalid config file %s: %s" % (fname, err))
    except OSError as err:
        raise GinIOError("Cannot read config file %s: %s" % (fname, err))
    logger.debug("Found config file %s", fname)
    # Empty file
    if data is None:
        return {}
    # Check type
    assert_isinstance(data, dict, "contents of %s" % fname)
    # Output
    return data


def _merge(base: dict, override: dict):
    # Recursive merge of *override* into *base*
    for key, val in override.items():
        if isinstance(val, dict) and isinstance(base.get(key), dict):
            _merge(base[key], val)
        else:
            base[key] = val
