r"""
GIN synchronization client (``ginsync``) is a Python package to keep a
local clone of a repository hosted on a GIN server in sync with the
server. It provides both an API (see :class:`SyncEngine` and
:class:`GinClient`) and a command-line interface (see
:mod:`ginsync.cli`).

Small files are tracked directly by git. Large files, as decided by
:func:`classify_file`, are tracked by git-annex and transferred
separately from the git history.

"""

# Local imports
from .ginannex import AnnexRule, TrackMode, classify_file
from .ginengine import FileState, RepoFileStatus, StatusChannel, SyncEngine
from .ginweb import GinClient
