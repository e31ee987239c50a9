r"""
``ginannex``: Decide between direct and annexed tracking
===========================================================

Files at least as large as the configured threshold are handed to
``git-annex``; smaller files, and any file matching one of the
exclusion patterns, are committed directly with ``git``.

The decision is a pure function of path, size, and rules, so the same
answer comes out of clone, upload, and status passes.
"""

# Standard library
import enum
import fnmatch
import posixpath
import re
from dataclasses import dataclass

# Local imports
from .ginerror import GinValueError


# Size units (git-annex convention: SI by default, IEC with "i")
SIZE_UNITS = {
    "": 1,
    "k": 1000,
    "m": 1000**2,
    "g": 1000**3,
    "t": 1000**4,
    "p": 1000**5,
    "ki": 1024,
    "mi": 1024**2,
    "gi": 1024**3,
    "ti": 1024**4,
    "pi": 1024**5,
}

# Regular expression for sizes like "10M", "2.5 GiB", "512kb"
REGEX_SIZE = re.compile(
    r"\s*(?P<num>[0-9]+(?:\.[0-9]*)?)\s*(?P<unit>[kmgtp]i?)?b?\s*",
    re.IGNORECASE)


class TrackMode(enum.Enum):
    r"""How a file's content is tracked"""
    DIRECT = "direct"
    ANNEXED = "annexed"


@dataclass(frozen=True)
class AnnexRule:
    r"""Rules for selecting annexed files

    :Attributes:
        *exclude*: :class:`tuple`\ [:class:`str`]
            Glob patterns of files never to annex
        *minsize*: :class:`int`
            Smallest size (bytes) of an annexed file
    """
    exclude: tuple = ()
    minsize: int = 10 * 1000**2

    @classmethod
    def from_config(cls, conf):
        r"""Create rules from a :class:`GinConfiguration` snapshot

        :Call:
            >>> rules = AnnexRule.from_config(conf)
        :Versions:
            * 2026-10-12 ``@ginsync``: v1.0
        """
        return cls(
            exclude=tuple(conf.annex.exclude),
            minsize=parse_size(conf.annex.minsize))


def classify_file(path: str, size: int, rules: AnnexRule) -> TrackMode:
    r"""Decide whether a file is tracked directly or annexed

    :Call:
        >>> mode = classify_file(path, size, rules)
    :Inputs:
        *path*: :class:`str`
            Path of file relative to repository root
        *size*: :class:`int`
            Size of file in bytes
        *rules*: :class:`AnnexRule`
            Exclusion patterns and size threshold
    :Outputs:
        *mode*: :class:`TrackMode`
            ``ANNEXED`` iff *size* >= *rules.minsize* and *path* matches
            no exclusion pattern; ``DIRECT`` otherwise
    :Versions:
        * 2026-10-12 ``@ginsync``: v1.0
    """
    # Exclusions always win
    if is_excluded(path, rules.exclude):
        return TrackMode.DIRECT
    # Size threshold (inclusive)
    if size >= rules.minsize:
        return TrackMode.ANNEXED
    return TrackMode.DIRECT


def is_excluded(path: str, patterns) -> bool:
    r"""Check if *path* matches any of the glob *patterns*

    Each pattern is tested against the POSIX form of the full relative
    path and against the base name, so ``*.md`` excludes Markdown files
    in any folder while ``docs/*`` only applies to ``docs/``.
    """
    # Normalize path separators
    fposix = path.replace("\\", "/")
    fbase = posixpath.basename(fposix)
    # Loop through patterns
    for pattern in patterns:
        if fnmatch.fnmatchcase(fposix, pattern):
            return True
        if fnmatch.fnmatchcase(fbase, pattern):
            return True
    return False


def parse_size(txt) -> int:
    r"""Convert human-readable size to bytes

    :Call:
        >>> nbytes = parse_size(txt)
    :Inputs:
        *txt*: :class:`str` | :class:`int`
            Size such as ``"10M"``, ``"100kb"``, ``"1GiB"``, or ``512``
    :Outputs:
        *nbytes*: :class:`int`
            Size in bytes
    :Raises:
        :class:`GinValueError` if *txt* can't be interpreted
    :Versions:
        * 2026-10-12 ``@ginsync``: v1.0
    """
    # Integers are already bytes
    if isinstance(txt, int) and not isinstance(txt, bool):
        if txt < 0:
            raise GinValueError("Negative size %i" % txt)
        return txt
    # Parse
    match = REGEX_SIZE.fullmatch(str(txt))
    if match is None:
        raise GinValueError("Invalid size '%s'" % txt)
    # Unpack
    num = float(match.group("num"))
    unit = (match.group("unit") or "").lower()
    # Output
    return int(num * SIZE_UNITS[unit])


def genr8_largefiles(rules: AnnexRule) -> str:
    r"""Convert rules to a git-annex ``annex.largefiles`` expression

    Lets plain ``git annex add`` in a clone follow the same rules as
    :func:`classify_file`.

    :Call:
        >>> expr = genr8_largefiles(rules)
    :Inputs:
        *rules*: :class:`AnnexRule`
            Exclusion patterns and size threshold
    :Outputs:
        *expr*: :class:`str`
            Expression such as
            ``"largerthan=9999999b and not include=*.md"``
    :Versions:
        * 2026-10-18 ``@ginsync``: v1.0
    """
    # Threshold is inclusive; largerthan= is strict
    if rules.minsize > 0:
        terms = ["largerthan=%ib" % (rules.minsize - 1)]
    else:
        terms = ["anything"]
    # Exclusions
    for pattern in rules.exclude:
        terms.append("not include=%s" % pattern)
    return " and ".join(terms)
