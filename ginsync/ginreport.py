r"""
``ginreport``: Print progress of synchronization runs
========================================================

This module drains a :class:`ginengine.StatusChannel` and prints each
event as soon as it arrives, either as a line of text or, with
``--json``, as one JSON object per line.
"""

# Standard library
import json

# Third-party
import click

# Local imports
from .ginengine import FileState


def format_output(chan, jsonout: bool = False, echo=click.echo) -> int:
    r"""Print all events of a channel until it is closed

    :Call:
        >>> nerr = format_output(chan, jsonout=False)
    :Inputs:
        *chan*: :class:`StatusChannel`
            Channel filled by a :class:`SyncEngine` thread
        *jsonout*: ``True`` | {``False``}
            Print JSON records instead of text
        *echo*: {:func:`click.echo`} | :class:`callable`
            Function to print one line
    :Outputs:
        *nerr*: :class:`int`
            Number of failed files, plus one if the run ended early
    :Versions:
        * 2026-10-12 ``@ginsync``: v1.0
    """
    # Failed files in order of failure
    failed = []
    # Read until closed
    for status in chan:
        # Collect failures
        if status.state is FileState.FAILED:
            failed.append(status)
        # Print
        if jsonout:
            echo(json.dumps(status.to_dict()))
        else:
            echo(_fmt_status(status))
    # Check for fatal error
    fatal = chan.error
    if fatal is not None:
        if jsonout:
            echo(json.dumps({
                "filename": "",
                "state": FileState.FAILED.value,
                "progress": "",
                "err": str(fatal),
            }))
    # Final summary
    if not jsonout and (failed or fatal is not None):
        echo(_fmt_summary(failed, fatal), err=True)
    # Output
    return len(failed) + (fatal is not None)


def _fmt_status(status) -> str:
    # State column
    line = "%-11s %s" % (status.state.value, status.filename)
    # Optional parts
    if status.progress:
        line += " (%s)" % status.progress
    if status.err is not None:
        line += ": %s" % _first_line(status.err)
    return line


def _fmt_summary(failed, fatal) -> str:
    # List each failed file
    lines = []
    if failed:
        lines.append("%i operation(s) failed:" % len(failed))
        for status in failed:
            lines.append("  %s: %s" % (status.filename, _first_line(status.err)))
    # Error that ended the run
    if fatal is not None:
        lines.append("%s:" % fatal.__class__.__name__)
        lines.append("  %s" % fatal)
    return "\n".join(lines)


def _first_line(err) -> str:
    # Long command errors: keep it to one line
    txt = str(err).strip()
    return txt.split("\n", 1)[0] if txt else err.__class__.__name__
