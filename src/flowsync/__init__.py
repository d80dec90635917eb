"""
FlowSync -- versioned backups of Flowise chatflows.

Polls one or more Flowise instances, writes every chatflow to a
file-per-flow tree, archives flows that disappear upstream, and
records each change as a git commit pushed to a remote.

The Flowise API is the source of truth. The repository is the history.
"""

__version__ = "0.1.0"
__author__ = "FlowSync"
