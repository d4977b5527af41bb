"""Exception types raised by PocketSearch."""

from __future__ import annotations


class PocketSearchError(Exception):
    """Base class for all PocketSearch failures."""


class StoreError(PocketSearchError):
    """The record store could not complete an operation."""


class SyncError(PocketSearchError):
    """A sync run failed before it could record its results."""
