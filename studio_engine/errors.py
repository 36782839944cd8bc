"""Failure kinds surfaced by the editing engine.

Every commit either yields one fully encoded image or raises one of these;
callers keep their editing state untouched when that happens so the user can
retry without re-entering parameters.
"""

from __future__ import annotations


class StudioError(Exception):
    """Base class for engine failures."""


class LoadFailure(StudioError):
    """The source image was unreachable, undecodable, empty or timed out."""


class EncodeFailure(StudioError):
    """A pixel buffer could not be serialized to an image container."""


class CommitFailure(StudioError):
    """A collaborator rejected the output of a commit."""


class UploadFailure(CommitFailure):
    pass


class VersioningFailure(CommitFailure):
    pass
