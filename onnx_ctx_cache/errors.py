"""Exceptions raised while encoding/decoding context nodes.

All errors derive from :class:`CtxCacheError` so callers can catch the whole
family at once. None of them are retried internally: a bad cache is reported,
and the caller decides whether to recompile.
"""

from __future__ import annotations


class CtxCacheError(Exception):
    """Base class for context-cache errors."""


class MalformedPartition(CtxCacheError):
    """A partition does not hold exactly one EPContext node."""


class NoMainContext(CtxCacheError):
    """No EPContext node is marked as the session main."""


class PathNotRelative(CtxCacheError):
    """An external cache reference is absolute (or empty)."""


class PathTraversal(CtxCacheError):
    """An external cache reference contains a '..' segment."""


class CacheFileNotFound(CtxCacheError, FileNotFoundError):
    """The resolved cache path is not an existing regular file."""


class EmptyCacheFile(CtxCacheError):
    """The external cache file exists but holds no bytes."""


class CacheIoError(CtxCacheError, OSError):
    """Reading or writing a cache file failed."""


class MissingQnnModel(CtxCacheError):
    """No compiled-model record (or tensor info) for a partition."""


class BackendLoadFailed(CtxCacheError):
    """The backend loader rejected a context blob."""


class InvalidGraph(CtxCacheError):
    """Loading from an EPContext model failed.

    This is the error kind callers check to detect a stale or incompatible
    cache, as opposed to an unrelated internal fault.
    """
