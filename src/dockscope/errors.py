"""
Error taxonomy for dockscope.

  - FetchError: a resource listing or describe call failed. Shown inline,
    previously rendered rows are kept.
  - ActionError: a single-ID mutation failed. Aggregated into the action
    result summary; other IDs still run.
  - StreamError: a log stream or stats tick failed. The tick is skipped and
    the display retained.
  - FatalError: the adapter could not be constructed at all. Propagates to
    process exit before the dashboard starts.
"""


class DockscopeError(Exception):
    """Base class for all dockscope errors."""


class FetchError(DockscopeError):
    pass


class ActionError(DockscopeError):
    pass


class StreamError(DockscopeError):
    pass


class FatalError(DockscopeError):
    pass
