from oomwatch.watch.resumable import ResumableWatch, WatchCursor, WatchHandler, randomized_timeout

__all__ = ["ResumableWatch", "WatchCursor", "WatchHandler", "randomized_timeout"]
