"""Automatic re-creation of environments when they go stale.

An :class:`AutoReloader` wraps a creator function that builds an environment
(any object).  The creator is handed a :class:`Notifier` which it can use to
watch file system paths or to register a freshness callback.  Every call to
:meth:`AutoReloader.acquire_env` checks whether a reload was requested and
rebuilds the environment if so.  While the returned guard is held no further
reloads happen.
"""

from __future__ import annotations

import threading
import weakref
from typing import Any, Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

__all__ = ["AutoReloader", "EnvironmentGuard", "Notifier"]

_MISSING = object()

# Event types that mark the watched tree as changed: creation, removal,
# content modification and renames.
_RELOAD_EVENTS = frozenset({"created", "deleted", "modified", "moved"})


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, on_change: Callable[[], None]) -> None:
        super().__init__()
        self._on_change = on_change

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in _RELOAD_EVENTS:
            self._on_change()


class _WatcherSlot:
    """Owns the file system observer; holds no reference to the notifier state."""

    def __init__(self) -> None:
        self.observer: Optional[Any] = None
        self.watches: dict[str, Any] = {}

    def watch(self, path: str, recursive: bool, on_change: Callable[[], None]) -> None:
        if self.observer is None:
            observer = Observer()
            observer.daemon = True
            observer.start()
            self.observer = observer
        try:
            watch = self.observer.schedule(
                _ChangeHandler(on_change), path, recursive=recursive
            )
        except OSError:
            return
        self.watches[path] = watch

    def unwatch(self, path: str) -> None:
        watch = self.watches.pop(path, None)
        if watch is None or self.observer is None:
            return
        try:
            self.observer.unschedule(watch)
        except (KeyError, OSError):
            pass

    def clear(self) -> None:
        observer, self.observer = self.observer, None
        self.watches.clear()
        if observer is None:
            return
        observer.stop()
        if threading.current_thread() is not observer:
            observer.join(timeout=5)


class _NotifierState:
    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.should_reload = False
        self.callback: Optional[Callable[[], bool]] = None
        self.persistent_fs_watcher = False
        self.watcher = _WatcherSlot()
        weakref.finalize(self, self.watcher.clear)


class Notifier:
    """Signals the auto reloader that the environment should be re-created.

    Notifiers handed out by the reloader only weakly reference its state; once
    the reloader is gone they are dead and do nothing.
    """

    def __init__(self, state: _NotifierState, strong: bool = False) -> None:
        self._strong: Optional[_NotifierState] = state if strong else None
        self._weak = weakref.ref(state)

    def _state(self) -> Optional[_NotifierState]:
        if self._strong is not None:
            return self._strong
        return self._weak()

    def _require_state(self) -> _NotifierState:
        state = self._state()
        if state is None:
            raise RuntimeError("notifier unexpectedly went away")
        return state

    def request_reload(self) -> None:
        """Mark the environment as needing a reload."""
        state = self._state()
        if state is not None:
            with state.lock:
                state.should_reload = True

    def set_callback(self, callback: Callable[[], bool]) -> None:
        """Register a freshness check; returning true requests a reload.

        Only one callback is kept; setting another replaces it.
        """
        state = self._state()
        if state is not None:
            with state.lock:
                state.callback = callback

    def watch_path(self, path, recursive: bool) -> None:
        """Watch a file or directory for changes.

        The watcher is discarded on reload unless persistent watching is on.
        Paths that cannot be watched are silently ignored.
        """
        state = self._state()
        if state is None:
            return
        state_ref = weakref.ref(state)

        def on_change() -> None:
            current = state_ref()
            if current is not None:
                with current.lock:
                    current.should_reload = True

        with state.lock:
            state.watcher.watch(str(path), recursive, on_change)

    def unwatch_path(self, path) -> None:
        """Stop watching a path."""
        state = self._state()
        if state is not None:
            with state.lock:
                state.watcher.unwatch(str(path))

    def persistent_watch(self, yes: bool) -> None:
        """Keep the file system watcher alive across reloads."""
        state = self._state()
        if state is not None:
            with state.lock:
                state.persistent_fs_watcher = bool(yes)

    def is_dead(self) -> bool:
        """True once the reloader that created this notifier is gone."""
        return self._state() is None

    def _should_reload(self) -> bool:
        state = self._state()
        if state is None:
            return False
        with state.lock:
            if state.should_reload:
                return True
            callback = state.callback
        return bool(callback()) if callback is not None else False

    def _perform_reload(self, creator: Callable[["Notifier"], Any]) -> Any:
        state = self._require_state()
        with state.lock:
            if not state.persistent_fs_watcher:
                state.watcher.clear()
        env = creator(Notifier(state))
        with state.lock:
            state.should_reload = False
        return env

    def _weak_copy(self) -> "Notifier":
        return Notifier(self._require_state())


class EnvironmentGuard:
    """Holds the acquired environment; reloads are paused until released."""

    def __init__(self, env: Any, lock: threading.Lock) -> None:
        self._env = env
        self._lock: Optional[threading.Lock] = lock

    @property
    def env(self) -> Any:
        """The guarded environment."""
        if self._lock is None:
            raise RuntimeError("environment guard was released")
        return self._env

    def release(self) -> None:
        """Release the guard; safe to call more than once."""
        lock, self._lock = self._lock, None
        if lock is not None:
            self._env = None
            lock.release()

    def __enter__(self) -> Any:
        return self.env

    def __exit__(self, *args) -> None:
        self.release()


class AutoReloader:
    """Caches an environment and rebuilds it whenever a reload is signalled."""

    def __init__(self, creator: Callable[[Notifier], Any]) -> None:
        self._creator = creator
        self._notifier = Notifier(_NotifierState(), strong=True)
        self._lock = threading.Lock()
        self._cached: Any = _MISSING

    def notifier(self) -> Notifier:
        """Return a weak notifier handle, e.g. for a background thread."""
        return self._notifier._weak_copy()

    def acquire_env(self) -> EnvironmentGuard:
        """Return a guard around the current environment, reloading if needed.

        Exceptions raised by the creator propagate and leave the previous
        environment cached.
        """
        self._lock.acquire()
        try:
            if self._cached is _MISSING or self._notifier._should_reload():
                self._cached = self._notifier._perform_reload(self._creator)
        except BaseException:
            self._lock.release()
            raise
        return EnvironmentGuard(self._cached, self._lock)