# envreload

Two small utilities for code that builds environments (template
environments, configuration objects, anything) and hands objects to
code that must not keep them longer than allowed.

- `envreload.autoreload` caches an environment and rebuilds it when a
  reload is requested, when a freshness callback says so, or when a
  watched file or directory changes.
- `envreload.stackref` hands out references to values that are only
  usable while a scope is open.

## Auto reloading

`AutoReloader(creator)` takes a function that builds an environment.
The function is called with a `Notifier` and may return any object.

```python
from envreload.autoreload import AutoReloader

def create(notifier):
    notifier.watch_path("templates", True)
    return {"loaded_from": "templates"}

reloader = AutoReloader(create)

with reloader.acquire_env() as env:
    print(env["loaded_from"])
```

`acquire_env()` builds the environment on first use, and again whenever
a reload has been requested. It returns an `EnvironmentGuard`; while the
guard is held, other callers of `acquire_env()` wait and no reload
happens. Use the guard as a context manager, or read `guard.env` and
call `guard.release()` yourself (releasing twice is harmless; reading
`env` after release raises `RuntimeError`). If the creator raises, the
exception propagates out of `acquire_env()` and the previously cached
environment stays in place.

The `Notifier` offers:

- `request_reload()` – rebuild on the next `acquire_env()`.
- `set_callback(callback)` – a function checked on every
  `acquire_env()`; a true result requests a reload. Only one callback is
  kept; a new one replaces the old.
- `watch_path(path, recursive)` – watch a file or directory with
  watchdog; creation, deletion, modification and moves request a reload.
  Paths that cannot be watched are ignored.
- `unwatch_path(path)` – stop watching a path.
- `persistent_watch(yes)` – keep watches across reloads. By default all
  watches are dropped before the creator runs again, so the creator is
  expected to set them up each time.
- `is_dead()` – true once the reloader that owns the notifier has been
  garbage collected; a dead notifier does nothing.

`reloader.notifier()` returns a notifier that can be handed to another
thread, for example to call `request_reload()` from a background job.

## Scope-bound references

```python
from envreload.stackref import scope

items = [1, 2, 3, 4]

def work(s):
    handle = s.seq_object_ref(items)
    return [handle.get_item(i) for i in range(handle.item_count())]

print(scope(work))   # [1, 2, 3, 4]
```

`scope(func)` opens a `Scope`, calls `func` with it and closes it.
A `Scope` can also be used as a context manager or closed with
`close()`. It creates `StackHandle` objects:

- `handle(value)` – a plain handle.
- `object_ref(value)` – kind chosen from the value: a mapping or an
  object with `get_field` is a struct, a non-string sequence or an
  object with `get_item` is a sequence, anything else is plain. A
  `kind` attribute of `"plain"`, `"seq"` or `"struct"` on the value wins.
- `seq_object_ref(value)` / `struct_object_ref(value)` – explicit kinds.

A `StackHandle` offers `is_valid()`, `with_value(func)`, the sequence
methods `get_item(index)` (None when out of range) and `item_count()`,
the struct methods `get_field(name)` (None when missing), `fields()` and
`field_count()`, and `call_method(name, *args)` and `call(*args)`. Each
of these defers to a method of the same name on the value when it has
one. Once the scope has closed, `is_valid()` is false and every access
raises `StackGoneError`.

While a value is being accessed through a handle, code running on that
value can call `reborrow(self, func)`; `func` is called with the value
and the handle's scope, so it can hand out further handles into the
value's members that live as long as that scope. `can_reborrow(obj)`
tells whether that is possible right now. Reborrowing an object that is
not the one currently being accessed raises `ReborrowError`. Scope
validity and the current handle are tracked per thread.

## What this package does not do

It does not contain a template engine or a loader for templates.
`AutoReloader` caches whatever its creator returns; loading files,
parsing and rendering are up to that creator and its caller. There is
no command-line program.

## Tests

```
pip install -e .[test]
pytest
```