# orimod

Reusable building blocks for long-running server processes. Each module is
independent; import only the ones you need.

## Installation

```
pip install orimod
```

To run the test suite, install the test extra and run pytest:

```
pip install "orimod[test]"
pytest
```

## Modules

- `orimod.frametimer`: frame-based timers. A `FrameTimer` advances a global
  frame counter at a fixed frame rate (50 fps by default, at most 1000).
  `new_group()` returns a `FrameGroup` holding one-shot timers (`after_func`)
  and repeating tickers (`new_ticker`). A group can be paused, resumed,
  closed, have single timers cancelled with `cancel_timer`, and be sped up
  with `set_multiple` (1 to 5 times; other values raise `ValueError`).
  Callbacks are called as `callback(ctx, timer_id)` through the `dispatch`
  function given to the timer, or directly when none is given.
- `orimod.httpclient`: `HttpClientModule` wraps a pooled `requests` session.
  Set it up with `configure(proxy_url, max_pool, idle_conn_timeout, timeout)`
  (certificates are not verified) or hand it your own session with
  `init_http_client`. `request` returns an `HttpResponse` with the status
  code, status line, headers and body; calling it before setup raises
  `RuntimeError`. `sync_request` runs the request on a background thread and
  returns a `PendingResponse` whose `get(timeout_ms)` waits for the result and
  raises `TimeoutError` when the time runs out.
- `orimod.redis_module`: `RedisModule`, built from a `RedisConfig` or an
  existing client, with string, JSON, hash, scan, key and expiry helpers.
  Failures and missing data raise `RedisError`.
- `orimod.redis_collections`: `RedisCollections` extends `RedisModule` with
  list and sorted-set commands. `make_list_json` joins raw reply items into a
  JSON array, and the `*_json` range methods decode scored replies into
  `ZSetDataWithScore` objects.
- `orimod.web`: access-log formatting (`format_access_log`,
  `color_for_status`), client address lookup from proxy headers
  (`get_ip_with_proxy_headers`, `get_ip_with_validated_proxy_headers`,
  `is_valid_ip`) and `SafeContext`, which lets a request handler wait until
  another worker calls `done()`.
- `orimod.tcp_module`: `TcpModule` keeps track of connected `Client` objects
  configured by a `TcpConfig`, turns their traffic into `TcpPack` events
  (typed by `PackType`) passed to a `notify` callback, and routes those events
  to a message processor with `handle_event`. It also sends messages, closes
  clients and reports their addresses and count.

## Example

```python
from orimod.frametimer import FrameTimer

fired = []
timer = FrameTimer(fps=50, sleep_interval=0.003, dispatch=lambda fn: fn())
group = timer.new_group()
group.after_func(0.1, lambda ctx, timer_id: fired.append(timer_id), None)

for _ in range(5):
    timer.frame_tick()

print(fired)  # [1]
```

Call `timer.start()` to advance frames from a background thread in real time
and `timer.stop()` to end it; a `FrameTimer` can also be used as a context
manager.

## What the package does not do

- It has no SQL database, document store or message-queue support; Redis is
  the only data store it talks to.
- It runs no network servers. `orimod.tcp_module` does not listen on a port or
  frame bytes on a socket: you pass it connection objects and a processor that
  reads, writes and decodes messages. `orimod.web` offers helpers for an HTTP
  application but no server or routing of its own.
- It provides no command-line program.