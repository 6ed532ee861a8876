"""Frame-based timers organised in groups with independent speed and pause control."""

from __future__ import annotations

import functools
import heapq
import itertools
import logging
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Optional, Union

DEFAULT_FPS = 50
DEFAULT_SLEEP_INTERVAL = 0.003
MAX_FPS = 1000
MAX_MULTIPLE = 5
_NS_PER_SECOND = 1_000_000_000

TimerCallback = Callable[[Any, int], None]
Dispatch = Callable[[Callable[[], None]], None]
Delay = Union[float, int, timedelta]

log = logging.getLogger(__name__)


def _call_now(func: Callable[[], None]) -> None:
    func()


@dataclass(eq=False)
class _Timer:
    timer_id: int
    frame_num: int
    ticker_frames: int
    ctx: Any
    callback: TimerCallback
    cancelled: bool = False


class FrameGroup:
    """A set of timers that share a frame counter, a speed multiple and a pause state."""

    def __init__(self, frame_timer: "FrameTimer", group_id: int) -> None:
        self._ft = frame_timer
        self.group_id = group_id
        self._heap: list[tuple[int, int, _Timer]] = []
        self._timers: dict[int, _Timer] = {}
        self._pre_tick_global = frame_timer.global_frame
        self._pre_global = 0
        self.frame_num = 0
        self.paused = False
        self.multiple = 1

    def _top(self) -> Optional[_Timer]:
        while self._heap:
            timer = self._heap[0][2]
            if timer.cancelled or self._timers.get(timer.timer_id) is not timer:
                heapq.heappop(self._heap)
                continue
            return timer
        return None

    def _to_global(self, frame_num: int) -> int:
        return self._ft.global_frame + (frame_num - self.frame_num) // self.multiple

    def _refresh_min_frame(self) -> None:
        if self.paused:
            return
        top = self._top()
        if top is None:
            return
        global_frame = self._to_global(top.frame_num)
        self._ft._move_group(self.group_id, self._pre_global, global_frame)
        self._pre_global = global_frame

    def _tick(self, global_frame: int, fired: list[_Timer]) -> None:
        self.frame_num += (global_frame - self._pre_tick_global) * self.multiple
        self._pre_tick_global = global_frame
        while (top := self._top()) is not None and top.frame_num <= self.frame_num:
            heapq.heappop(self._heap)
            del self._timers[top.timer_id]
            fired.append(top)
            if top.ticker_frames:
                self._add(top.timer_id, top.ticker_frames, top.ticker_frames, top.ctx, top.callback)
        self._refresh_min_frame()

    def _add(self, timer_id: int, frames: int, ticker_frames: int, ctx: Any, callback: TimerCallback) -> None:
        timer = _Timer(timer_id, self.frame_num + frames, ticker_frames, ctx, callback)
        self._timers[timer_id] = timer
        heapq.heappush(self._heap, (timer.frame_num, next(self._ft._seq), timer))

    def _schedule(self, delay: Delay, callback: TimerCallback, ctx: Any, repeat: bool) -> int:
        with self._ft._lock:
            frames = self._ft._frames_for(delay)
            timer_id = next(self._ft._timer_ids)
            self._add(timer_id, frames, frames if repeat else 0, ctx, callback)
            self._refresh_min_frame()
            return timer_id

    def set_multiple(self, multiple: int) -> None:
        """Set the speed multiple of the group; only 1 to 5 is allowed."""
        if multiple == self.multiple:
            return
        if not 1 <= multiple <= MAX_MULTIPLE:
            raise ValueError("invalid multiplier")
        with self._ft._lock:
            self.multiple = multiple
            self._refresh_min_frame()

    def after_func(self, delay: Delay, callback: TimerCallback, ctx: Any = None) -> int:
        """Run ``callback(ctx, timer_id)`` once after ``delay``; return the timer id."""
        return self._schedule(delay, callback, ctx, repeat=False)

    def new_ticker(self, delay: Delay, callback: TimerCallback, ctx: Any = None) -> int:
        """Run ``callback(ctx, timer_id)`` every ``delay``; return the timer id."""
        return self._schedule(delay, callback, ctx, repeat=True)

    def pause(self) -> None:
        with self._ft._lock:
            self.paused = True
            self._ft._remove_group(self.group_id, self._pre_global)
            self._pre_global = 0

    def resume(self) -> None:
        with self._ft._lock:
            self.paused = False
            self._refresh_min_frame()
            self._pre_tick_global = self._ft.global_frame

    def cancel_timer(self, timer_id: int) -> bool:
        """Cancel a pending timer; return False if the group has no such timer."""
        with self._ft._lock:
            timer = self._timers.pop(timer_id, None)
            if timer is None:
                log.error("cannot find timer,timerID:%d", timer_id)
                return False
            timer.cancelled = True
            self._ft._remove_group(self.group_id, self._pre_global)
            self._pre_global = 0
            self._refresh_min_frame()
            return True

    def close(self) -> None:
        with self._ft._lock:
            self._ft._remove_group(self.group_id, self._pre_global)
            self._ft._groups.pop(self.group_id, None)


class FrameTimer:
    """Drives frame groups from a global frame counter advanced at a fixed rate."""

    def __init__(
        self,
        fps: int = DEFAULT_FPS,
        sleep_interval: float = DEFAULT_SLEEP_INTERVAL,
        dispatch: Optional[Dispatch] = None,
    ) -> None:
        self._lock = threading.Lock()
        self._frame_groups: dict[int, set[int]] = {}
        self._groups: dict[int, FrameGroup] = {}
        self.global_frame = 0
        self._timer_ids = itertools.count(1)
        self._group_ids = itertools.count(1)
        self._seq = itertools.count()
        self._dispatch: Dispatch = dispatch or _call_now
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.fps = DEFAULT_FPS
        self.sleep_interval = DEFAULT_SLEEP_INTERVAL
        self.set_fps(fps)
        self.set_accuracy_interval(sleep_interval)

    @property
    def one_frame_ns(self) -> int:
        return _NS_PER_SECOND // self.fps

    def set_fps(self, fps: int) -> None:
        """Set the frame rate; 0 means the default and the rate is capped at 1000."""
        if fps < 0:
            raise ValueError("fps must not be negative")
        self.fps = min(fps, MAX_FPS) or DEFAULT_FPS

    def set_accuracy_interval(self, interval: float) -> None:
        """Set how long the driving loop sleeps between checks, in seconds."""
        if interval < 0:
            raise ValueError("interval must not be negative")
        self.sleep_interval = interval or DEFAULT_SLEEP_INTERVAL

    def new_group(self) -> FrameGroup:
        with self._lock:
            group = FrameGroup(self, next(self._group_ids))
            self._groups[group.group_id] = group
            return group

    def _frames_for(self, delay: Delay) -> int:
        seconds = delay.total_seconds() if isinstance(delay, timedelta) else float(delay)
        if seconds < 0:
            raise ValueError("delay must not be negative")
        return round(seconds * _NS_PER_SECOND) // self.one_frame_ns

    def _remove_group(self, group_id: int, frame_num: int) -> None:
        groups = self._frame_groups.get(frame_num)
        if groups is not None:
            groups.discard(group_id)

    def _move_group(self, group_id: int, old_frame: int, new_frame: int) -> None:
        self._remove_group(group_id, old_frame)
        self._frame_groups.setdefault(new_frame, set()).add(group_id)

    def frame_tick(self) -> None:
        """Advance the global frame by one and dispatch every timer that came due."""
        fired: list[_Timer] = []
        with self._lock:
            previous = self.global_frame
            self.global_frame += 1
            for frame in range(previous, self.global_frame + 1):
                for group_id in sorted(self._frame_groups.pop(frame, ())):
                    group = self._groups.get(group_id)
                    if group is not None:
                        group._tick(self.global_frame, fired)
        for timer in fired:
            self._dispatch(functools.partial(timer.callback, timer.ctx, timer.timer_id))

    def _run(self) -> None:
        start = time.monotonic_ns()
        done_frames = 0
        while not self._stop_event.wait(self.sleep_interval):
            due_frames = (time.monotonic_ns() - start) // self.one_frame_ns
            for _ in range(done_frames, due_frames):
                self.frame_tick()
            done_frames = max(done_frames, due_frames)

    def start(self) -> None:
        """Start advancing frames on a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="frame-timer", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def __enter__(self) -> "FrameTimer":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()