"""Deterministic timer / executor stand-ins for scheduler and session tests."""

from concurrent.futures import Future

from birdseye.parser import SourceParser


class FakeTimer:

    def __init__(self, owner, interval, callback):
        self.owner = owner
        self.interval = interval
        self.callback = callback
        self.deadline = None
        self.active = False

    def start(self):
        self.deadline = self.owner.now + self.interval
        self.active = True
        self.owner.timers.append(self)

    def cancel(self):
        self.active = False


class FakeTimers:
    """Timer factory with a manual clock.  ``advance()`` fires due timers in order."""

    def __init__(self):
        self.now = 0.0
        self.timers = []

    def __call__(self, interval, callback):
        return FakeTimer(self, interval, callback)

    def clock(self):
        return self.now

    @property
    def armed(self):
        return [t for t in self.timers if t.active]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [t for t in self.timers if t.active and t.deadline <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda t: t.deadline)
            self.now = timer.deadline
            timer.active = False
            timer.callback()
        self.now = target


class ManualExecutor:
    """Runs submitted work immediately, or holds it until ``run_next()``."""

    def __init__(self, immediate=True):
        self.immediate = immediate
        self.pending = []
        self.submitted = 0

    def submit(self, fn, *args):
        self.submitted += 1
        future = Future()
        if self.immediate:
            self._run(fn, args, future)
        else:
            self.pending.append((fn, args, future))
        return future

    def run_next(self):
        fn, args, future = self.pending.pop(0)
        self._run(fn, args, future)

    @staticmethod
    def _run(fn, args, future):
        try:
            result = fn(*args)
        except Exception as e:
            future.set_exception(e)
        else:
            future.set_result(result)

    def shutdown(self, wait=True):
        self.pending.clear()


class RecordingParser(SourceParser):
    """SourceParser that records every parse (full or incremental)."""

    def __init__(self, language_name="cpp", clock=None, fail=False):
        super().__init__(language_name)
        self.calls = []
        self.clock = clock
        self.fail = fail

    def parse(self, source_text, old_tree=None):
        self.calls.append({
            "full": old_tree is None,
            "text": source_text,
            "at": self.clock() if self.clock else None,
        })
        if self.fail:
            return None
        return super().parse(source_text, old_tree=old_tree)
