"""
Parse Scheduler — debounced, off-thread, incremental reparsing.

States:
    IDLE        → nothing pending
    DEBOUNCING  → edits queued, quiescence timer armed
    REPARSING   → one parse in flight on the worker

Edits are translated and applied to the live tree as they arrive.  After
``edit_debounce_ms`` of quiescence the current text is snapshotted and
parsed on a worker, reusing the edited tree.  Edits that arrive while a
parse is in flight are queued and replayed onto the new tree before it
is installed, then the timer is re-armed.

Results are tagged with the document generation they were requested
for; a result for a document that has since been switched or closed is
discarded.

All public methods and completions run on the interaction thread.  The
``dispatch`` callable is how worker and timer callbacks get there; the
default runs them inline under the scheduler lock.
"""

import os
import logging
import threading
from enum import Enum
from dataclasses import dataclass, field
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, Iterable, List, Optional

from tree_sitter import Tree

from .collector import collect
from .edits import EditDescriptor, EditTranslator, OffsetUnit, TextChange
from .parser import SourceParser, read_source
from .symbols import SymbolNode, count_symbols

logger = logging.getLogger(__name__)

TimerFactory = Callable[[float, Callable[[], None]], Any]
Dispatch = Callable[[Callable[[], None]], None]


def _thread_timer(interval: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(interval, callback)
    timer.daemon = True
    return timer


def _inline_dispatch(fn: Callable[[], None]) -> None:
    fn()


class SchedulerState(str, Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    REPARSING = "reparsing"


# ═══════════════════════════════════════════════════════════════════════
#  Debouncer
# ═══════════════════════════════════════════════════════════════════════

class Debouncer:
    """Calls ``callback`` once, ``interval`` seconds after the last trigger.

    Each trigger invalidates the previous timer by token, so a timer that
    fires after being cancelled does nothing.
    """

    def __init__(self, interval: float, callback: Callable[[], None],
                 timer_factory: Optional[TimerFactory] = None,
                 dispatch: Optional[Dispatch] = None):
        self.interval = interval
        self.callback = callback
        self._timer_factory = timer_factory or _thread_timer
        self._dispatch = dispatch or _inline_dispatch
        self._lock = threading.Lock()
        self._timer = None
        self._token = 0

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def trigger(self):
        with self._lock:
            self._cancel_locked()
            self._token += 1
            token = self._token
            self._timer = self._timer_factory(self.interval, lambda: self._fired(token))
            self._timer.start()

    def cancel(self):
        with self._lock:
            self._cancel_locked()
            self._token += 1

    def flush(self) -> bool:
        """Fire now if a trigger is pending.  Returns True if it fired."""
        with self._lock:
            if self._timer is None:
                return False
            self._cancel_locked()
            self._token += 1
        self.callback()
        return True

    def _cancel_locked(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fired(self, token: int):
        with self._lock:
            if token != self._token:
                return
            self._timer = None
        self._dispatch(self.callback)


# ═══════════════════════════════════════════════════════════════════════
#  Parse state and requests
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class PendingEdit:
    seq: int
    edit: EditDescriptor
    applied: bool = False


@dataclass
class ParseState:
    """Per-document parse bookkeeping."""
    document: str
    generation: int
    tree: Optional[Tree] = None
    source_text: Optional[str] = None
    pending_edits: List[PendingEdit] = field(default_factory=list)
    last_seq: int = 0
    invalidated: bool = False       # set while a parse is in flight


@dataclass(frozen=True)
class ParseRequest:
    request_id: int
    generation: int
    document: str
    source_text: str
    old_tree: Optional[Tree]
    edit_cutoff: int

    @property
    def full(self) -> bool:
        return self.old_tree is None


@dataclass(frozen=True)
class ParseResult:
    request: ParseRequest
    tree: Optional[Tree]
    symbols: List[SymbolNode]

    @property
    def ok(self) -> bool:
        return self.tree is not None


# ═══════════════════════════════════════════════════════════════════════
#  Scheduler
# ═══════════════════════════════════════════════════════════════════════

class ParseScheduler:

    def __init__(self,
                 on_result: Callable[[ParseResult], None],
                 parser_factory: Callable[[str], SourceParser],
                 edit_debounce_ms: int = 5000,
                 unit: OffsetUnit = OffsetUnit.CODEPOINT,
                 executor: Optional[Executor] = None,
                 timer_factory: Optional[TimerFactory] = None,
                 dispatch: Optional[Dispatch] = None):
        self.on_result = on_result
        self.parser_factory = parser_factory
        self.translator = EditTranslator(unit)

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="birdseye-parse")
        self._dispatch = dispatch or _inline_dispatch

        self._lock = threading.RLock()
        self._idle = threading.Event()
        self._idle.set()
        self._state = SchedulerState.IDLE
        self._generation = 0
        self._request_id = 0
        self._parse_state: Optional[ParseState] = None
        self._parser: Optional[SourceParser] = None
        self._text_provider: Optional[Callable[[], Optional[str]]] = None
        self._debouncer = Debouncer(edit_debounce_ms / 1000.0, self._on_quiescent,
                                    timer_factory, self._dispatch)

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def parse_state(self) -> Optional[ParseState]:
        return self._parse_state

    @property
    def document(self) -> Optional[str]:
        return self._parse_state.document if self._parse_state else None

    def _set_state(self, state: SchedulerState, notify: bool = True):
        if state != self._state:
            logger.debug("Scheduler %s → %s", self._state.value, state.value)
        self._state = state
        if state == SchedulerState.IDLE:
            if notify:
                self._idle.set()
        else:
            self._idle.clear()

    # ────────────────────────────────────────────────────────────────
    #  Document lifecycle
    # ────────────────────────────────────────────────────────────────

    def open_document(self, path: str,
                      text_provider: Optional[Callable[[], Optional[str]]] = None):
        """Switch to ``path`` and request a full parse immediately.

        Pending edits and any in-flight result for the previous document
        are dropped.
        """
        with self._lock:
            self._reset()
            self._generation += 1
            self._parse_state = ParseState(document=path, generation=self._generation)
            self._text_provider = text_provider
            try:
                self._parser = self.parser_factory(path)
            except Exception as e:
                logger.error("No parser for %s: %s", path, e)
                self._parser = None
                return
            logger.info("Opened %s (generation %d)", os.path.basename(path), self._generation)

            source_text = read_source(path, fallback=text_provider)
            if source_text is None:
                logger.warning("No source text for %s; outline left empty", path)
                self._report_empty()
                return
            self._submit(source_text, old_tree=None)

    def close_document(self):
        with self._lock:
            self._reset()
            self._generation += 1
            self._parse_state = None

    def _reset(self):
        self._debouncer.cancel()
        self._parser = None
        self._text_provider = None
        self._set_state(SchedulerState.IDLE)

    def invalidate(self):
        """Drop the cached tree; the next reparse is a full parse.

        While a parse is in flight its tree is marked unusable instead, and
        edits queued behind it are kept for the full parse that follows.
        """
        with self._lock:
            ps = self._parse_state
            if ps is None:
                return
            ps.tree = None
            if self._state == SchedulerState.REPARSING:
                ps.invalidated = True
                return
            ps.pending_edits.clear()
            self._set_state(SchedulerState.DEBOUNCING)
            self._debouncer.trigger()

    # ────────────────────────────────────────────────────────────────
    #  Edits
    # ────────────────────────────────────────────────────────────────

    def on_text_changed(self, changes: Iterable[TextChange]) -> List[EditDescriptor]:
        """Record host changes and (re)arm the quiescence timer."""
        with self._lock:
            ps = self._parse_state
            if ps is None:
                return []

            edits = self.translator.translate_all(changes)
            for edit in edits:
                ps.last_seq += 1
                pending = PendingEdit(ps.last_seq, edit)
                if self._state != SchedulerState.REPARSING and ps.tree is not None:
                    edit.apply_to(ps.tree)
                    pending.applied = True
                ps.pending_edits.append(pending)

            if edits and self._state != SchedulerState.REPARSING:
                self._set_state(SchedulerState.DEBOUNCING)
                self._debouncer.trigger()
            return edits

    def flush(self) -> bool:
        """Start the pending reparse now instead of waiting for quiescence."""
        with self._lock:
            if self._state != SchedulerState.DEBOUNCING:
                return False
        return self._debouncer.flush()

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        return self._idle.wait(timeout)

    def _on_quiescent(self):
        with self._lock:
            ps = self._parse_state
            if ps is None or self._state != SchedulerState.DEBOUNCING:
                return
            source_text = self._snapshot_text(ps)
            if source_text is None:
                logger.warning("No source text for %s; reparse skipped", ps.document)
                self._set_state(SchedulerState.IDLE)
                return
            self._submit(source_text, old_tree=ps.tree)

    def _snapshot_text(self, ps: ParseState) -> Optional[str]:
        if self._text_provider is not None:
            try:
                text = self._text_provider()
            except Exception as e:
                logger.warning("Live buffer unavailable for %s: %s", ps.document, e)
                text = None
            if text is not None:
                return text
        return read_source(ps.document)

    # ────────────────────────────────────────────────────────────────
    #  Background parse
    # ────────────────────────────────────────────────────────────────

    def _submit(self, source_text: str, old_tree: Optional[Tree]):
        ps = self._parse_state
        parser = self._parser
        if parser is None:
            self._set_state(SchedulerState.IDLE)
            return

        self._request_id += 1
        request = ParseRequest(
            request_id=self._request_id,
            generation=ps.generation,
            document=ps.document,
            source_text=source_text,
            old_tree=old_tree,
            edit_cutoff=ps.last_seq,
        )
        logger.debug("Reparse #%d of %s (%s, %d bytes)", request.request_id,
                     os.path.basename(request.document),
                     "full" if request.full else "incremental",
                     len(source_text.encode("utf-8")))
        self._set_state(SchedulerState.REPARSING)

        future = self._executor.submit(self._run, parser, request)
        future.add_done_callback(lambda f: self._dispatch(lambda: self._complete(request, f)))

    @staticmethod
    def _run(parser: SourceParser, request: ParseRequest) -> ParseResult:
        """Parse and collect on the worker thread."""
        tree = parser.parse(request.source_text, old_tree=request.old_tree)
        if tree is None:
            return ParseResult(request, None, [])
        symbols = collect(tree.root_node, request.source_text)
        return ParseResult(request, tree, symbols)

    def _complete(self, request: ParseRequest, future: Future):
        with self._lock:
            ps = self._parse_state
            if ps is None or ps.generation != request.generation:
                logger.debug("Discarding stale result #%d for %s",
                             request.request_id, request.document)
                return

            try:
                result = future.result()
            except Exception as e:
                logger.error("Reparse #%d of %s failed: %s",
                             request.request_id, request.document, e)
                result = ParseResult(request, None, [])

            remaining = [p for p in ps.pending_edits if p.seq > request.edit_cutoff]

            if ps.invalidated:
                # the next parse is a full one over the live text
                logger.debug("Dropping result #%d for %s: invalidated during reparse",
                             request.request_id, request.document)
                ps.invalidated = False
                ps.tree = None
                ps.pending_edits = remaining
                self._set_state(SchedulerState.DEBOUNCING)
                self._debouncer.trigger()
                return

            if result.ok:
                for pending in remaining:
                    pending.edit.apply_to(result.tree)
                    pending.applied = True
                ps.tree = result.tree
                ps.source_text = request.source_text
            elif ps.tree is not None:
                for pending in remaining:
                    if not pending.applied:
                        pending.edit.apply_to(ps.tree)
                        pending.applied = True
            ps.pending_edits = remaining

            if remaining:
                self._set_state(SchedulerState.DEBOUNCING)
                self._debouncer.trigger()
            else:
                # waiters are released once the result has been delivered
                self._set_state(SchedulerState.IDLE, notify=False)

            if not result.ok:
                logger.warning("No outline for %s: parser produced no tree", request.document)
            elif request.full:
                logger.info("Parsed %s: %d symbols, %d top-level",
                            os.path.basename(request.document),
                            count_symbols(result.symbols), len(result.symbols))
            try:
                self.on_result(result)
            finally:
                if self._state == SchedulerState.IDLE:
                    self._idle.set()

    def _report_empty(self):
        ps = self._parse_state
        request = ParseRequest(
            request_id=self._request_id,
            generation=ps.generation,
            document=ps.document,
            source_text="",
            old_tree=None,
            edit_cutoff=ps.last_seq,
        )
        self.on_result(ParseResult(request, None, []))

    def shutdown(self):
        with self._lock:
            self._reset()
            self._generation += 1
            self._parse_state = None
        if self._owns_executor:
            self._executor.shutdown(wait=False)
