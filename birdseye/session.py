"""
Outline session — wires the pipeline together for one outline window.

    host events ──► ParseScheduler ──► collect ──► OutlineTree ──► on_outline
                                                    ▲
    filter / sort / caret ──────────────────────────┘

The session holds the last collected symbol list so that filter and
sort changes re-run the tree pass without touching the parser.
"""

import os
import time
import logging
from concurrent.futures import Executor
from typing import Callable, Iterable, List, Optional

from .cursor import FollowCursor, find_deepest_containing
from .edits import EditDescriptor, OffsetUnit, TextChange
from .outline_tree import OutlineTree
from .parser import parser_for_path
from .scheduler import Debouncer, Dispatch, ParseResult, ParseScheduler, TimerFactory
from .settings import OutlineSettings
from .symbols import SymbolNode

logger = logging.getLogger(__name__)

STATUS_NO_DOCUMENT = "No active document."
STATUS_UNSUPPORTED = "No outline available for this file type."


class OutlineSession:

    def __init__(self,
                 settings: Optional[OutlineSettings] = None,
                 on_outline: Optional[Callable[[List[SymbolNode]], None]] = None,
                 navigator: Optional[Callable[[int, int], None]] = None,
                 reveal: Optional[Callable[[SymbolNode], None]] = None,
                 unit: OffsetUnit = OffsetUnit.CODEPOINT,
                 executor: Optional[Executor] = None,
                 timer_factory: Optional[TimerFactory] = None,
                 dispatch: Optional[Dispatch] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.settings = settings or OutlineSettings()
        self.on_outline = on_outline
        self.tree = OutlineTree()
        self.symbols: List[SymbolNode] = []
        self.sort_enabled = False
        self.filter_text = ""
        self.status = STATUS_NO_DOCUMENT
        self.document: Optional[str] = None
        self._caret_line: Optional[int] = None

        self.scheduler = ParseScheduler(
            on_result=self._on_parse_result,
            parser_factory=lambda path: parser_for_path(path, self.settings.c_extensions),
            edit_debounce_ms=self.settings.edit_debounce_ms,
            unit=unit,
            executor=executor,
            timer_factory=timer_factory,
            dispatch=dispatch,
        )
        self.filter_debouncer = Debouncer(
            self.settings.filter_debounce_ms / 1000.0, self._rebuild,
            timer_factory, dispatch,
        )
        self.follow = FollowCursor(
            self.tree, reveal=reveal, navigate=navigator,
            min_interval_ms=self.settings.follow_cursor_interval_ms, clock=clock,
        )

    # ────────────────────────────────────────────────────────────────
    #  Document lifecycle
    # ────────────────────────────────────────────────────────────────

    def open_document(self, path: Optional[str],
                      text_provider: Optional[Callable[[], Optional[str]]] = None) -> str:
        """Make ``path`` the active document.  Returns the new status line."""
        if not path:
            self.close_document()
            return self.status

        if self.is_active(path):
            return self.status

        self._clear()
        self.document = path
        if not self.settings.is_supported(path):
            logger.info("Unsupported file type: %s", path)
            self.scheduler.close_document()
            self.status = STATUS_UNSUPPORTED
            self._publish()
            return self.status

        # the file name replaces this once the first outline arrives
        self.status = STATUS_NO_DOCUMENT
        self.scheduler.open_document(path, text_provider)
        return self.status

    def is_active(self, path: Optional[str]) -> bool:
        if not path or not self.document:
            return False
        return os.path.normcase(os.path.abspath(path)) == \
            os.path.normcase(os.path.abspath(self.document))

    def close_document(self):
        self.scheduler.close_document()
        self._clear()
        self.document = None
        self.status = STATUS_NO_DOCUMENT
        self._publish()

    def _clear(self):
        self.filter_debouncer.cancel()
        self.symbols = []
        self.tree.clear()
        self._caret_line = None

    def shutdown(self):
        self.filter_debouncer.cancel()
        self.scheduler.shutdown()

    # ────────────────────────────────────────────────────────────────
    #  Host events
    # ────────────────────────────────────────────────────────────────

    def on_text_changed(self, changes: Iterable[TextChange]) -> List[EditDescriptor]:
        if self.document is None or self.status == STATUS_UNSUPPORTED:
            return []
        return self.scheduler.on_text_changed(changes)

    def on_caret_moved(self, line: int) -> Optional[SymbolNode]:
        self._caret_line = line
        return self.follow.on_caret_moved(line)

    def set_filter(self, text: str):
        """Debounced: the tree is rebuilt once typing pauses."""
        self.filter_text = text or ""
        self.filter_debouncer.trigger()

    def set_sort(self, enabled: bool):
        self.sort_enabled = enabled
        self._rebuild()

    def set_follow_cursor(self, enabled: bool) -> Optional[SymbolNode]:
        self.follow.enabled = enabled
        if enabled and self._caret_line is not None:
            return self.follow.sync(self._caret_line)
        return None

    def activate(self, node: SymbolNode) -> bool:
        return self.follow.activate(node)

    def expand_all(self):
        self.tree.expand_all()
        self._publish()

    def collapse_all(self):
        self.tree.collapse_all()
        self._publish()

    def symbol_at(self, line: int) -> Optional[SymbolNode]:
        return find_deepest_containing(self.tree.roots, line)

    # ────────────────────────────────────────────────────────────────
    #  Rebuild
    # ────────────────────────────────────────────────────────────────

    def _on_parse_result(self, result: ParseResult):
        if result.request.document != self.document:
            logger.debug("Ignoring result for inactive document %s", result.request.document)
            return
        if result.ok:
            self.status = os.path.basename(self.document)
        self.symbols = result.symbols
        self._rebuild()

    def _rebuild(self):
        self.tree.rebuild(self.symbols, self.sort_enabled, self.filter_text)
        if self.follow.enabled and self._caret_line is not None:
            self.follow.sync(self._caret_line)
        self._publish()

    def _publish(self):
        if self.on_outline is None:
            return
        try:
            self.on_outline(self.tree.roots)
        except Exception as e:
            logger.error("Outline listener failed: %s", e)
