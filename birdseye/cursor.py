"""
Cursor Locator — caret line → deepest enclosing symbol.

FollowCursor keeps the outline selection on the symbol under the caret.
Two guards stop it from feeding on its own side effects:

  • while a sync is being applied, caret events are ignored
  • while navigating to a symbol (click), caret events are ignored

Caret events closer together than the configured interval are coalesced;
the latest line is kept and applied by ``flush()`` or the next event.
"""

import time
import logging
from typing import Callable, List, Optional

from .outline_tree import OutlineTree
from .symbols import SymbolNode

logger = logging.getLogger(__name__)


def find_deepest_containing(forest: List[SymbolNode], line: int) -> Optional[SymbolNode]:
    """Deepest symbol whose range contains ``line`` (1-indexed), or None."""
    best = None
    for node in forest:
        if node.contains_line(line):
            best = node
            deeper = find_deepest_containing(node.children, line)
            if deeper is not None:
                best = deeper
    return best


class FollowCursor:

    def __init__(self, tree: OutlineTree,
                 reveal: Optional[Callable[[SymbolNode], None]] = None,
                 navigate: Optional[Callable[[int, int], None]] = None,
                 min_interval_ms: int = 100,
                 clock: Callable[[], float] = time.monotonic):
        self.tree = tree
        self.reveal = reveal
        self.navigate = navigate
        self.enabled = True
        self.min_interval = min_interval_ms / 1000.0
        self._clock = clock
        self._last_sync: Optional[float] = None
        self._pending_line: Optional[int] = None
        self._suppress = False
        self._navigating = False

    def on_caret_moved(self, line: int) -> Optional[SymbolNode]:
        if not self.enabled or self._suppress or self._navigating:
            return None

        now = self._clock()
        if self._last_sync is not None and now - self._last_sync < self.min_interval:
            self._pending_line = line
            return None
        return self.sync(line)

    def flush(self) -> Optional[SymbolNode]:
        """Apply a caret line that was coalesced by the rate limit."""
        if self._pending_line is None:
            return None
        return self.sync(self._pending_line)

    def sync(self, line: int) -> Optional[SymbolNode]:
        """Select and reveal the deepest symbol containing ``line``."""
        self._pending_line = None
        self._last_sync = self._clock()

        best = find_deepest_containing(self.tree.roots, line)
        if best is None:
            return None

        self._suppress = True
        try:
            self.tree.select(best)
            if self.reveal is not None:
                self.reveal(best)
        except Exception as e:
            logger.warning("Follow-cursor sync to line %d failed: %s", line, e)
        finally:
            self._suppress = False
        return best

    def activate(self, node: SymbolNode) -> bool:
        """Click-to-navigate: hand the symbol's position to the navigator."""
        if node is None or self.navigate is None:
            return False

        self._navigating = True
        try:
            self.navigate(*node.position)
            return True
        except Exception as e:
            logger.error("Navigation to %s failed: %s", node.display_name, e)
            return False
        finally:
            self._navigating = False
