"""Watchlist row selection with verification.

Simulated clicks on the watchlist can silently fail to register, so every
selection is verified against the row's observable state. The fallback ladder
is an explicit state machine so each rung and its attempt count can be checked
on its own:

    UNRESOLVED -> ATTEMPTING(1..3) -> SCROLL_CLICK -> KEY_FALLBACK
                \\-> FAILED            (any rung) -> VERIFIED
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from pacing import Pacer
from resolver import scroll_step, SCROLL_SETTLE_MS
from surface import RowHandle, RowState, TargetSurface, probe

CLICK_ATTEMPTS = 3
CLICK_SETTLE_MS = 120
REFOCUS_SETTLE_MS = 60
FOCUS_SETTLE_MS = 50
KEY_SETTLE_MS = 80

TRUE_FLAG_ATTRIBUTES = ("aria-selected", "aria-checked", "data-active", "data-selected")
STATE_PATTERN = re.compile(r"active|selected|current", re.IGNORECASE)
CLASS_PATTERN = re.compile(r"isActive|active|selected|current", re.IGNORECASE)


class SelectionState(Enum):
    UNRESOLVED = "unresolved"
    ATTEMPTING = "attempting"
    SCROLL_CLICK = "scroll_click"
    KEY_FALLBACK = "key_fallback"
    VERIFIED = "verified"
    FAILED = "failed"


@dataclass
class SelectionOutcome:
    identifier: str
    state: SelectionState = SelectionState.UNRESOLVED
    handle: Optional[RowHandle] = None
    trail: List[Tuple[SelectionState, int]] = field(default_factory=list)

    @property
    def verified(self) -> bool:
        return self.state is SelectionState.VERIFIED

    @property
    def click_attempts(self) -> int:
        return sum(1 for state, _ in self.trail if state is SelectionState.ATTEMPTING)

    def move(self, state: SelectionState, attempt: int = 0) -> None:
        self.state = state
        self.trail.append((state, attempt))


def is_row_selected(state: Optional[RowState]) -> bool:
    """Combine every selection signal a row can expose."""
    if state is None:
        return False
    attributes = state.attributes or {}
    if any((attributes.get(name) or "").lower() == "true" for name in TRUE_FLAG_ATTRIBUTES):
        return True
    if STATE_PATTERN.search(attributes.get("data-state") or ""):
        return True
    if CLASS_PATTERN.search(state.class_name or ""):
        return True
    return bool(state.ancestor_selected)


class SelectionController:
    def __init__(self, surface: TargetSurface, pacer: Pacer):
        self.surface = surface
        self.pacer = pacer

    def is_selected(self, handle: Optional[RowHandle]) -> bool:
        if handle is None:
            return False
        return is_row_selected(probe("row state", self.surface.row_state, handle))

    def find_row(self, identifier: str) -> Optional[RowHandle]:
        return probe("row lookup", self.surface.find_row, identifier)

    def scroll_find_row(self, identifier: str) -> Optional[RowHandle]:
        """Scroll the watchlist from the top until ``identifier`` is rendered."""
        step = scroll_step(self.surface)
        offset = 0.0
        while offset <= (probe("scroll height", self.surface.collection_scroll_height, default=0.0) or 0.0):
            probe("scroll watchlist", self.surface.scroll_collection_to, offset)
            self.pacer.sleep(SCROLL_SETTLE_MS, "row search scroll")
            handle = self.find_row(identifier)
            if handle is not None:
                return handle
            offset += step
        return None

    def resolve_handle(self, identifier: str, hint: Optional[RowHandle] = None) -> Optional[RowHandle]:
        return hint or self.find_row(identifier) or self.scroll_find_row(identifier)

    def scroll_to_ordinal(self, identifier: str, ordinal: int) -> Optional[RowHandle]:
        row_height = probe("row height", self.surface.collection_row_height) or 0.0
        if row_height > 0:
            probe("scroll watchlist", self.surface.scroll_collection_to, max(ordinal, 0) * row_height)
            self.pacer.sleep(SCROLL_SETTLE_MS, "ordinal scroll")
            handle = self.find_row(identifier)
            if handle is not None:
                return handle
        return self.scroll_find_row(identifier)

    def select(
        self,
        identifier: str,
        hint: Optional[RowHandle] = None,
        ordinal: Optional[int] = None,
    ) -> SelectionOutcome:
        outcome = SelectionOutcome(identifier=identifier)
        outcome.move(SelectionState.UNRESOLVED)

        handle = self.resolve_handle(identifier, hint)
        outcome.handle = handle
        if handle is None:
            probe("focus watchlist", self.surface.focus_collection)
            self.pacer.sleep(FOCUS_SETTLE_MS, "watchlist refocus")
            print(f"  • {identifier}: row not found in the watchlist")
            outcome.move(SelectionState.FAILED)
            return outcome

        if self.is_selected(handle):
            outcome.move(SelectionState.VERIFIED)
            return outcome

        probe("scroll row into view", self.surface.scroll_row_into_view, handle)
        for attempt in range(1, CLICK_ATTEMPTS + 1):
            outcome.move(SelectionState.ATTEMPTING, attempt)
            probe("click row", self.surface.click_row, handle)
            self.pacer.sleep(CLICK_SETTLE_MS, "row click settle")
            probe("focus watchlist", self.surface.focus_collection)
            self.pacer.sleep(REFOCUS_SETTLE_MS, "watchlist refocus")
            if self.is_selected(handle):
                print(f"  • {identifier}: row selected (attempt {attempt})")
                outcome.move(SelectionState.VERIFIED, attempt)
                return outcome
            print(f"  • {identifier}: row not selected (attempt {attempt})")

        if ordinal is not None:
            outcome.move(SelectionState.SCROLL_CLICK)
            target = self.scroll_to_ordinal(identifier, ordinal)
            if target is not None and probe("click row", self.surface.click_row, target, default=False):
                self.pacer.sleep(CLICK_SETTLE_MS, "row click settle")
                if self.is_selected(target):
                    print(f"  • {identifier}: row selected (scroll + click)")
                    outcome.move(SelectionState.VERIFIED)
                    return outcome

        outcome.move(SelectionState.KEY_FALLBACK)
        probe("focus watchlist", self.surface.focus_collection)
        probe("press Enter", self.surface.press_collection_key, "Enter")
        self.pacer.sleep(KEY_SETTLE_MS, "key settle")
        if self.is_selected(handle):
            outcome.move(SelectionState.VERIFIED)
        else:
            state = probe("row state", self.surface.row_state, handle)
            print(f"  • {identifier}: selection unverified, row state {state}")
            outcome.move(SelectionState.FAILED)
        return outcome

    def ensure_selected(
        self,
        identifier: str,
        hint: Optional[RowHandle] = None,
        ordinal: Optional[int] = None,
    ) -> bool:
        return self.select(identifier, hint, ordinal).verified
