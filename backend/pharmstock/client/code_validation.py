# Overview: Debounced, stale-safe state machine for validating a drug code while it is typed.

"""
Code validation state machine

    EMPTY -> CHECKING -> AVAILABLE | HAS_VARIANTS | ERROR
                     -> CONFLICT (edit mode only)

The machine does no I/O and reads no clock. The caller feeds it:

- input(code, now)      every keystroke
- tick(now)             periodically; returns a CodeCheckRequest once the
                        debounce window has passed without further input
- receive(seq, result)  the server's answer for that request
- fail(seq, message)    a network/server failure for that request

Each fired request carries a sequence number. Only the answer to the most
recently fired request, for the code currently entered, is ever applied;
anything else is discarded. Any new input invalidates the shown result
immediately.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..validation import MAX_CODE_LENGTH

EMPTY = "EMPTY"
CHECKING = "CHECKING"
AVAILABLE = "AVAILABLE"
HAS_VARIANTS = "HAS_VARIANTS"
CONFLICT = "CONFLICT"
ERROR = "ERROR"

CREATE_DEBOUNCE_SECONDS = 0.5
EDIT_DEBOUNCE_SECONDS = 0.8


@dataclass(frozen=True)
class CodeCheckRequest:
    seq: int
    code: str
    exclude_id: Optional[int] = None
    price: Optional[str] = None

    @property
    def is_edit_check(self) -> bool:
        return self.exclude_id is not None and self.price is not None


class CodeValidationMachine:
    """
    One instance per form.

    For the edit form pass exclude_id (the row being edited) and keep the
    price current with set_price(); answers then resolve to AVAILABLE or
    CONFLICT instead of HAS_VARIANTS.
    """

    def __init__(self, debounce: Optional[float] = None, *, exclude_id: Optional[int] = None):
        self.exclude_id = exclude_id
        if debounce is None:
            debounce = EDIT_DEBOUNCE_SECONDS if exclude_id is not None else CREATE_DEBOUNCE_SECONDS
        self.debounce = debounce

        self.state = EMPTY
        self.code = ""
        self.price: Optional[str] = None
        self.result: Optional[dict] = None
        self.error: Optional[str] = None

        self._due_at: Optional[float] = None
        self._seq = 0
        self._in_flight: Optional[CodeCheckRequest] = None

    @property
    def edit_mode(self) -> bool:
        return self.exclude_id is not None

    @property
    def pending(self) -> bool:
        """A lookup is scheduled but not yet fired."""
        return self._due_at is not None

    @property
    def in_flight(self) -> Optional[CodeCheckRequest]:
        return self._in_flight

    def _invalidate(self) -> None:
        self.result = None
        self.error = None
        self._in_flight = None
        self._due_at = None

    def _schedule(self, now: float) -> None:
        self._invalidate()
        if not self.code:
            self.state = EMPTY
            return
        if len(self.code) > MAX_CODE_LENGTH:
            self.state = ERROR
            self.error = f"Code must be at most {MAX_CODE_LENGTH} characters"
            return
        self.state = CHECKING
        self._due_at = now + self.debounce

    def input(self, code: str, now: float) -> None:
        """Code text changed. The previous result stops being current right away."""
        self.code = (code or "").strip()
        self._schedule(now)

    def set_price(self, price, now: float) -> None:
        """Edit mode: the conflict answer depends on the price, so re-check."""
        self.price = None if price in (None, "") else str(price)
        if self.edit_mode:
            self._schedule(now)

    def _fire(self) -> CodeCheckRequest:
        self._seq += 1
        self._due_at = None
        price = self.price if self.edit_mode else None
        request = CodeCheckRequest(
            seq=self._seq,
            code=self.code,
            exclude_id=self.exclude_id if price is not None else None,
            price=price,
        )
        self._in_flight = request
        return request

    def tick(self, now: float) -> Optional[CodeCheckRequest]:
        """Fire the lookup once the debounce window has elapsed."""
        if self._due_at is None or now < self._due_at:
            return None
        return self._fire()

    def _is_current(self, seq: int) -> bool:
        req = self._in_flight
        return req is not None and req.seq == seq and req.code == self.code

    def receive(self, seq: int, result: dict) -> bool:
        """Apply a lookup answer. Returns False (and changes nothing) if it is stale."""
        if not self._is_current(seq):
            return False

        request = self._in_flight
        self._in_flight = None
        self.result = result
        self.error = None

        if request.is_edit_check and "conflict" in result:
            self.state = CONFLICT if result["conflict"] else AVAILABLE
        elif result.get("exists"):
            self.state = HAS_VARIANTS
        else:
            self.state = AVAILABLE
        return True

    def fail(self, seq: int, message: str) -> bool:
        """A lookup failed. Non-fatal: the rest of the form stays editable."""
        if not self._is_current(seq):
            return False
        self._in_flight = None
        self.result = None
        self.error = message or "Could not check code"
        self.state = ERROR
        return True

    def retry(self) -> Optional[CodeCheckRequest]:
        """Manual retry from ERROR; fires immediately."""
        if self.state != ERROR or not self.code or len(self.code) > MAX_CODE_LENGTH:
            return None
        self.error = None
        self.state = CHECKING
        return self._fire()
