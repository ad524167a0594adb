# Overview: Headless add-drug controller wiring the code machine, the variant form and the API client.

from __future__ import annotations

import time
from typing import Callable, Optional

from . import code_validation as cv
from .api import ApiError, PharmStockClient, ValidationError
from .code_validation import CodeValidationMachine, CodeCheckRequest
from .variant_form import (
    CODE_FIELD,
    CodeCleared,
    FieldEdited,
    FormState,
    NoVariants,
    Reset,
    VariantsFound,
    initial_state,
    presubmit_errors,
    transition,
)


class AddDrugFlow:
    """
    What the add-drug screen does, without the screen.

    Lookups run synchronously inside tick()/retry(); the machine still
    checks sequence numbers, so a slower transport that answers out of
    order is handled the same way.
    """

    def __init__(
        self,
        client: PharmStockClient,
        *,
        debounce: float = cv.CREATE_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.clock = clock
        self.machine = CodeValidationMachine(debounce)
        self.form: FormState = initial_state()

    @property
    def state(self) -> str:
        return self.machine.state

    def type_code(self, code: str, now: Optional[float] = None) -> None:
        now = self.clock() if now is None else now
        self.machine.input(code, now)
        if self.machine.code:
            self.form = transition(self.form, FieldEdited(CODE_FIELD, self.machine.code))
        else:
            self.form = transition(self.form, CodeCleared())

    def edit_field(self, name: str, value) -> None:
        self.form = transition(self.form, FieldEdited(name, value))

    def _lookup(self, request: Optional[CodeCheckRequest]) -> None:
        if request is None:
            return
        try:
            result = self.client.check_code(request.code)
        except ApiError as e:
            self.machine.fail(request.seq, str(e))
            return
        self.deliver(request, result)

    def deliver(self, request: CodeCheckRequest, result: dict) -> bool:
        """Hand a lookup answer to the machine; only a current answer touches the form."""
        if not self.machine.receive(request.seq, result):
            return False
        if self.machine.state == cv.HAS_VARIANTS:
            self.form = transition(self.form, VariantsFound.from_result(result))
        elif self.machine.state == cv.AVAILABLE:
            self.form = transition(self.form, NoVariants(self.machine.code))
        return True

    def tick(self, now: Optional[float] = None) -> None:
        now = self.clock() if now is None else now
        self._lookup(self.machine.tick(now))

    def retry(self) -> None:
        self._lookup(self.machine.retry())

    def submit(self) -> dict:
        """
        Create the drug. Raises ValidationError before any request if the
        code is still being checked or the form fails its own checks.
        """
        errors = presubmit_errors(self.form)
        if self.machine.state == cv.CHECKING:
            errors.setdefault(CODE_FIELD, "is still being checked")
        if errors:
            raise ValidationError("Form has errors", status=None, fields=errors)

        response = self.client.create_drug(self.form.payload())
        self.form = transition(self.form, Reset())
        self.machine.input("", self.clock())
        return response
