# Overview: Pytest coverage for the debounced code validation state machine (no server involved).

from pharmstock.client import code_validation as cv
from pharmstock.client.code_validation import CodeValidationMachine


NEW = {"code": "ABC", "exists": False, "available": True}
EXISTING = {"code": "ABC", "exists": True, "available": True}


class TestDebounce:

    def test_rapid_typing_fires_exactly_one_request(self):
        m = CodeValidationMachine(0.5)
        fired = []

        m.input("A", now=0.0)
        fired.append(m.tick(0.1))
        m.input("AB", now=0.2)
        fired.append(m.tick(0.3))
        m.input("ABC", now=0.4)
        fired.append(m.tick(0.6))
        fired.append(m.tick(1.0))
        fired.append(m.tick(1.5))

        requests = [r for r in fired if r is not None]
        assert [r.code for r in requests] == ["ABC"]
        assert m.state == cv.CHECKING

    def test_nothing_fires_before_window(self):
        m = CodeValidationMachine(0.5)
        m.input("ABC", now=10.0)
        assert m.tick(10.49) is None
        assert m.tick(10.5).code == "ABC"

    def test_default_windows(self):
        assert CodeValidationMachine().debounce == cv.CREATE_DEBOUNCE_SECONDS
        assert CodeValidationMachine(exclude_id=4).debounce == cv.EDIT_DEBOUNCE_SECONDS


class TestStaleResponses:

    def test_late_response_for_older_code_is_discarded(self):
        m = CodeValidationMachine(0.5)
        m.input("A", now=0.0)
        old = m.tick(0.5)

        m.input("ABC", now=0.6)
        new = m.tick(1.2)

        assert m.receive(old.seq, {"code": "A", "exists": True}) is False
        assert m.state == cv.CHECKING
        assert m.receive(new.seq, NEW) is True
        assert m.state == cv.AVAILABLE

    def test_response_after_newer_input_is_discarded(self):
        m = CodeValidationMachine(0.5)
        m.input("ABC", now=0.0)
        req = m.tick(0.5)
        m.input("ABCD", now=0.6)

        assert m.receive(req.seq, EXISTING) is False
        assert m.result is None
        assert m.state == cv.CHECKING

    def test_retyping_same_code_still_needs_fresh_answer(self):
        m = CodeValidationMachine(0.5)
        m.input("ABC", now=0.0)
        first = m.tick(0.5)
        m.input("ABC", now=0.6)
        second = m.tick(1.2)

        assert m.receive(first.seq, NEW) is False
        assert m.receive(second.seq, EXISTING) is True
        assert m.state == cv.HAS_VARIANTS

    def test_input_invalidates_shown_result_immediately(self):
        m = CodeValidationMachine(0.5)
        m.input("ABC", now=0.0)
        req = m.tick(0.5)
        m.receive(req.seq, EXISTING)
        assert m.result is not None

        m.input("ABX", now=1.0)
        assert m.result is None
        assert m.state == cv.CHECKING


class TestStates:

    def test_empty(self):
        m = CodeValidationMachine(0.5)
        m.input("ABC", now=0.0)
        m.input("   ", now=0.1)
        assert m.state == cv.EMPTY
        assert m.tick(5.0) is None

    def test_too_long_is_error_without_request(self):
        m = CodeValidationMachine(0.5)
        m.input("X" * 51, now=0.0)
        assert m.state == cv.ERROR
        assert m.tick(5.0) is None

    def test_failure_then_retry(self):
        m = CodeValidationMachine(0.5)
        m.input("ABC", now=0.0)
        req = m.tick(0.5)

        assert m.fail(req.seq, "connection refused") is True
        assert m.state == cv.ERROR
        assert m.error == "connection refused"

        again = m.retry()
        assert again.code == "ABC"
        assert again.seq > req.seq
        assert m.state == cv.CHECKING
        assert m.receive(again.seq, NEW) is True
        assert m.state == cv.AVAILABLE

    def test_retry_only_from_error(self):
        m = CodeValidationMachine(0.5)
        m.input("ABC", now=0.0)
        assert m.retry() is None

    def test_stale_failure_ignored(self):
        m = CodeValidationMachine(0.5)
        m.input("A", now=0.0)
        old = m.tick(0.5)
        m.input("AB", now=0.6)
        assert m.fail(old.seq, "timeout") is False
        assert m.state == cv.CHECKING


class TestEditMode:

    def test_request_carries_exclude_id_and_price(self):
        m = CodeValidationMachine(0.8, exclude_id=7)
        m.set_price("10.00", now=0.0)
        m.input("TAB001", now=0.0)
        req = m.tick(0.8)

        assert req.is_edit_check
        assert (req.exclude_id, req.price) == (7, "10.00")

    def test_conflict_and_available(self):
        m = CodeValidationMachine(0.8, exclude_id=7)
        m.set_price("10.00", now=0.0)
        m.input("TAB001", now=0.0)
        req = m.tick(1.0)
        m.receive(req.seq, {"code": "TAB001", "exists": True, "conflict": True})
        assert m.state == cv.CONFLICT

        m.set_price("11.00", now=2.0)
        req = m.tick(3.0)
        m.receive(req.seq, {"code": "TAB001", "exists": True, "conflict": False})
        assert m.state == cv.AVAILABLE

    def test_price_change_ignored_outside_edit_mode(self):
        m = CodeValidationMachine(0.5)
        m.input("ABC", now=0.0)
        req = m.tick(0.5)
        m.set_price("10", now=0.6)
        assert m.receive(req.seq, NEW) is True
