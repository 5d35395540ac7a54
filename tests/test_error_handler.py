# tests/test_error_handler.py
import logging

import pytest

from utils.error_handler import (
    ErrorHandler,
    DialogError,
    NodeNotFoundError,
    ButtonNotFoundError,
    AcknowledgeFailedError,
    RenderFailedError,
    ConstructionError,
    RouteAlreadyRegisteredError,
    default_error_sink,
)

# --- Тест-кейсы ---

@pytest.mark.parametrize("error,code", [
    (NodeNotFoundError("A"), "NODE_NOT_FOUND"),
    (ButtonNotFoundError("A", "Click"), "BUTTON_NOT_FOUND"),
    (AcknowledgeFailedError("cb-1"), "ACKNOWLEDGE_FAILED"),
    (RenderFailedError("A"), "RENDER_FAILED"),
    (ConstructionError("bad graph"), "CONSTRUCTION_ERROR"),
    (RouteAlreadyRegisteredError("abc"), "ROUTE_ALREADY_REGISTERED"),
])
def test_dialog_errors_carry_codes(error: DialogError, code: str):
    assert isinstance(error, DialogError)
    assert error.error_code == code
    assert str(error) == error.message

def test_log_error_counts_by_type_and_returns_id():
    handler = ErrorHandler()
    error_id = handler.log_error(NodeNotFoundError("A"), context={"callback_id": "cb-1"}, user_id=100)
    handler.log_error(ButtonNotFoundError("A", "Click"))
    handler.log_error(AcknowledgeFailedError("cb-1"))
    handler.log_error(RenderFailedError("B"))
    handler.log_error(RuntimeError("boom"))

    assert error_id.startswith("ERR_")
    stats = handler.get_error_stats()
    assert stats["total_errors"] == 5
    assert stats["node_not_found_errors"] == 1
    assert stats["button_not_found_errors"] == 1
    assert stats["acknowledge_errors"] == 1
    assert stats["render_errors"] == 1
    assert stats["unknown_errors"] == 1
    assert stats["last_error_at"] is not None

def test_handler_is_callable_sink_and_resets(caplog: pytest.LogCaptureFixture):
    handler = ErrorHandler()
    with caplog.at_level(logging.ERROR, logger="utils.error_handler"):
        handler(RenderFailedError("B"))
    assert "RENDER_FAILED" in caplog.text
    assert handler.get_error_stats()["render_errors"] == 1

    handler.reset_error_stats()
    assert handler.get_error_stats()["total_errors"] == 0

def test_log_error_uses_requested_severity(caplog: pytest.LogCaptureFixture):
    handler = ErrorHandler()
    with caplog.at_level(logging.WARNING, logger="utils.error_handler"):
        handler.log_error(AcknowledgeFailedError("cb-9"), severity="WARNING")
    assert caplog.records[-1].levelno == logging.WARNING

def test_default_sink_logs_error(caplog: pytest.LogCaptureFixture):
    with caplog.at_level(logging.ERROR, logger="utils.error_handler"):
        default_error_sink(NodeNotFoundError("Z"))
    assert "[DIALOG] failed to find node with id Z" in caplog.text

def test_log_error_traceback_only_for_raised_errors(caplog: pytest.LogCaptureFixture):
    handler = ErrorHandler()
    with caplog.at_level(logging.ERROR, logger="utils.error_handler"):
        handler.log_error(NodeNotFoundError("Z"))
        assert caplog.records[-1].traceback is None

        try:
            raise RenderFailedError("B")
        except RenderFailedError as e:
            raised = e
        handler.log_error(raised)
    assert "Traceback" in caplog.records[-1].traceback
    assert "RenderFailedError" in caplog.records[-1].traceback
