import json
import logging

import pytest

from smart_proxy.main.logging import JSON_LOGS_ENABLED, ContextJSONFormatter, get_logger
from smart_proxy.main.request_context import set_request_context


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="smart_proxy.test",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="IdP token endpoint returned HTTP %s",
        args=(400,),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_request_context():
    set_request_context(correlation_id="abc123", path="/AadProxy/token")

    log = json.loads(ContextJSONFormatter().format(_record()))

    assert log["message"] == "IdP token endpoint returned HTTP 400"
    assert log["level"] == "warning"
    assert log["correlation_id"] == "abc123"
    assert log["path"] == "/AadProxy/token"


def test_json_formatter_includes_extra_fields():
    log = json.loads(
        ContextJSONFormatter().format(_record(status_code=400, grant_type="authorization_code"))
    )

    assert log["status_code"] == 400
    assert log["grant_type"] == "authorization_code"
    assert "args" not in log


@pytest.mark.skipif(not JSON_LOGS_ENABLED, reason="JSON_LOGS is off")
def test_get_logger_has_one_json_console_handler():
    logger = get_logger("smart_proxy.test")

    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, ContextJSONFormatter)


def test_third_party_access_logs_are_quiet():
    assert logging.getLogger("aiohttp.access").level == logging.WARNING
