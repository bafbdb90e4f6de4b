"""
Log records carry the request correlation id as their own field.
"""

import logging

from erp_services.log import LOG_FORMAT, CorrelationIdFilter, correlation_id


def make_record(msg: str, *args) -> logging.LogRecord:
    return logging.LogRecord("erp.test", logging.INFO, __file__, 1, msg, args, None)


class TestCorrelationIdFilter:
    def test_id_with_percent_signs_is_formatted(self):
        token = correlation_id.set("abc%s%d%(x)s")
        try:
            record = make_record("Order %s paid", "o-1")
            assert CorrelationIdFilter().filter(record)
            line = logging.Formatter(LOG_FORMAT).format(record)
        finally:
            correlation_id.reset(token)

        assert "[abc%s%d%(x)s] Order o-1 paid" in line
        assert record.msg == "Order %s paid"

    def test_outside_a_request_uses_dash(self):
        record = make_record("startup")
        CorrelationIdFilter().filter(record)

        assert record.correlation_id == "-"

    def test_explicit_id_is_kept(self):
        record = make_record("hello")
        record.correlation_id = "given"
        token = correlation_id.set("from-request")
        try:
            CorrelationIdFilter().filter(record)
        finally:
            correlation_id.reset(token)

        assert record.correlation_id == "given"
