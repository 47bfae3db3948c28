"""Logging filter that stamps records with the current request id.

Add ``RequestIdFilter`` to a handler so that formatters (including the JSON
formatter configured in settings) can reference ``%(request_id)s``. Records
emitted outside a request get ``"-"``.
"""

from logging import Filter, LogRecord

from .middleware import REQUEST_ID_CTX


class RequestIdFilter(Filter):
    def filter(self, record: LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = REQUEST_ID_CTX.get()
        return True
