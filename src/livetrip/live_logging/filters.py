"""Redaction of personal data in log messages.

Log lines about live trips must not carry rider contact details, bearer
credentials or a precise device location.
"""

import logging
import re

_EMAIL = re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+")
_PHONE = re.compile(r"\+?\d{3}[-.\s]?\d{3}[-.\s]?\d{4}\b")
_BEARER = re.compile(r"\b([Bb]earer[ .])[\w\-.~+/]+=*")
# lat/lng pairs keep three decimals (about 110 m)
_COORDINATE_PAIR = re.compile(r"(-?\d{1,3}\.\d{3})\d+([,\s]\s*-?\d{1,3}\.\d{3})\d+")


class RedactionFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            msg = _BEARER.sub(r"\1[TOKEN]", record.msg)
            msg = _EMAIL.sub("[EMAIL]", msg)
            msg = _COORDINATE_PAIR.sub(r"\1\2", msg)
            record.msg = _PHONE.sub("[PHONE]", msg)
        return True
