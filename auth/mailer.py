"""
auth/mailer.py -- Out-of-band delivery of verification codes.

The account flows only depend on the Mailer protocol. Real SMTP/API delivery
is wired in by the deployment; LoggingMailer is the default and records that a
message would have been sent. The code itself is only written to the log when
reveal_codes is set (DEBUG mode), so local signup/reset can be completed
without an email provider.
"""

from __future__ import annotations

import logging
from typing import Protocol

from auth.models import Purpose

logger = logging.getLogger("slatehub.auth.mailer")


class Mailer(Protocol):
    def send_verification_code(self, email: str, code: str, purpose: Purpose) -> None: ...


class LoggingMailer:
    def __init__(self, reveal_codes: bool = False) -> None:
        self.reveal_codes = reveal_codes

    def send_verification_code(self, email: str, code: str, purpose: Purpose) -> None:
        logger.info("Sending %s code to %s", purpose, email)
        if self.reveal_codes:
            logger.debug("%s code for %s: %s", purpose, email, code)
