"""
Confirmation email delivery.

notify() is fire-and-forget: the message is handed to a small worker pool
and the caller's prompt never waits for SMTP. Delivery failures are logged
and dropped. A leave request counts as applied whether or not the email
arrives.
"""

import html
import logging
import smtplib
from concurrent.futures import Future, ThreadPoolExecutor
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from leave_ivr.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from leave_ivr.observability import trace_span

logger = logging.getLogger(__name__)

SUBJECT = "Leave Application Confirmation"


class EmailNotifier:
    """Send leave confirmations over SMTP."""

    def __init__(
        self,
        host: str | None,
        port: int = 587,
        user: str | None = None,
        password: str | None = None,
        sender: str | None = None,
        use_tls: bool = True,
        organization_name: str = "H R Services",
        circuit_breaker: CircuitBreaker | None = None,
        max_workers: int = 2,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender or (f"{organization_name} <{user}>" if user else None)
        self.use_tls = use_tls
        self.organization_name = organization_name
        self.timeout = timeout
        self.circuit_breaker = circuit_breaker or CircuitBreaker(name="SmtpCircuitBreaker")
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify")

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.sender)

    def notify(self, address: str, body: str) -> Future | None:
        """
        Queue a confirmation email and return immediately.

        Returns the delivery future (resolving to True/False), or None when
        email is not configured.
        """
        if not self.is_configured:
            logger.warning(f"Email not configured - skipping confirmation to {address}")
            return None
        return self._executor.submit(self.deliver, address, body)

    def deliver(self, address: str, body: str) -> bool:
        """Send one email synchronously. Never raises."""
        try:
            with trace_span("email_deliver", to=address):
                self.circuit_breaker.call(self._send_via_smtp, address, body)
        except CircuitBreakerOpenError:
            logger.warning(f"Mail server circuit open - dropped confirmation to {address}")
            return False
        except Exception as e:
            logger.error(f"Email send to {address} failed: {e}", exc_info=True)
            return False

        logger.info(f"Confirmation email sent to {address}")
        return True

    def build_message(self, address: str, body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = self.sender
        msg["To"] = address
        msg["Subject"] = SUBJECT

        org = html.escape(self.organization_name)
        html_body = (
            '<div style="font-family: Arial, sans-serif; padding:20px; border:1px solid #ddd;">'
            f'<h2 style="color:#0072c6;">{org}</h2>'
            "<p>Hello,</p>"
            f"<p>{html.escape(body)}</p>"
            f"<p>Regards,<br/>{org} Assistant</p>"
            "<hr/>"
            '<small style="color:#555;">This is an automated message.</small>'
            "</div>"
        )
        msg.attach(MIMEText(body, "plain"))
        msg.attach(MIMEText(html_body, "html"))
        return msg

    def _send_via_smtp(self, address: str, body: str) -> None:
        msg = self.build_message(address, body)
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.user and self.password:
                server.login(self.user, self.password)
            server.sendmail(self.sender, [address], msg.as_string())

    def get_state(self) -> dict:
        return {"configured": self.is_configured, **self.circuit_breaker.get_state()}

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
