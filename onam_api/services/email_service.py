"""
Email service for order confirmations and SMTP diagnostics.
Uses Flask-Mail; all sends are best-effort and never raise into request handling.
"""
import logging
import smtplib
import socket
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

from flask import current_app
from flask_mail import Connection, Mail, Message
from markupsafe import escape

from onam_api.blueprints.metrics import confirmation_emails_total
from onam_api.utils.formatters import money_inr, date_in

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'mail_transport'

# Errors after which the SMTP handle is rebuilt on the next attempt
TRANSPORT_ERRORS = (
    smtplib.SMTPAuthenticationError,
    smtplib.SMTPConnectError,
    smtplib.SMTPServerDisconnected,
    socket.timeout,
    ConnectionError,
)

_executor = None


@dataclass
class EmailResult:
    success: bool
    message: str
    message_id: Optional[str] = None
    code: Optional[str] = None

    def to_dict(self):
        data = {'success': self.success, 'message': self.message}
        if self.message_id:
            data['messageId'] = self.message_id
        if self.code:
            data['code'] = self.code
        return data


class TimeoutConnection(Connection):
    """Flask-Mail connection whose connect, TLS, login and send all share one socket timeout."""

    def __init__(self, mail, timeout):
        super().__init__(mail)
        self.timeout = timeout

    def configure_host(self):
        if self.mail.use_ssl:
            host = smtplib.SMTP_SSL(self.mail.server, self.mail.port, timeout=self.timeout)
        else:
            host = smtplib.SMTP(self.mail.server, self.mail.port, timeout=self.timeout)

        host.set_debuglevel(int(self.mail.debug))
        try:
            if self.mail.use_tls:
                host.starttls()
            if self.mail.username and self.mail.password:
                host.login(self.mail.username, self.mail.password)
        except Exception:
            host.close()
            raise
        return host


class TimeoutMail(Mail):
    """Mail handle that opens TimeoutConnection instead of Flask-Mail's unbounded one."""

    def __init__(self, app, timeout):
        super().__init__(app)
        self.timeout = timeout

    def connect(self):
        return TimeoutConnection(self.state, self.timeout)


class MailTransport:
    """
    Owns the Flask-Mail handle for one app.

    The handle is created on first use and dropped after authentication,
    connection or timeout failures so the next send starts clean.
    """

    def __init__(self, app):
        self.app = app
        self._mail = None

    @property
    def mail(self) -> TimeoutMail:
        if self._mail is None:
            self._mail = TimeoutMail(self.app, self.app.config.get('MAIL_SEND_TIMEOUT', 30))
            logger.info(f"[EMAIL] Transport created for {self.app.config.get('MAIL_SERVER')}:{self.app.config.get('MAIL_PORT')}")
        return self._mail

    @property
    def is_initialized(self) -> bool:
        return self._mail is not None

    def reset(self):
        if self._mail is not None:
            logger.warning("[EMAIL] Resetting transport")
        self._mail = None

    def send(self, message: Message):
        """Send ``message`` over a fresh SMTP connection bounded by MAIL_SEND_TIMEOUT."""
        try:
            with self.mail.connect() as connection:
                connection.send(message)
        except TRANSPORT_ERRORS:
            self.reset()
            raise

    def verify(self):
        """Open and close an SMTP connection to check configuration."""
        try:
            with self.mail.connect() as connection:
                if connection.host is not None:
                    connection.host.noop()
        except TRANSPORT_ERRORS:
            self.reset()
            raise


def init_mail(app):
    """Attach a mail transport to ``app``."""
    app.extensions[EXTENSION_KEY] = MailTransport(app)


def get_transport() -> MailTransport:
    return current_app.extensions[EXTENSION_KEY]


def _mail_configured() -> bool:
    """Sending is possible when suppressed (tests) or when SMTP credentials exist."""
    cfg = current_app.config
    if cfg.get('MAIL_SUPPRESS_SEND', False):
        return True
    return bool(cfg.get('MAIL_SERVER') and cfg.get('MAIL_USERNAME') and cfg.get('MAIL_PASSWORD'))


def email_configuration_summary():
    """Non-secret view of the SMTP settings for diagnostics."""
    cfg = current_app.config
    return {
        'configured': _mail_configured(),
        'host': cfg.get('MAIL_SERVER'),
        'port': cfg.get('MAIL_PORT'),
        'useTls': bool(cfg.get('MAIL_USE_TLS')),
        'useSsl': bool(cfg.get('MAIL_USE_SSL')),
        'user': cfg.get('MAIL_USERNAME') or None,
        'hasPassword': bool(cfg.get('MAIL_PASSWORD')),
        'passwordLength': len(cfg.get('MAIL_PASSWORD') or ''),
        'sender': cfg.get('MAIL_DEFAULT_SENDER'),
        'suppressSend': bool(cfg.get('MAIL_SUPPRESS_SEND')),
        'transportInitialized': get_transport().is_initialized,
    }


def _payment_display(payment):
    if payment.get('method') == 'upi':
        return 'UPI Payment'
    return 'Cash Payment (Pay at Venue)'


def build_order_confirmation(order: dict, whatsapp_link: Optional[str] = None) -> Message:
    """
    Build the confirmation email for an order in its ``Order.to_dict()`` form.

    All user supplied values are HTML-escaped in the HTML body.
    """
    student = order.get('studentInfo') or {}
    payment = order.get('payment') or {}
    items = order.get('orderItems') or []
    order_number = order.get('orderNumber') or ''
    registered_on = date_in(order.get('orderDate'))

    if payment.get('method') == 'upi':
        payment_text = (
            f"UPI ID: {payment.get('upiId') or 'N/A'}\n"
            f"Transaction ID: {payment.get('transactionId') or 'N/A'}"
        )
        payment_html = (
            f"UPI ID: {escape(payment.get('upiId') or 'N/A')}<br>"
            f"Transaction ID: {escape(payment.get('transactionId') or 'N/A')}"
        )
    else:
        payment_text = 'Payment will be collected at the event venue on the day of celebration.'
        payment_html = payment_text

    items_text = "\n".join(
        f"  {item.get('name')} x {item.get('quantity')} @ {money_inr(item.get('price'))} = {money_inr(item.get('total'))}"
        for item in items
    )
    items_rows = "".join(
        f"""
            <tr>
                <td>{escape(item.get('name') or '')}</td>
                <td align="center">{escape(item.get('quantity'))}</td>
                <td align="right">{money_inr(item.get('price'))}</td>
                <td align="right">{money_inr(item.get('total'))}</td>
            </tr>"""
        for item in items
    )

    hostel_text = f"Hostel:            {student.get('hostel')}\n" if student.get('hostel') else ''
    hostel_html = (
        f"<tr><td>Hostel</td><td>{escape(student.get('hostel'))}</td></tr>" if student.get('hostel') else ''
    )

    whatsapp_text = f"\nJoin our WhatsApp group for updates:\n{whatsapp_link}\n" if whatsapp_link else ''
    whatsapp_html = (
        f"""
                <div class="whatsapp">
                    <h3>Join Our WhatsApp Group!</h3>
                    <p>Stay updated with event schedules and announcements.</p>
                    <a href="{escape(whatsapp_link)}" target="_blank" rel="noopener noreferrer">Join WhatsApp Group</a>
                </div>"""
        if whatsapp_link else ''
    )

    html_body = f"""
        <!DOCTYPE html>
        <html lang="en">
        <head>
            <meta charset="UTF-8">
            <style>
                body {{ font-family: Arial, sans-serif; color: #111827; }}
                .container {{ max-width: 600px; margin: auto; padding: 20px; }}
                .header {{ background: #059669; color: #fff; padding: 20px; text-align: center; }}
                .order-number {{ font-size: 22px; font-weight: bold; letter-spacing: 1px; }}
                table {{ width: 100%; border-collapse: collapse; }}
                td, th {{ padding: 8px; border-bottom: 1px solid #e5e7eb; }}
                .whatsapp {{ background: #ecfdf5; padding: 16px; margin-top: 20px; text-align: center; }}
            </style>
        </head>
        <body>
            <div class="container">
                <div class="header">
                    <h1>Onam Festival Registration Confirmed!</h1>
                    <p>Thank you for registering for Onam celebrations at MIT ADT University</p>
                </div>
                <p>Order number: <span class="order-number">{escape(order_number)}</span></p>

                <h3>Student Information</h3>
                <table>
                    <tr><td>Full Name</td><td>{escape(student.get('name') or '')}</td></tr>
                    <tr><td>Student ID</td><td>{escape(student.get('studentId') or '')}</td></tr>
                    <tr><td>Email</td><td>{escape(student.get('email') or '')}</td></tr>
                    <tr><td>Phone</td><td>{escape(student.get('phone') or '')}</td></tr>
                    <tr><td>Course</td><td>{escape(student.get('course') or '')}</td></tr>
                    <tr><td>Department</td><td>{escape(student.get('department') or '')}</td></tr>
                    <tr><td>Year</td><td>{escape(student.get('year') or '')}</td></tr>
                    {hostel_html}
                    <tr><td>Registration Date</td><td>{registered_on}</td></tr>
                </table>

                <h3>Order Details</h3>
                <table>
                    <tr><th align="left">Item</th><th>Qty</th><th align="right">Price</th><th align="right">Total</th></tr>
                    {items_rows}
                    <tr><td colspan="3" align="right"><strong>Total Amount:</strong></td>
                        <td align="right"><strong>{money_inr(order.get('totalAmount'))}</strong></td></tr>
                </table>

                <h3>Payment Information</h3>
                <p>Payment Method: {_payment_display(payment)}</p>
                <p>{payment_html}</p>
                {whatsapp_html}

                <p style="margin-top: 24px; font-weight: bold;">We look forward to celebrating Onam with you!</p>
                <p style="font-size: 12px; color: #6b7280;">
                    This is an automated confirmation email. Please do not reply to this email.
                </p>
            </div>
        </body>
        </html>
        """

    text_body = f"""
ONAM FESTIVAL REGISTRATION CONFIRMED

Thank you for registering for Onam celebrations at MIT ADT University!

ORDER NUMBER: {order_number}

STUDENT INFORMATION
Full Name:        {student.get('name')}
Student ID:       {student.get('studentId')}
Email Address:    {student.get('email')}
Phone Number:     {student.get('phone')}
Course/Program:   {student.get('course')}
Department:       {student.get('department')}
Year:             {student.get('year')}
{hostel_text}Registration Date: {registered_on}

ORDER DETAILS
{items_text}

TOTAL AMOUNT: {money_inr(order.get('totalAmount'))}

PAYMENT INFORMATION
Payment Method: {_payment_display(payment)}
{payment_text}
{whatsapp_text}
We look forward to celebrating Onam with you!
"""

    return Message(
        subject=f"Onam Festival Registration Confirmed - Order {order_number}",
        recipients=[student.get('email')],
        body=text_body,
        html=html_body,
        sender=current_app.config.get('MAIL_DEFAULT_SENDER'),
    )


def _is_timeout(error: BaseException) -> bool:
    # smtplib re-raises socket timeouts while reading replies as SMTPServerDisconnected
    return isinstance(error, socket.timeout) or isinstance(error.__context__, socket.timeout)


def send_order_confirmation_email(order: dict, whatsapp_link: Optional[str] = None) -> EmailResult:
    """
    Single best-effort attempt to send the order confirmation.

    Returns an EmailResult; never raises.
    """
    order_number = order.get('orderNumber')
    recipient = (order.get('studentInfo') or {}).get('email')

    if not _mail_configured():
        logger.warning(f"[MAIL DISABLED] Confirmation for order {order_number} skipped")
        confirmation_emails_total.labels(outcome='skipped').inc()
        return EmailResult(
            False,
            'Email service not configured. Check EMAIL_USER and EMAIL_PASSWORD environment variables.',
            code='EMAIL_NOT_CONFIGURED',
        )

    if not recipient:
        confirmation_emails_total.labels(outcome='skipped').inc()
        return EmailResult(False, 'Order has no student email address', code='NO_RECIPIENT')

    try:
        message = build_order_confirmation(order, whatsapp_link)
        logger.info(f"[EMAIL] Sending confirmation for order {order_number} to {recipient}")
        get_transport().send(message)
    except smtplib.SMTPAuthenticationError as e:
        logger.error(f"[EMAIL] ✗ SMTP authentication failed for order {order_number}: {e}")
        confirmation_emails_total.labels(outcome='failed').inc()
        return EmailResult(False, 'SMTP authentication failed', code='EAUTH')
    except (smtplib.SMTPException, OSError) as e:
        confirmation_emails_total.labels(outcome='failed').inc()
        if _is_timeout(e):
            logger.error(f"[EMAIL] ✗ Timed out sending confirmation for order {order_number}: {e}")
            return EmailResult(False, 'Email send timeout', code='ETIMEDOUT')
        logger.error(f"[EMAIL] ✗ Error sending confirmation for order {order_number}: {e}")
        return EmailResult(False, str(e) or 'Unknown error', code='ECONNECTION')
    except Exception as e:
        logger.exception(f"[EMAIL] ✗ Unexpected error sending confirmation for order {order_number}: {e}")
        confirmation_emails_total.labels(outcome='failed').inc()
        return EmailResult(False, str(e) or 'Unknown error')

    message_id = getattr(message, 'msgId', None)
    logger.info(f"[EMAIL] ✓ Confirmation for order {order_number} sent (Message ID: {message_id})")
    confirmation_emails_total.labels(outcome='sent').inc()
    return EmailResult(True, 'Email sent successfully', message_id=message_id)


def _get_executor():
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix='onam-mail')
    return _executor


def _send_in_app_context(app, order, whatsapp_link):
    with app.app_context():
        return send_order_confirmation_email(order, whatsapp_link)


def dispatch_order_confirmation(app, order: dict, whatsapp_link: Optional[str] = None):
    """
    Send the confirmation off the request path when MAIL_ASYNC is set.

    Returns the Future in async mode, the EmailResult otherwise.
    """
    if app.config.get('MAIL_ASYNC'):
        return _get_executor().submit(_send_in_app_context, app, order, whatsapp_link)
    return send_order_confirmation_email(order, whatsapp_link)


def verify_email_connection() -> EmailResult:
    """Check SMTP configuration by opening a connection."""
    if not _mail_configured():
        return EmailResult(
            False,
            'Email service not configured. Check EMAIL_USER and EMAIL_PASSWORD environment variables.',
            code='EMAIL_NOT_CONFIGURED',
        )
    try:
        get_transport().verify()
    except (smtplib.SMTPException, OSError) as e:
        logger.warning(f"[EMAIL] Connection verification failed: {e}")
        return EmailResult(
            False,
            f"Email service configured. Verification failed but sending may still work: {e}",
            code='VERIFY_FAILED',
        )
    return EmailResult(True, 'Email service is configured correctly and connection verified')


def send_test_email(to_email: str) -> EmailResult:
    """Send a short diagnostic email to ``to_email``."""
    if not _mail_configured():
        return EmailResult(False, 'Email service not configured', code='EMAIL_NOT_CONFIGURED')
    message = Message(
        subject='Onam Festival - Test Email',
        recipients=[to_email],
        body='This is a test email from the Onam Festival registration service.',
        sender=current_app.config.get('MAIL_DEFAULT_SENDER'),
    )
    try:
        get_transport().send(message)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"[EMAIL] ✗ Test email to {to_email} failed: {e}")
        return EmailResult(False, str(e) or 'Unknown error', code='SEND_FAILED')
    logger.info(f"[EMAIL] ✓ Test email sent to {to_email}")
    return EmailResult(True, 'Test email sent successfully', message_id=getattr(message, 'msgId', None))
