"""MailBridge - one request/response API over SMTP, IMAP and POP3."""

__version__ = "0.1.0"
