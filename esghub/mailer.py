"""SMTP delivery for form campaigns."""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr

from markupsafe import escape

logger = logging.getLogger(__name__)


def render_campaign_email(subject, message, form_url, contact_name=None):
    """HTML body with greeting, message and a call-to-action linking to the form."""
    greeting = f"Olá {escape(contact_name)}," if contact_name else "Olá,"
    subject = escape(subject)
    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{subject}</title>
  <style>
    body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; background-color: #f5f5f5; margin: 0; padding: 0; }}
    .container {{ max-width: 600px; margin: 0 auto; background: white; border-radius: 8px; overflow: hidden; }}
    .header {{ background: #059669; padding: 30px 20px; text-align: center; }}
    .header h1 {{ color: white; margin: 0; font-size: 24px; }}
    .content {{ padding: 30px 20px; }}
    .message {{ margin-bottom: 30px; white-space: pre-wrap; }}
    .cta-button {{ display: inline-block; background: #10B981; color: white; padding: 14px 30px; text-decoration: none; border-radius: 6px; font-weight: bold; }}
    .footer {{ background: #f9f9f9; padding: 20px; text-align: center; font-size: 12px; color: #666; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header"><h1>{subject}</h1></div>
    <div class="content">
      <p>{greeting}</p>
      <div class="message">{escape(message or "")}</div>
      <p style="text-align: center; margin-top: 30px;">
        <a href="{escape(form_url)}" class="cta-button">Responder Formulário</a>
      </p>
    </div>
    <div class="footer">
      <p>Este email foi enviado através do sistema de formulários.</p>
      <p>Se você não reconhece este email, pode ignorá-lo com segurança.</p>
    </div>
  </div>
</body>
</html>"""


class CampaignMailer:
    """One SMTP session for a whole campaign; use as a context manager."""

    def __init__(self, host, port, user, password, use_ssl=True, sender_name="Formulários", timeout=20):
        if not user or not password:
            raise RuntimeError(
                "SMTP credentials not configured. Set SMTP_USER and SMTP_PASSWORD."
            )
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_ssl = use_ssl
        self.sender_name = sender_name
        self.timeout = timeout
        self._smtp = None

    @classmethod
    def from_config(cls, config):
        return cls(
            host=config["SMTP_HOST"],
            port=config["SMTP_PORT"],
            user=config["SMTP_USER"],
            password=config["SMTP_PASSWORD"],
            use_ssl=config.get("SMTP_USE_SSL", True),
            sender_name=config.get("MAIL_SENDER_NAME", "Formulários"),
        )

    def __enter__(self):
        if self.use_ssl:
            self._smtp = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            self._smtp = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        try:
            if not self.use_ssl:
                self._smtp.starttls()
            self._smtp.login(self.user, self.password)
        except Exception:
            # __exit__ does not run when __enter__ raises
            self._smtp.close()
            self._smtp = None
            raise
        return self

    def __exit__(self, exc_type, exc, tb):
        try:
            self._smtp.quit()
        except smtplib.SMTPException as e:
            logger.warning(f"SMTP quit failed: {e}")
        self._smtp = None
        return False

    def send(self, to_email, subject, html):
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = formataddr((self.sender_name, self.user))
        message["To"] = to_email
        message.attach(MIMEText(html, "html", "utf-8"))
        self._smtp.sendmail(self.user, [to_email], message.as_string())
