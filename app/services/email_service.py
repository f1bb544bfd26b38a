"""Password reset delivery over SMTP."""

import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SMTPSettings:
    host: str = ""
    port: int = 587
    username: str = ""
    password: str = ""
    from_email: str = ""
    from_name: str = "Sentinela"

    @property
    def configured(self) -> bool:
        return bool(self.host and self.username and self.from_email)


class EmailService:
    """
    Sends reset links by e-mail.

    Without SMTP settings the service runs in development mode: the link is
    written to the DEBUG log and reported as delivered.
    """

    def __init__(self, base_url: str, smtp: Optional[SMTPSettings] = None):
        self.base_url = base_url.rstrip("/")
        self.smtp = smtp or SMTPSettings()
        if not self.smtp.configured:
            logger.warning("SMTP not configured; password reset links are only written to the DEBUG log.")

    @property
    def enabled(self) -> bool:
        return self.smtp.configured

    def build_reset_url(self, reset_token: str) -> str:
        return f"{self.base_url}/reset-password?token={reset_token}"

    def send_password_reset(self, to_email: str, reset_token: str, expires_at: datetime) -> bool:
        """
        Deliver the single-use reset link.

        Args:
            to_email: Recipient address
            reset_token: Plaintext token, only ever placed in the link
            expires_at: When the link stops working

        Returns:
            True if the message left (or was logged in development), False otherwise
        """
        reset_url = self.build_reset_url(reset_token)

        if not self.enabled:
            logger.debug("[EMAIL] Password reset URL for %s: %s", to_email, reset_url)
            return True

        message = self._compose_reset_message(to_email, reset_url, expires_at.strftime("%d/%m/%Y %H:%M UTC"))
        return self._deliver(to_email, message)

    def _compose_reset_message(self, to_email: str, reset_url: str, expires_label: str) -> MIMEMultipart:
        text_body = (
            "Sentinela - Redefinição de senha\n\n"
            "Para criar uma nova senha, acesse o link abaixo:\n"
            f"{reset_url}\n\n"
            f"Este link expira em {expires_label} e só pode ser usado uma vez.\n"
            "Se você não solicitou a redefinição, ignore este email.\n"
        )
        html_body = f"""
        <html>
            <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
                <h2 style="color: #7f1d1d;">Sentinela - Redefinição de senha</h2>
                <p style="color: #475569; line-height: 1.6;">
                    Recebemos uma solicitação para redefinir a senha da sua conta.
                </p>
                <p style="text-align: center; margin: 30px 0;">
                    <a href="{reset_url}"
                       style="background-color: #dc2626; color: white; padding: 15px 30px;
                              text-decoration: none; border-radius: 5px; font-weight: bold;">
                        Redefinir senha
                    </a>
                </p>
                <p style="color: #64748b; font-size: 14px;">
                    Este link expira em {expires_label} e só pode ser usado uma vez.
                    Se você não solicitou a redefinição, ignore este email.
                </p>
            </body>
        </html>
        """

        message = MIMEMultipart("alternative")
        message["Subject"] = "Redefinição de senha - Sentinela"
        message["From"] = f"{self.smtp.from_name} <{self.smtp.from_email}>"
        message["To"] = to_email
        message.attach(MIMEText(text_body, "plain", "utf-8"))
        message.attach(MIMEText(html_body, "html", "utf-8"))
        return message

    def _deliver(self, to_email: str, message: MIMEMultipart) -> bool:
        try:
            with smtplib.SMTP(self.smtp.host, self.smtp.port) as server:
                server.starttls()
                server.login(self.smtp.username, self.smtp.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError):
            logger.exception("Failed to send password reset email to %s", to_email)
            return False
        return True
