"""Links and HTML bodies for authentication emails."""

from html import escape
from urllib.parse import quote

MAGIC_LINK_SUBJECT = "Confirm your email to login"
VERIFY_EMAIL_SUBJECT = "Verify Your Email"


def build_magic_link(base_url: str, token: str, email: str, callback_url: str = "") -> str:
    return (
        f"{base_url.rstrip('/')}/api/auth/callback/email"
        f"?token={quote(token, safe='')}"
        f"&email={quote(email, safe='')}"
        f"&callbackUrl={quote(callback_url, safe='')}"
    )


def build_verification_link(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/api/auth/callback/email-verify?token={quote(token, safe='')}"


def render_magic_link_email(name: str, link: str) -> str:
    return (
        f"Hi {escape(name)}! Please confirm your email to login! "
        f'Click here: <a href="{escape(link)}">CLICK TO CONFIRM</a>'
    )


def render_verification_email(name: str, link: str, ttl_minutes: int) -> str:
    safe_link = escape(link)
    return f"""<html>
    <body>
        <h2>Verify Your Email</h2>
        <p>Hello {escape(name)},</p>
        <p>Please click the link below to verify your email address:</p>
        <p><a href="{safe_link}">Verify Email</a></p>
        <p>Or copy and paste this URL into your browser:</p>
        <p>{safe_link}</p>
        <p>This link will expire in {ttl_minutes} minutes.</p>
    </body>
</html>"""
