"""
Email templates for HereMyLinks.

All templates use inline CSS for email client compatibility, on a light
card with the brand purple (#8B5CF6) accent.

Each template function returns (subject, html_body, text_body).
"""

from __future__ import annotations

import html
import re

# Color constants
BG_PAGE = "#F5F3FF"
BG_CARD = "#FFFFFF"
PURPLE = "#8B5CF6"
TEXT_PRIMARY = "#1F2937"
TEXT_SECONDARY = "#6B7280"
BORDER = "#E5E7EB"

# Accent per notification type
TYPE_COLORS = {
    "info": "#3B82F6",
    "success": "#10B981",
    "warning": "#F59E0B",
    "error": "#EF4444",
}

_TAG_RE = re.compile(r"<[^>]+>")
_BLOCK_END_RE = re.compile(r"</(p|div|h[1-6]|li|tr)>|<br\s*/?>", re.IGNORECASE)
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def _base_layout(content: str, app_name: str = "HereMyLinks") -> str:
    """Wrap content in the base email layout."""
    return f"""\
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{app_name}</title>
</head>
<body style="margin: 0; padding: 0; background-color: {BG_PAGE}; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;">
    <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="background-color: {BG_PAGE};">
        <tr>
            <td align="center" style="padding: 40px 20px;">
                <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="600" style="max-width: 600px; width: 100%;">
                    <tr>
                        <td align="center" style="padding-bottom: 24px;">
                            <span style="font-size: 22px; font-weight: 700; color: {PURPLE};">{app_name}</span>
                        </td>
                    </tr>
                    <tr>
                        <td style="background-color: {BG_CARD}; border: 1px solid {BORDER}; border-radius: 12px; padding: 36px 32px;">
                            {content}
                        </td>
                    </tr>
                    <tr>
                        <td align="center" style="padding-top: 24px;">
                            <p style="color: {TEXT_SECONDARY}; font-size: 12px; line-height: 1.5; margin: 0;">
                                You are receiving this email because you have a {app_name} account.
                            </p>
                        </td>
                    </tr>
                </table>
            </td>
        </tr>
    </table>
</body>
</html>"""


def _button(url: str, label: str, color: str = PURPLE) -> str:
    return f"""\
<table role="presentation" cellspacing="0" cellpadding="0" border="0" style="margin: 24px auto;">
    <tr>
        <td align="center" style="background-color: {color}; border-radius: 8px;">
            <a href="{url}" target="_blank" style="display: inline-block; padding: 12px 28px; color: #FFFFFF; font-size: 15px; font-weight: 600; text-decoration: none; border-radius: 8px;">
                {label}
            </a>
        </td>
    </tr>
</table>"""


def html_to_text(body_html: str) -> str:
    """Plain-text fallback for admin-authored HTML."""
    text = _BLOCK_END_RE.sub("\n", body_html)
    text = html.unescape(_TAG_RE.sub("", text))
    lines = [line.strip() for line in text.splitlines()]
    return _BLANK_LINES_RE.sub("\n\n", "\n".join(lines)).strip()


def welcome_email(name: str | None, username: str, dashboard_url: str) -> tuple[str, str, str]:
    """
    Welcome email sent after registration.

    Returns:
        (subject, html_body, text_body)
    """
    display = html.escape(name or username)
    subject = "Welcome to HereMyLinks"
    content = f"""\
<h1 style="color: {TEXT_PRIMARY}; font-size: 24px; font-weight: 700; margin: 0 0 16px 0;">Welcome, {display}!</h1>
<p style="color: {TEXT_SECONDARY}; font-size: 16px; line-height: 1.6; margin: 0 0 8px 0;">
    Your account is ready. Your page handle is <strong style="color: {TEXT_PRIMARY};">@{html.escape(username)}</strong>.
</p>
<p style="color: {TEXT_SECONDARY}; font-size: 16px; line-height: 1.6; margin: 0;">
    Add your links, pick a look and publish your page when you are ready.
</p>
{_button(dashboard_url, "Open your dashboard")}"""
    text_body = (
        f"Hi {name or username},\n\n"
        f"Your HereMyLinks account is ready. Your page handle is @{username}.\n\n"
        f"Open your dashboard: {dashboard_url}\n\n"
        f"-- The HereMyLinks Team"
    )
    return subject, _base_layout(content), text_body


def notification_email(
    title: str,
    message: str,
    notification_type: str = "info",
    link: str | None = None,
) -> tuple[str, str, str]:
    """Email copy of an in-app notification."""
    color = TYPE_COLORS.get(notification_type, PURPLE)
    safe_message = html.escape(message).replace("\n", "<br>")
    content = f"""\
<div style="border-left: 4px solid {color}; padding-left: 16px; margin-bottom: 16px;">
    <h1 style="color: {TEXT_PRIMARY}; font-size: 20px; font-weight: 700; margin: 0;">{html.escape(title)}</h1>
</div>
<p style="color: {TEXT_SECONDARY}; font-size: 16px; line-height: 1.6; margin: 0;">{safe_message}</p>"""
    if link:
        content += _button(link, "View details", color)
    text_body = f"{title}\n\n{message}\n"
    if link:
        text_body += f"\n{link}\n"
    return title, _base_layout(content), text_body


def password_reset_email(reset_url: str, expires_minutes: int = 60) -> tuple[str, str, str]:
    """
    Password reset link. The link works once.

    Returns:
        (subject, html_body, text_body)
    """
    subject = "Reset your HereMyLinks password"
    expires_text = "1 hour" if expires_minutes == 60 else f"{expires_minutes} minutes"
    content = f"""\
<h1 style="color: {TEXT_PRIMARY}; font-size: 24px; font-weight: 700; margin: 0 0 16px 0;">Reset your password</h1>
<p style="color: {TEXT_SECONDARY}; font-size: 16px; line-height: 1.6; margin: 0 0 24px 0;">
    We received a request to reset the password for your HereMyLinks account.
    Click the button below to choose a new one.
</p>
{_button(reset_url, "Reset Password")}
<p style="color: {TEXT_SECONDARY}; font-size: 13px; line-height: 1.5; margin: 24px 0 0 0;">
    This link expires in <strong style="color: {TEXT_PRIMARY};">{expires_text}</strong> and can only be used once.
    If you didn't request this, your password will remain unchanged.
</p>
<hr style="border: none; border-top: 1px solid {BORDER}; margin: 24px 0;">
<p style="color: {TEXT_SECONDARY}; font-size: 12px; line-height: 1.5; margin: 0;">
    If the button doesn't work, copy and paste this URL:<br>
    <a href="{reset_url}" style="color: {PURPLE}; word-break: break-all;">{reset_url}</a>
</p>"""
    text_body = (
        f"Reset your password\n\n"
        f"We received a request to reset the password for your HereMyLinks account.\n\n"
        f"Use this link to set a new password:\n\n{reset_url}\n\n"
        f"This link expires in {expires_text} and can only be used once.\n\n"
        f"If you didn't request a password reset, ignore this email. "
        f"Your password will remain unchanged.\n\n"
        f"-- The HereMyLinks Team"
    )
    return subject, _base_layout(content), text_body


def password_changed_email(name: str | None) -> tuple[str, str, str]:
    """Confirmation after a password reset."""
    display = name or "there"
    subject = "Your HereMyLinks password has been changed"
    content = f"""\
<h1 style="color: {TEXT_PRIMARY}; font-size: 24px; font-weight: 700; margin: 0 0 16px 0;">Password changed</h1>
<p style="color: {TEXT_SECONDARY}; font-size: 16px; line-height: 1.6; margin: 0 0 8px 0;">Hi {html.escape(display)},</p>
<p style="color: {TEXT_SECONDARY}; font-size: 16px; line-height: 1.6; margin: 0 0 24px 0;">
    The password for your HereMyLinks account was just changed.
</p>
<div style="background-color: {BG_PAGE}; border: 1px solid {BORDER}; border-radius: 8px; padding: 16px; margin: 24px 0;">
    <p style="color: {PURPLE}; font-size: 14px; font-weight: 600; margin: 0 0 8px 0;">Didn't make this change?</p>
    <p style="color: {TEXT_SECONDARY}; font-size: 14px; line-height: 1.5; margin: 0;">
        Your account may be compromised. Reset your password again and contact support.
    </p>
</div>"""
    text_body = (
        f"Hi {display},\n\n"
        f"The password for your HereMyLinks account was just changed.\n\n"
        f"If you didn't make this change, your account may be compromised. "
        f"Reset your password again and contact support.\n\n"
        f"-- The HereMyLinks Team"
    )
    return subject, _base_layout(content), text_body
