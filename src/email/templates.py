"""Email templates for LearnHub training emails.

Every ``render_*`` function returns ``(html, plain_text)``. Values coming from
authors or users (names, titles) are HTML-escaped before interpolation.
"""

from collections.abc import Callable
from datetime import datetime
from html import escape
from typing import Any

from .models import EmailEventKey


# ==============================================================================
# Base Template
# ==============================================================================

BASE_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{title} - LearnHub</title>
</head>
<body style="margin: 0; padding: 0; background-color: #F5F7FA; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif;">
  <table role="presentation" width="100%" cellpadding="0" cellspacing="0" style="background-color: #F5F7FA;">
    <tr>
      <td align="center" style="padding: 40px 20px;">
        <table role="presentation" width="600" cellpadding="0" cellspacing="0" style="background-color: #FFFFFF; border-radius: 12px; max-width: 600px;">
          <tr>
            <td style="padding: 32px 40px 24px; text-align: center; border-bottom: 1px solid #E5E7EB;">
              <h1 style="margin: 0; font-size: 26px; font-weight: 700; color: #1E5AA8;">LearnHub</h1>
            </td>
          </tr>
          <tr>
            <td style="padding: 40px; color: #1A1D23; font-size: 15px; line-height: 1.6;">
              {content}
            </td>
          </tr>
          <tr>
            <td style="padding: 24px 40px; background-color: #F9FAFB; border-top: 1px solid #E5E7EB; border-radius: 0 0 12px 12px;">
              <p style="margin: 0; font-size: 12px; color: #8E959E; text-align: center;">
                &copy; {year} LearnHub. This email was sent automatically, please do not reply.
              </p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>
"""

BUTTON_TEMPLATE = """
<p style="text-align: center; margin: 28px 0;">
  <a href="{url}" style="display: inline-block; background-color: #1E5AA8; color: #FFFFFF; padding: 12px 28px; text-decoration: none; border-radius: 6px; font-weight: 600;">{label}</a>
</p>
"""

NOTICE_TEMPLATE = """
<div style="background-color: #FEF3C7; border-left: 4px solid #F59E0B; padding: 12px 16px; margin: 16px 0;">{text}</div>
"""


def _wrap(title: str, content: str) -> str:
    return BASE_TEMPLATE.format(
        title=escape(title), content=content, year=datetime.now().year
    )


def _button(url: str, label: str) -> str:
    return BUTTON_TEMPLATE.format(url=escape(url, quote=True), label=escape(label))


# ==============================================================================
# Template: New Lesson
# ==============================================================================


def render_new_lesson(
    user_name: str,
    module_title: str,
    lesson_title: str,
    certified: bool,
    lesson_url: str,
) -> tuple[str, str]:
    """New lesson added to a module the learner has progress in."""
    if certified:
        status_line = (
            "Your certificate remains valid, but please review the new material."
        )
    else:
        status_line = "Complete all lessons to obtain your certificate."

    content = f"""
      <p>Hello, <strong>{escape(user_name)}</strong>!</p>
      <p>A new lesson <strong>{escape(lesson_title)}</strong> was added to the
      training <strong>{escape(module_title)}</strong>.</p>
      {NOTICE_TEMPLATE.format(text=escape(status_line))}
      {_button(lesson_url, "Open lesson")}
    """
    text = f"""Hello, {user_name}!

A new lesson "{lesson_title}" was added to the training "{module_title}".

{status_line}

Open the lesson: {lesson_url}
"""
    return _wrap("New lesson", content), text


# ==============================================================================
# Template: Training Assigned
# ==============================================================================


def render_training_assigned(
    user_name: str,
    module_title: str,
    training_url: str,
    due_date: str | None = None,
) -> tuple[str, str]:
    """A training module was sent to the learner."""
    due_html = ""
    due_text = ""
    if due_date:
        due_html = NOTICE_TEMPLATE.format(
            text=f"Please complete it by <strong>{escape(due_date)}</strong>."
        )
        due_text = f"\nPlease complete it by {due_date}.\n"

    content = f"""
      <p>Hello, <strong>{escape(user_name)}</strong>!</p>
      <p>You have been assigned the training <strong>{escape(module_title)}</strong>.</p>
      {due_html}
      {_button(training_url, "Start training")}
    """
    text = f"""Hello, {user_name}!

You have been assigned the training "{module_title}".
{due_text}
Start the training: {training_url}
"""
    return _wrap("Training assigned", content), text


# ==============================================================================
# Template: Certificate Issued
# ==============================================================================


def render_certificate_issued(
    user_name: str,
    module_title: str,
    download_url: str,
    link_ttl_days: int,
) -> tuple[str, str]:
    """Certificate download link (the link expires)."""
    content = f"""
      <p>Hello, <strong>{escape(user_name)}</strong>!</p>
      <p>Congratulations on completing <strong>{escape(module_title)}</strong>.
      Your certificate is ready.</p>
      {_button(download_url, "Download certificate")}
      {NOTICE_TEMPLATE.format(text=f"This link expires in {link_ttl_days} days.")}
    """
    text = f"""Hello, {user_name}!

Congratulations on completing "{module_title}". Your certificate is ready.

Download it here: {download_url}

This link expires in {link_ttl_days} days.
"""
    return _wrap("Certificate issued", content), text


# ==============================================================================
# Registry
# ==============================================================================

Renderer = Callable[..., tuple[str, str]]

RENDERERS: dict[str, Renderer] = {
    EmailEventKey.TRAINING_NEW_LESSON.value: render_new_lesson,
    EmailEventKey.TRAINING_ASSIGNED.value: render_training_assigned,
    EmailEventKey.CERTIFICATE_ISSUED.value: render_certificate_issued,
}


def render_event(event_key: str, payload: dict[str, Any]) -> tuple[str, str]:
    """Render the template registered for an event kind.

    Raises:
        KeyError: If no template is registered for ``event_key``
    """
    return RENDERERS[event_key](**payload)
