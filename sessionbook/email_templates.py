"""
MJML Email Templates
Booking emails for clients and providers, compiled to HTML by email_service
"""

from html import escape
from typing import Optional

from .config import FRONTEND_URL

# Calm indigo/slate scheme
THEME = {
    "primary": "#4f46e5",
    "primary_dark": "#4338ca",
    "primary_light": "#e0e7ff",
    "background": "#f8fafc",
    "card_bg": "#ffffff",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
    "success": "#16a34a",
    "danger": "#ef4444",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
    is_provider_email: bool = False,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button
              href="{cta_url}"
              background-color="{THEME['primary']}"
              color="#ffffff"
              font-weight="600"
              border-radius="8px"
              padding="18px 40px"
              font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    footer_notice = ""
    if is_provider_email:
        footer_notice = """
        <mj-text align="center" font-size="12px" color="#94a3b8" padding="12px 0 0 0">
          You're receiving this because clients can book sessions with you on SessionBook.
        </mj-text>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="#ffffff" padding="0 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="32px 0 16px 0">
              {title}
            </mj-text>

            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="0">
              Sent by SessionBook
            </mj-text>
            {footer_notice}
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _when_block(local_date: str, local_time: str, duration: int, timezone: str) -> str:
    return f"""
    <mj-text align="center" font-size="16px" color="{THEME['text_primary']}" padding="20px 0 0 0">
      📅 {local_date}
    </mj-text>

    <mj-text align="center" font-size="16px" color="{THEME['text_primary']}" padding="0 0 20px 0">
      ⏰ {local_time} ({duration} min, {timezone})
    </mj-text>
    """


def booking_confirmation_template(
    client_name: str,
    provider_name: str,
    local_date: str,
    local_time: str,
    duration: int,
    timezone: str,
) -> str:
    """Sent to the client once the booking is committed"""
    content = f"""
    <mj-text>
      Hi {escape(client_name)},
    </mj-text>

    <mj-text>
      Your session with <strong>{escape(provider_name)}</strong> is booked.
    </mj-text>

    {_when_block(local_date, local_time, duration, timezone)}

    <mj-text>
      If you need to cancel, please contact {escape(provider_name)} directly.
    </mj-text>
    """

    return get_base_template(
        title="Your session is booked",
        preview_text=f"Session with {escape(provider_name)} on {local_date} at {local_time}",
        content_sections=content,
    )


def booking_cancelled_template(
    client_name: str,
    provider_name: str,
    local_date: str,
    local_time: str,
    duration: int,
    timezone: str,
) -> str:
    content = f"""
    <mj-text>
      Hi {escape(client_name)},
    </mj-text>

    <mj-text>
      Your session with <strong>{escape(provider_name)}</strong> has been cancelled.
    </mj-text>

    {_when_block(local_date, local_time, duration, timezone)}
    """

    return get_base_template(
        title="Session cancelled",
        preview_text=f"Your session on {local_date} was cancelled",
        content_sections=content,
    )


def new_booking_provider_template(
    provider_name: str,
    client_name: str,
    client_email: str,
    client_phone: Optional[str],
    local_date: str,
    local_time: str,
    duration: int,
    timezone: str,
    notes: Optional[str] = None,
) -> str:
    """Sent to the provider for every new booking"""
    contact = escape(client_email)
    if client_phone:
        contact += f" · {escape(client_phone)}"

    notes_section = ""
    if notes:
        notes_section = f"""
    <mj-text font-size="14px" color="{THEME['text_muted']}">
      Notes: {escape(notes)}
    </mj-text>
    """

    content = f"""
    <mj-text>
      Hi {escape(provider_name)},
    </mj-text>

    <mj-text>
      <strong>{escape(client_name)}</strong> booked a session with you.
    </mj-text>

    {_when_block(local_date, local_time, duration, timezone)}

    <mj-text font-size="14px" color="{THEME['text_muted']}">
      {contact}
    </mj-text>
    {notes_section}
    """

    return get_base_template(
        title="New booking",
        preview_text=f"{escape(client_name)} booked {local_date} at {local_time}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/dashboard/bookings",
        cta_label="View bookings",
        is_provider_email=True,
    )
