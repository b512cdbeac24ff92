"""
Shared branded email layout for marketplace notifications.

Usage:
    from services.communications_service.templates.base import wrap_html, detail_box

    html = wrap_html(
        title="Order confirmed",
        body_html="<p>Hi, ...</p>" + detail_box({"Order": "..."}),
        header_color=COLOR_GREEN,
    )
"""

from html import escape

# ─── Color presets ────────────────────────────────────────────────────
COLOR_BLUE = "#1d4ed8"
COLOR_GREEN = "#059669"
COLOR_AMBER = "#d97706"
COLOR_SLATE = "#475569"


def wrap_html(
    title: str,
    body_html: str,
    subtitle: str = "",
    header_color: str = COLOR_BLUE,
) -> str:
    """Wrap inner content in the branded marketplace email layout.

    Args:
        title: Heading shown in the coloured header banner.
        body_html: The main email content (already-formatted HTML).
        subtitle: Smaller text below the title in the header.
        header_color: Header background colour.
    """
    subtitle_html = (
        f'<p style="margin: 8px 0 0 0; opacity: 0.9; font-size: 15px;">{escape(subtitle)}</p>'
        if subtitle
        else ""
    )
    return f"""\
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>{escape(title)}</title>
</head>
<body style="margin: 0; padding: 0; background: #f1f5f9; font-family: Arial, sans-serif; color: #1e293b;">
    <div style="max-width: 600px; margin: 0 auto; background: #ffffff;">
        <div style="background: {header_color}; color: #ffffff; padding: 28px 24px;">
            <h1 style="margin: 0; font-size: 22px;">{escape(title)}</h1>
            {subtitle_html}
        </div>
        <div style="padding: 24px; font-size: 15px; line-height: 1.6;">
            {body_html}
        </div>
        <div style="padding: 16px 24px; font-size: 12px; color: #64748b; border-top: 1px solid #e2e8f0;">
            You are receiving this email because you placed an order on the marketplace.
        </div>
    </div>
</body>
</html>"""


# ─── Helper functions ─────────────────────────────────────────────────


def detail_box(items: dict[str, str], accent_color: str = COLOR_BLUE) -> str:
    """Render a label/value box, skipping empty values."""
    rows = "".join(
        f"<div><strong>{escape(label)}:</strong> {escape(str(value))}</div>"
        for label, value in items.items()
        if value
    )
    return (
        f'<div style="border-left: 4px solid {accent_color}; background: #f8fafc; '
        f'padding: 16px 20px; margin: 20px 0;">{rows}</div>'
    )


def cta_button(label: str, url: str, color: str = COLOR_BLUE) -> str:
    return (
        f'<div style="text-align: center; margin: 24px 0;">'
        f'<a href="{escape(url, quote=True)}" style="background: {color}; color: #ffffff; '
        f'padding: 12px 24px; border-radius: 6px; text-decoration: none;">'
        f"{escape(label)}</a></div>"
    )
