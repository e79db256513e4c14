# lambdas/log_check/formatter.py
from datetime import datetime, timezone
from html import escape

from .models import ContainerInfo

SECTION_SEPARATOR = "<br>\n"


def format_timestamp(timestamp_ms: int) -> str:
    """Converts epoch milliseconds to "YYYY-MM-DD HH:MM:SS" in UTC (sub-second part dropped)."""
    dt_object = datetime.fromtimestamp(timestamp_ms // 1000, tz=timezone.utc)
    return dt_object.strftime('%Y-%m-%d %H:%M:%S')


def format_stream_header(stream_name: str, container: ContainerInfo) -> list[str]:
    """Header lines opening the report section of one stream."""
    return [
        f"<b>Parse stream</b> :{stream_name}<br>\n",
        f"<b>Container Image</b> :{container.container_image}<br>\n",
        f"<b>Container Name</b> :{container.container_name}<br>\n",
    ]


def format_event_line(timestamp_ms: int, message: str) -> str:
    return f"{format_timestamp(timestamp_ms)} UTC: {message}<br>\n"


# HTML Formatting
def _build_html_styles() -> str:
    """Returns the CSS styles for the HTML email."""
    return """
    <style>
        body { font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, Helvetica, Arial, sans-serif; line-height: 1.5; color: #24292e; background-color: #f6f8fa; margin: 0; padding: 20px;}
        .container { border: 1px solid #e1e4e8; max-width: 1000px; margin: 0 auto; border-radius: 8px; background-color: #ffffff; }
        .header { background-color: #24292e; color: white; padding: 16px 24px; border-radius: 8px 8px 0 0; }
        .header h1 { margin: 0; font-size: 22px; }
        .content { padding: 24px; font-family: "SFMono-Regular", Consolas, "Liberation Mono", Menlo, Courier, monospace; font-size: 13px; word-wrap: break-word; }
        .footer { text-align: center; font-size: 13px; color: #6a737d; padding: 16px;}
    </style>
    """


def format_html_body(report_fragment: str, title: str, footer: str = "") -> str:
    """Wraps a report chunk (an HTML fragment) into a complete HTML email."""
    safe_title = escape(title)
    footer_html = f'<div class="footer">{escape(footer)}</div>' if footer else ""
    return f"""
    <html><head><title>{safe_title}</title>{_build_html_styles()}</head><body>
        <div class="container">
            <div class="header"><h1>📑 {safe_title}</h1></div>
            <div class="content">
{report_fragment}
            </div>
            {footer_html}
        </div>
    </body></html>
    """
