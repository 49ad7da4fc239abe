"""Shared admin helpers."""

import json

from django.utils.html import format_html

BADGE_STYLE = (
    '<span style="background-color: {}; color: white; padding: 3px 8px; '
    'border-radius: 3px; font-size: 11px;">{}</span>'
)


def prettify_json(value) -> str:
    """Render a JSON-compatible value as an indented <pre> block."""
    if value in (None, "", {}, []):
        return "-"
    text = json.dumps(value, indent=2, sort_keys=True, default=str)
    return format_html('<pre style="white-space: pre-wrap; margin: 0;">{}</pre>', text)


def badge(label: str, color: str) -> str:
    return format_html(BADGE_STYLE, color, (label or "-").upper())
