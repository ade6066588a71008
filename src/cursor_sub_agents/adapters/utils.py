"""Escaping helpers for the automation tools' own syntaxes."""

from __future__ import annotations

_SENDKEYS_SPECIAL = set("+^%~(){}[]")
_SENDKEYS_NAMED = {"\n": "{ENTER}", "\t": "{TAB}", "\r": ""}


def escape_applescript_string(text: str) -> str:
    """Escape ``text`` for use inside an AppleScript double-quoted literal."""

    return (
        text.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )


def escape_sendkeys(text: str) -> str:
    """Escape ``text`` for ``System.Windows.Forms.SendKeys`` so every character is typed literally."""

    parts: list[str] = []
    for char in text:
        if char in _SENDKEYS_SPECIAL:
            parts.append("{" + char + "}")
        else:
            parts.append(_SENDKEYS_NAMED.get(char, char))
    return "".join(parts)


def powershell_quote(value: str) -> str:
    """Return ``value`` as a PowerShell single-quoted literal (no interpolation)."""

    return "'" + value.replace("'", "''") + "'"


def format_seconds(seconds: float) -> str:
    """Render a delay for ``sleep``: integers stay integral, fractions keep millisecond precision."""

    rendered = f"{max(seconds, 0.0):.3f}".rstrip("0").rstrip(".")
    return rendered or "0"


__all__ = ["escape_applescript_string", "escape_sendkeys", "format_seconds", "powershell_quote"]
