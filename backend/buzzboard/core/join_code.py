"""
Join code and identity generator.

Lobby codes are short (4 characters) and drawn from an alphabet without
visually ambiguous glyphs, e.g. "K7QZ". Host and player ids are opaque
bearer tokens: whoever holds one can act as that host or player.
"""

import secrets

from buzzboard.config import get_settings

settings = get_settings()


def generate_lobby_code() -> str:
    """
    Generate a random lobby code.

    Returns:
        A code of CODE_LENGTH characters from CODE_ALPHABET
    """
    alphabet = settings.lobby.CODE_ALPHABET
    return "".join(secrets.choice(alphabet) for _ in range(settings.lobby.CODE_LENGTH))


def generate_host_id() -> str:
    """Generate an unguessable host token."""
    return f"host_{secrets.token_urlsafe(18)}"


def generate_player_id() -> str:
    """Generate an unguessable player token."""
    return f"player_{secrets.token_urlsafe(18)}"


def normalize_lobby_code(code: str) -> str:
    """Codes are case-insensitive on input and stored upper-case."""
    return (code or "").strip().upper()


def is_valid_lobby_code(code: str) -> bool:
    """
    Validate lobby code format.

    Args:
        code: Code to validate

    Returns:
        True if code has the right length and only uses the code alphabet
    """
    if not code:
        return False

    code = normalize_lobby_code(code)
    if len(code) != settings.lobby.CODE_LENGTH:
        return False

    return all(ch in settings.lobby.CODE_ALPHABET for ch in code)
