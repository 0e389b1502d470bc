"""Small validation helpers shared by config, storage and API layers."""


__all__ = [
    "parse_comma_separated",
    "normalize_token",
]


# Session tokens are token_urlsafe(32); anything far longer is not one of ours
MAX_TOKEN_LENGTH = 512


def parse_comma_separated(
    value: str | list[str],
    strip: bool = True,
    filter_empty: bool = True,
) -> list[str]:
    """Parse comma-separated string into list of values.

    Args:
        value: Comma-separated string or list
        strip: Whether to strip whitespace from each item
        filter_empty: Whether to filter out empty strings

    Returns:
        List of parsed values
    """
    items = value if isinstance(value, list) else value.split(",")

    if strip:
        items = [item.strip() for item in items]

    if filter_empty:
        items = [item for item in items if item]

    return items


def normalize_token(value: object) -> str | None:
    """Return a stripped bearer token, or None if it cannot be one."""
    if not isinstance(value, str):
        return None
    token = value.strip()
    if not token or len(token) > MAX_TOKEN_LENGTH:
        return None
    return token
