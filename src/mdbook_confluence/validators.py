"""
Input validation functions for mdbook-confluence.

Provides validation for page titles, page bodies and the anchor page id
before any REST call is made.
"""

MAX_TITLE_LENGTH = 255


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Page title")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_page_title(title: str) -> tuple[bool, str]:
    """
    Validate a Confluence page title.

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules:
        - Cannot be empty or whitespace-only
        - Cannot exceed 255 characters (Confluence limit)
        - Cannot contain line breaks
    """
    if not title or not title.strip():
        return (
            False,
            format_validation_error("Page title", "cannot be empty"),
        )

    if len(title) > MAX_TITLE_LENGTH:
        return (
            False,
            format_validation_error(
                "Page title",
                f"exceeds maximum length of {MAX_TITLE_LENGTH} characters",
            ),
        )

    if "\n" in title or "\r" in title:
        return (
            False,
            format_validation_error("Page title", "cannot contain line breaks"),
        )

    return (True, "")


def validate_content(
    content: str, max_size: int = 5_000_000
) -> tuple[bool, str]:
    """
    Validate a page body in storage format.

    Args:
        content: The content to validate
        max_size: Maximum size in bytes (default: 5,000,000)

    Returns:
        Tuple of (is_valid, error_message).
    """
    content_bytes = len(content.encode("utf-8"))
    if content_bytes > max_size:
        return (
            False,
            format_validation_error(
                "Content", f"exceeds maximum size of {max_size} bytes"
            ),
        )

    return (True, "")


def validate_page_id(page_id: object) -> tuple[bool, str]:
    """
    Validate a numeric Confluence page id (e.g. the configured root page).

    Accepts positive ints and strings of digits.
    """
    if isinstance(page_id, bool):
        return (
            False,
            format_validation_error("Page id", "must be a positive integer"),
        )
    if isinstance(page_id, int):
        ok = page_id > 0
    elif isinstance(page_id, str):
        ok = page_id.strip().isdigit() and int(page_id) > 0
    else:
        ok = False
    if not ok:
        return (
            False,
            format_validation_error("Page id", "must be a positive integer"),
        )
    return (True, "")
