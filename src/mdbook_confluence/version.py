"""Version checking utilities for the mdbook that invokes the renderer."""

import re

# mdbook release line this backend reads the RenderContext of
SUPPORTED_MDBOOK_VERSION = "0.4"

_VERSION_RE = re.compile(r"^\s*v?(\d+)\.(\d+)(?:\.(\d+))?")


def parse_version(raw: str) -> tuple[int, ...] | None:
    """Parse ``"0.4.37"`` or ``"7.13.2-m1"`` into a tuple, suffixes ignored."""
    match = _VERSION_RE.match(raw or "")
    if not match:
        return None
    return tuple(int(part) for part in match.groups() if part is not None)


def check_mdbook_version(
    context_version: str,
    supported: str = SUPPORTED_MDBOOK_VERSION,
) -> tuple[bool, str]:
    """Check the calling mdbook against the supported release line.

    Returns:
        Tuple of (is_compatible, message) where:
        - is_compatible: True if major and minor versions match
        - message: Descriptive message about version status

    A mismatch is not fatal: mdbook keeps the RenderContext layout stable
    within a release line, and older or newer versions usually work.
    """
    actual = parse_version(context_version)
    expected = parse_version(supported)

    if actual is None:
        return False, (
            f"Cannot parse the mdbook version '{context_version}'; "
            f"this renderer was built for mdbook {supported}"
        )

    if expected is None or actual[:2] != expected[:2]:
        return False, (
            f"The confluence renderer was built against mdbook {supported}, "
            f"but is being called from version {context_version}"
        )

    return True, f"mdbook version verified: {context_version}"
