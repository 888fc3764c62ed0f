"""Commit message based build suppression."""

SKIP_CI_MARKERS = (
    "[skip ci]",
    "[ci skip]",
    "\\[skip ci\\]",
    "\\[ci skip\\]",
    "\\\\[skip ci\\\\]",
    "\\\\[ci skip\\\\]",
)


def is_skip_build_by_commit_message(text: str) -> bool:
    """
    Return True if the text carries a skip ci marker.

    Case sensitive plain substring search: ``[CI SKIP]`` or ``[ skip ci ]``
    do not count.
    """
    if not text:
        return False
    return any(marker in text for marker in SKIP_CI_MARKERS)
