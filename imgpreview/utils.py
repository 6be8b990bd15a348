"""
Utility functions for reporting preview sizes.
"""


def format_size(size_bytes: int) -> str:
    """Format byte size to human readable string."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.2f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.2f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.2f} GB"


def format_reduction(percent: float) -> str:
    """Format a size reduction, showing growth explicitly."""
    if percent < 0:
        return f"{-percent:.1f}% larger"
    return f"{percent:.1f}% smaller"
