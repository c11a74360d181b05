"""Display formatting helpers."""


def human_file_size(size_bytes: int) -> str:
    """
    Format a byte count the way the chat UI labels attachments.

    Sizes above one megabyte are shown in MB with two decimals,
    everything else in kB with one decimal.

    Args:
        size_bytes: Size in bytes

    Returns:
        Human readable size, e.g. ``"1.50 MB"`` or ``"12.3 kB"``
    """
    if size_bytes > 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.2f} MB"
    return f"{size_bytes / 1024:.1f} kB"
