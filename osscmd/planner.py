"""Split an object into contiguous byte-range parts."""

from osscmd.models import Part


def part_count(total_size: int, part_size: int) -> int:
    return (total_size + part_size - 1) // part_size


def plan_parts(total_size: int, part_size: int) -> list[Part]:
    """Plan the parts of an object.

    Args:
        total_size: Object size in bytes
        part_size: Maximum part size in bytes

    Returns:
        ceil(total_size / part_size) parts in index order. The ranges are
        inclusive, contiguous, start at 0 and the last one ends at
        total_size - 1. An empty object yields no parts; callers handle
        that case themselves.

    Raises:
        ValueError: If total_size is negative or part_size is below 1
    """
    if total_size < 0:
        raise ValueError(f"total_size must be >= 0, got {total_size}")
    if part_size < 1:
        raise ValueError(f"part_size must be >= 1, got {part_size}")

    return [
        Part(
            index=index,
            start=index * part_size,
            end=min((index + 1) * part_size - 1, total_size - 1),
        )
        for index in range(part_count(total_size, part_size))
    ]
