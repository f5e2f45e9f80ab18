"""Address range checks and alignment helpers working on 64-bit addresses."""

_U64_MASK = (1 << 64) - 1

DEFAULT_PAGE_SIZE = 0x1000


def _u64(value: int) -> int:
    return value & _U64_MASK


def is_within_start_and_end(value: int, start: int, end: int) -> bool:
    """Return True if ``start <= value < end``."""
    return start <= value < end


def is_within_start_and_length(value: int, start: int, length: int) -> bool:
    """Return True if ``value`` lies in the ``length`` bytes starting at ``start``."""
    return is_within_start_and_end(value, start, _u64(start + length))


def regions_intersect(start1: int, end1: int, start2: int, end2: int) -> bool:
    """Return True if the half-open ranges ``[start1, end1)`` and ``[start2, end2)`` overlap."""
    return start1 < end2 and start2 < end1


def regions_with_length_intersect(start1: int, length1: int, start2: int, length2: int) -> bool:
    """Return True if two ranges given as start and length overlap."""
    return regions_intersect(start1, _u64(start1 + length1), start2, _u64(start2 + length2))


def align_down(value: int, alignment: int) -> int:
    """Round ``value`` down to a multiple of the power-of-two ``alignment``."""
    return _u64(value & ~(alignment - 1))


def align_up(value: int, alignment: int) -> int:
    """Round ``value`` up to a multiple of the power-of-two ``alignment``."""
    return align_down(_u64(value + (alignment - 1)), alignment)


def page_align_down(value: int, page_size: int = DEFAULT_PAGE_SIZE) -> int:
    """Round ``value`` down to a page boundary."""
    return align_down(value, page_size)


def page_align_up(value: int, page_size: int = DEFAULT_PAGE_SIZE) -> int:
    """Round ``value`` up to a page boundary."""
    return align_up(value, page_size)