import enum


class Orientation(str, enum.Enum):
    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"
    OTHER = "other"


def classify(width: int, height: int) -> Orientation:
    """
    Bucket video geometry by integer-truncated 16:9 / 9:16 ratios.

    Truncation is intentional: 1900x1070 counts as landscape (118 == 118) while
    1915x1080 does not (119 != 120). The result decides the storage key prefix,
    so it must stay stable.
    """
    if width <= 0 or height <= 0:
        return Orientation.OTHER
    if width // 16 == height // 9:
        return Orientation.LANDSCAPE
    if width // 9 == height // 16:
        return Orientation.PORTRAIT
    return Orientation.OTHER
