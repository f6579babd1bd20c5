"""
Base62 encoding for short codes.

Short codes are looked up by string equality, so only the encoding
direction is needed.
"""

BASE62_CHARS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"


def base62_encode(number: int) -> str:
    """
    Convert a non-negative integer to a Base62 string.

    Base62 uses: 0-9 (10) + A-Z (26) + a-z (26) = 62 characters.
    Digits sort before uppercase before lowercase in ASCII, so codes of the
    same length keep the numeric order of their IDs.
    """
    if number < 0:
        raise ValueError(f"Cannot encode negative number: {number}")

    if number == 0:
        return BASE62_CHARS[0]

    result = ""
    while number > 0:
        number, remainder = divmod(number, 62)
        result = BASE62_CHARS[remainder] + result

    return result
