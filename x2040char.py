"""
X2040 Custom Character Encoding

Custom characters are drawn as 8 strings of exactly 5 characters each. A
space is a blank dot, anything else is a filled dot:

    heart = X2040Char.from_rows(
        "     ",
        " # # ",
        "#####",
        "#####",
        " ### ",
        "  #  ",
        "     ",
        "     ",
    )
    display.set_character(0, heart)

Each row packs into one byte, column 0 in bit 4 down to column 4 in bit 0.
"""

from typing import Iterable, List, Sequence, Tuple

from x2040errors import X2040CharShapeError

CHAR_ROWS = 8
CHAR_WIDTH = 5


def encode_glyph(rows: Sequence[str]) -> bytes:
    """Pack 8 rows of 5 characters into the 8 bytes the display stores."""
    rows = list(rows)
    if len(rows) != CHAR_ROWS:
        raise X2040CharShapeError(
            f"characters must be made up of exactly {CHAR_ROWS} lines, got {len(rows)}"
        )

    packed = bytearray()
    for row in rows:
        if len(row) != CHAR_WIDTH:
            raise X2040CharShapeError(
                f"character lines must be exactly {CHAR_WIDTH} characters wide, got {row!r}"
            )
        value = 0
        for col, ch in enumerate(row):
            if ch != ' ':
                value |= 1 << (CHAR_WIDTH - 1 - col)
        packed.append(value)
    return bytes(packed)


def decode_glyph(lines: Iterable[int], fill: str = '#') -> List[str]:
    """Turn packed rows back into strings, ``fill`` for set dots."""
    rows = []
    for value in lines:
        rows.append(''.join(
            fill if value & (1 << (CHAR_WIDTH - 1 - col)) else ' '
            for col in range(CHAR_WIDTH)
        ))
    return rows


class X2040Char:
    """A custom character ready to be stored in one of the display's slots."""

    __slots__ = ('_lines',)

    def __init__(self, lines: bytes):
        lines = bytes(lines)
        if len(lines) != CHAR_ROWS:
            raise X2040CharShapeError(
                f"characters must be made up of exactly {CHAR_ROWS} lines, got {len(lines)}"
            )
        self._lines = lines

    @classmethod
    def from_rows(cls, *rows: str) -> "X2040Char":
        return cls(encode_glyph(rows))

    @property
    def lines(self) -> bytes:
        return self._lines

    def decode(self, fill: str = '#') -> List[str]:
        return decode_glyph(self._lines, fill)

    def __bytes__(self) -> bytes:
        return self._lines

    def __eq__(self, other) -> bool:
        if isinstance(other, X2040Char):
            return self._lines == other._lines
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._lines)

    def __repr__(self) -> str:
        return f"X2040Char({self._lines.hex(' ')})"


# Box drawing set used by the splash screen, in slot order 0-6:
# top-left, horizontal (upper), top-right, vertical, bottom-left,
# horizontal (lower), bottom-right.
LINE_DRAWING_ROWS: Tuple[Tuple[str, ...], ...] = (
    (
        "     ",
        "     ",
        "     ",
        "   ##",
        "  #  ",
        "  #  ",
        "  #  ",
        "  #  ",
    ),
    (
        "     ",
        "     ",
        "     ",
        "#####",
        "     ",
        "     ",
        "     ",
        "     ",
    ),
    (
        "     ",
        "     ",
        "     ",
        "##   ",
        "  #  ",
        "  #  ",
        "  #  ",
        "  #  ",
    ),
    (
        "  #  ",
        "  #  ",
        "  #  ",
        "  #  ",
        "  #  ",
        "  #  ",
        "  #  ",
        "  #  ",
    ),
    (
        "  #  ",
        "  #  ",
        "  #  ",
        "  #  ",
        "   ##",
        "     ",
        "     ",
        "     ",
    ),
    (
        "     ",
        "     ",
        "     ",
        "     ",
        "#####",
        "     ",
        "     ",
        "     ",
    ),
    (
        "  #  ",
        "  #  ",
        "  #  ",
        "  #  ",
        "##   ",
        "     ",
        "     ",
        "     ",
    ),
)

LINE_DRAWING_CHARS: Tuple[X2040Char, ...] = tuple(
    X2040Char.from_rows(*rows) for rows in LINE_DRAWING_ROWS
)
