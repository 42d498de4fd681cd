"""
Pertelian X2040 Error Hierarchy

X2040DisplayError (base)
├── X2040DeviceNotFound - no USB device matches the requested VID/PID
├── X2040TransportError - pyusb / pyserial failure opening or writing
├── X2040UnknownWriteError - a byte write reported an unexpected count
├── X2040OutOfRange - line, column or text length outside the 4x20 grid
│   └── X2040InvalidCharacterPosition - glyph slot outside 0-6
└── X2040CharShapeError - glyph definition is not 8 rows of 5 characters
"""


class X2040DisplayError(Exception):
    """Base exception for all X2040 display errors."""
    pass


class X2040DeviceNotFound(X2040DisplayError):
    """No Pertelian X2040 found (VID=0x0403, PID=0x6001 is expected)."""
    pass


class X2040TransportError(X2040DisplayError):
    """Wraps a USB or serial layer failure. The original is the ``__cause__``."""
    pass


class X2040UnknownWriteError(X2040DisplayError):
    """A single-byte write returned a count other than one."""

    def __init__(self, written: int, expected: int = 1):
        super().__init__(
            f"unknown error writing to device: wrote {written} byte(s), expected {expected}"
        )
        self.written = written
        self.expected = expected


class X2040OutOfRange(X2040DisplayError, ValueError):
    """Target position is outside the edges of the display."""
    pass


class X2040InvalidCharacterPosition(X2040OutOfRange):
    """Custom character slot is out of bounds (0-6 are valid)."""
    pass


class X2040CharShapeError(X2040DisplayError, ValueError):
    """Custom character definition has the wrong number of rows or columns."""
    pass
