"""
Pertelian X2040 LCD Control Library

Python interface for the Pertelian X2040, a 4x20 character LCD behind an FTDI
USB bridge. Supports positioned and centered text, power and backlight
control, and seven user-defined 5x8 characters.

Every transmission is sent one byte at a time with a short latch delay after
each of the first three bytes. The display firmware corrupts multi-byte
bulk transfers, so there is no batched fast path.
"""

import itertools
import logging
import platform
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from x2040char import LINE_DRAWING_CHARS, CHAR_ROWS, X2040Char
from x2040errors import (
    X2040CharShapeError,
    X2040DisplayError,
    X2040InvalidCharacterPosition,
    X2040OutOfRange,
    X2040UnknownWriteError,
)
from x2040io import (
    DEFAULT_BAUDRATE,
    OUT_ENDPOINT,
    PRODUCT_ID,
    VENDOR_ID,
    WRITE_TIMEOUT_MS,
    SerialEndpoint,
    UsbEndpoint,
)

logger = logging.getLogger('X2040')

DISPLAY_WIDTH = 20
DISPLAY_HEIGHT = 4
CHARACTER_SLOTS = 7

# Command prefix and instruction opcodes
CMD_PREFIX = 0xFE
CMD_CLEAR = 0x01
CMD_LIGHT_OFF = 0x02
CMD_LIGHT_ON = 0x03
CMD_ENTRY = 0x06
CMD_OFF = 0x08
CMD_ON = 0x0C
CMD_INIT = 0x38

INSTRUCTION_NAMES = {
    CMD_CLEAR: "Clear",
    CMD_LIGHT_OFF: "Light off",
    CMD_LIGHT_ON: "Light on",
    CMD_ENTRY: "Entry mode",
    CMD_OFF: "Display off",
    CMD_ON: "Display on",
    CMD_INIT: "Init",
}

# DDRAM address of column 0 for each line
LINE_OFFSETS = (0x80, 0x80 + 0x40, 0x80 + 0x14, 0x80 + 0x54)

# CGRAM address of slot 0; each slot is 8 bytes further along
CHARACTER_BASE_ADDRESS = 72

# Bytes followed by a latch delay at the start of every transmission
LATCH_BYTES = 3
DEFAULT_LATCH_DELAY = 0.000001

Text = Union[str, bytes, bytearray]


def _encode_text(text: Text) -> bytes:
    """One byte per character so length checks match what is sent."""
    if isinstance(text, (bytes, bytearray)):
        return bytes(text)
    return text.encode('latin-1', 'replace')


def _hex(data: bytes) -> str:
    return ' '.join(f'{byte:02X}' for byte in data)


class PertelianX2040:
    """
    Pertelian X2040 LCD Controller

    Basic Usage:
        with PertelianX2040.open_usb() as display:
            display.power_on()
            display.print_centered(1, "Hello")
            display.print_at(2, 0, "World")

    The driver wraps an already opened endpoint (anything with
    ``write(bytes) -> int`` and ``close()``). It does not initialize the
    display on construction; call ``power_on()`` for that.

    Not thread safe. Interleaved writes from two callers corrupt the command
    stream, so serialize access to an instance yourself.
    """

    DISPLAY_WIDTH = DISPLAY_WIDTH
    DISPLAY_HEIGHT = DISPLAY_HEIGHT

    def __init__(self, endpoint,
                 latch_delay: float = DEFAULT_LATCH_DELAY,
                 sleep_fn: Callable[[float], None] = time.sleep,
                 debug: bool = False):
        """
        Initialize X2040 controller.

        Args:
            endpoint: Open output endpoint (``UsbEndpoint``, ``SerialEndpoint``
                or ``DisplaySimulator``)
            latch_delay: Pause after each of the first three bytes of a
                transmission (seconds, default 1us)
            sleep_fn: Sleep callback used for the latch delay
            debug: Enable debug logging
        """
        self.endpoint = endpoint
        self.latch_delay = latch_delay
        self.sleep_fn = sleep_fn
        self.debug = debug
        self.powered: Optional[bool] = None
        self.backlight: Optional[bool] = None
        self._closed = False

        if debug:
            logger.setLevel(logging.DEBUG)
            logger.debug("Initializing X2040 controller")

    @classmethod
    def open_usb(cls, vid: int = VENDOR_ID, pid: int = PRODUCT_ID,
                 endpoint_address: int = OUT_ENDPOINT,
                 timeout: int = WRITE_TIMEOUT_MS, **kwargs) -> "PertelianX2040":
        """Factory for a display reached through raw USB bulk transfers."""
        endpoint = UsbEndpoint.open(vid, pid, endpoint_address, timeout)
        return cls(endpoint, **kwargs)

    @classmethod
    def open_serial(cls, port, baudrate: int = DEFAULT_BAUDRATE, **kwargs) -> "PertelianX2040":
        """Factory for a display reached through the FTDI serial port."""
        return cls(SerialEndpoint(port, baudrate), **kwargs)

    @classmethod
    def create_simulator_only(cls, **kwargs) -> "PertelianX2040":
        """Factory for simulator-only operation."""
        return cls(DisplaySimulator(), **kwargs)

    @property
    def simulator(self) -> Optional["DisplaySimulator"]:
        """The attached ``DisplaySimulator`` when running without hardware."""
        if isinstance(self.endpoint, DisplaySimulator):
            return self.endpoint
        return None

    @property
    def closed(self) -> bool:
        return self._closed

    def get_display_info(self) -> Dict[str, Any]:
        """Return current display state information."""
        return {
            'powered': self.powered,
            'backlight': self.backlight,
            'latch_delay': self.latch_delay,
            'closed': self._closed,
            'endpoint': type(self.endpoint).__name__,
        }

    # === WRITE PATH ===

    def write(self, data: bytes) -> int:
        """
        Write bytes to the display, one transmission per byte.

        The first three bytes are each followed by the latch delay so the
        controller can take the command byte; the rest go out back-to-back.

        Returns:
            Number of bytes written

        Raises:
            X2040UnknownWriteError: A byte write reported a count other than 1
            X2040TransportError: The endpoint failed
        """
        self._check_open()
        written = 0
        for i, byte in enumerate(bytes(data)):
            count = self.endpoint.write(bytes((byte,)))
            if count != 1:
                raise X2040UnknownWriteError(count)
            written += count
            if i < LATCH_BYTES:
                self.sleep_fn(self.latch_delay)
        return written

    def write_raw_unsafe(self, data: bytes) -> int:
        """
        Write ``data`` in a single transfer with no latch delays.

        Debug only: the display often garbles multi-byte transfers.
        """
        self._check_open()
        logger.warning(f"Unsafe raw write of {len(data)} bytes, output may be corrupted")
        return self.endpoint.write(bytes(data))

    def _send(self, data: bytes, description: str) -> None:
        logger.debug(f"Sending: {description} | Bytes: {_hex(data)}")
        self.write(data)

    def _inst(self, action: int) -> None:
        """Send the command prefix followed by one instruction opcode."""
        self._send(bytes((CMD_PREFIX, action)), INSTRUCTION_NAMES.get(action, f"0x{action:02X}"))
        if action == CMD_ON:
            self.powered = True
        elif action == CMD_OFF:
            self.powered = False
        elif action == CMD_LIGHT_ON:
            self.backlight = True
        elif action == CMD_LIGHT_OFF:
            self.backlight = False

    def _do(self, *actions: int) -> None:
        for action in actions:
            self._inst(action)

    def _check_open(self) -> None:
        if self._closed:
            raise X2040DisplayError("Display connection is closed")

    @staticmethod
    def _check_line(line: int) -> None:
        if not 0 <= line < DISPLAY_HEIGHT:
            raise X2040OutOfRange(f"Line must be 0-{DISPLAY_HEIGHT - 1}, got {line}")

    @staticmethod
    def _check_slot(slot: int) -> None:
        if not 0 <= slot < CHARACTER_SLOTS:
            raise X2040InvalidCharacterPosition(
                f"Character slot must be 0-{CHARACTER_SLOTS - 1}, got {slot}"
            )

    # === POWER AND LIGHT ===

    def power_on(self) -> None:
        """Turn on the display, initialize it, clear it and turn the light on."""
        self._do(CMD_ON, CMD_INIT, CMD_CLEAR, CMD_LIGHT_ON)

    def power_off(self) -> None:
        """Turn off the light, and then the display."""
        self._do(CMD_LIGHT_OFF, CMD_OFF)

    def clear(self) -> None:
        """Remove all text from the display."""
        self._inst(CMD_CLEAR)

    def set_backlight(self, on: bool) -> None:
        self._inst(CMD_LIGHT_ON if on else CMD_LIGHT_OFF)

    # === TEXT ===

    def print(self, text: Text) -> None:
        """Write text wherever the display cursor currently is."""
        payload = _encode_text(text)
        self._send(bytes((CMD_PREFIX, CMD_ENTRY)) + payload, f"Print: {payload!r}")

    def print_at(self, line: int, column: int, text: Text) -> None:
        """
        Write text starting at the given line and column.

        Args:
            line: Line 0-3
            column: Column 0-19
            text: Text to write; column + length may not exceed 20

        Raises:
            X2040OutOfRange: Any part of the text falls off the display
        """
        payload = _encode_text(text)
        self._check_line(line)
        if len(payload) > DISPLAY_WIDTH:
            raise X2040OutOfRange(
                f"Text must be at most {DISPLAY_WIDTH} characters, got {len(payload)}"
            )
        if not 0 <= column < DISPLAY_WIDTH:
            raise X2040OutOfRange(f"Column must be 0-{DISPLAY_WIDTH - 1}, got {column}")
        if column + len(payload) > DISPLAY_WIDTH:
            raise X2040OutOfRange(
                f"Text of {len(payload)} characters at column {column} overflows line"
            )

        address = LINE_OFFSETS[line] + column
        self._send(bytes((CMD_PREFIX, address)) + payload,
                   f"Print at ({line},{column}): {payload!r}")

    def print_centered(self, line: int, text: Text) -> None:
        """Write text centered on the given line, rounding to the left."""
        payload = _encode_text(text)
        if len(payload) > DISPLAY_WIDTH:
            raise X2040OutOfRange(
                f"Text must be at most {DISPLAY_WIDTH} characters, got {len(payload)}"
            )
        column = (DISPLAY_WIDTH - len(payload)) // 2
        self.print_at(line, column, payload)

    def blank_line(self, line: int) -> None:
        """Overwrite the given line with spaces."""
        self._check_line(line)
        self.print_at(line, 0, " " * DISPLAY_WIDTH)

    # === CUSTOM CHARACTERS ===

    def set_character(self, slot: int, char: Union[X2040Char, bytes]) -> None:
        """
        Store a custom character in the display. You get 7 slots, 0-6.

        Print it later with ``render_glyph_references``.
        """
        self._check_slot(slot)
        if isinstance(char, X2040Char):
            lines = char.lines
        else:
            try:
                lines = bytes(memoryview(char))
            except TypeError as e:
                raise X2040CharShapeError(
                    f"custom character must be an X2040Char or 8 bytes, got {type(char).__name__}"
                ) from e
        if len(lines) != CHAR_ROWS:
            raise X2040CharShapeError(
                f"characters must be made up of exactly {CHAR_ROWS} lines, got {len(lines)}"
            )
        address = CHARACTER_BASE_ADDRESS + slot * CHAR_ROWS
        self._send(bytes((CMD_PREFIX, address)) + lines, f"Set character {slot}")

    def render_glyph_references(self, slots: Iterable[int]) -> str:
        """
        Build a string that prints the given custom character slots.

        The firmware shows the character stored in slot ``n`` for byte
        ``n + 1``. At most one line (20 slots) is returned.
        """
        slots = list(itertools.islice(slots, DISPLAY_WIDTH))
        for slot in slots:
            self._check_slot(slot)
        return ''.join(chr(slot + 1) for slot in slots)

    def set_line_drawing_characters(self) -> None:
        """Store the box drawing characters in slots 0-6."""
        for slot, char in enumerate(LINE_DRAWING_CHARS):
            self.set_character(slot, char)

    def draw_splash_screen(self, title: str = "Pertelian  X2040",
                           subtitle: Optional[str] = None) -> None:
        """Draw a box around the title and the Python version."""
        inner = DISPLAY_WIDTH - 2
        if subtitle is None:
            subtitle = f"Python {platform.python_version()}"
        refs = self.render_glyph_references

        self.set_line_drawing_characters()

        self.print_at(0, 0, refs([0] + [1] * inner + [2]))

        for line, text in ((1, title[:inner]), (2, subtitle[:inner])):
            self.print_at(line, 0, refs([3]))
            self.print_centered(line, text)
            self.print_at(line, DISPLAY_WIDTH - 1, refs([3]))

        self.print_at(3, 0, refs([4] + [5] * inner + [6]))

    # === LIFECYCLE ===

    def close(self) -> None:
        """
        Close the endpoint.

        **Does not** clear the display, turn off the light, or any of that.
        If the endpoint fails to close, calling ``close()`` again retries.
        """
        if self._closed:
            return
        logger.debug("Closing X2040 connection")
        self.endpoint.close()
        self._closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


# ---------------------------------------------------------------------------
# In-memory display for running without hardware


class DisplaySimulator:
    """Endpoint that decodes the X2040 byte stream into an in-memory display.

    Models the controller's DDRAM (two 40-byte banks, mapped onto four
    20-column lines), the 64-byte CGRAM holding the custom characters, and
    the power and backlight state. Lines and columns are 0-based.
    """

    # DDRAM bank start for each display line
    _LINE_STARTS = tuple(offset & 0x7F for offset in LINE_OFFSETS)

    def __init__(self) -> None:
        self.lines: List[List[str]] = [list(" " * DISPLAY_WIDTH) for _ in range(DISPLAY_HEIGHT)]
        self.cgram = bytearray(64)
        self.display_on: bool = False
        self.backlight: bool = False
        self.initialized: bool = False
        self.closed: bool = False
        self.received = bytearray()
        self.write_sizes: List[int] = []
        self._address = 0
        self._cgram_mode = False
        self._command_pending = False

    # --- endpoint interface ---
    def write(self, data: bytes) -> int:
        if self.closed:
            raise X2040DisplayError("Simulator endpoint is closed")
        self.write_sizes.append(len(data))
        for byte in bytes(data):
            self.feed(byte)
        return len(data)

    def close(self) -> None:
        self.closed = True

    # --- protocol decoding ---
    def feed(self, byte: int) -> None:
        self.received.append(byte)
        if self._command_pending:
            self._command_pending = False
            self._apply_command(byte)
        elif byte == CMD_PREFIX:
            self._command_pending = True
        elif self._cgram_mode:
            self.cgram[self._address] = byte & 0x1F
            self._address = (self._address + 1) % len(self.cgram)
        else:
            position = self._ddram_position(self._address)
            if position is not None:
                line, column = position
                self.lines[line][column] = chr(byte)
            self._address = self._next_ddram_address(self._address)

    def _apply_command(self, byte: int) -> None:
        if byte & 0x80:
            self._cgram_mode = False
            self._address = byte & 0x7F
        elif byte & 0x40:
            self._cgram_mode = True
            self._address = byte & 0x3F
        elif byte == CMD_CLEAR:
            self.clear()
        elif byte == CMD_LIGHT_OFF:
            self.backlight = False
        elif byte == CMD_LIGHT_ON:
            self.backlight = True
        elif byte == CMD_ON:
            self.display_on = True
        elif byte == CMD_OFF:
            self.display_on = False
        elif byte == CMD_INIT:
            self.initialized = True
        elif byte != CMD_ENTRY:
            logger.debug(f"Simulator ignoring unknown instruction 0x{byte:02X}")

    def _ddram_position(self, address: int) -> Optional[Tuple[int, int]]:
        for line, start in enumerate(self._LINE_STARTS):
            if start <= address < start + DISPLAY_WIDTH:
                return line, address - start
        return None

    @staticmethod
    def _next_ddram_address(address: int) -> int:
        address += 1
        if address == 0x28:
            return 0x40
        if address >= 0x68:
            return 0x00
        return address

    # --- state helpers ---
    def clear(self) -> None:
        self.lines = [list(" " * DISPLAY_WIDTH) for _ in range(DISPLAY_HEIGHT)]
        self._address = 0
        self._cgram_mode = False

    def get_line(self, line: int) -> str:
        return "".join(self.lines[line])

    def get_display(self) -> Tuple[str, ...]:
        return tuple(self.get_line(line) for line in range(DISPLAY_HEIGHT))

    def glyph(self, slot: int) -> X2040Char:
        """Return the custom character stored for ``slot`` (0-6)."""
        start = (slot + 1) * CHAR_ROWS
        return X2040Char(bytes(self.cgram[start:start + CHAR_ROWS]))

    def render(self, glyph_fill: str = "#") -> Tuple[str, ...]:
        """Display lines with custom character references replaced by ``glyph_fill``."""
        return tuple(
            "".join(glyph_fill if 1 <= ord(ch) <= CHARACTER_SLOTS else ch for ch in line)
            for line in self.get_display()
        )

    # Assertion helpers for tests
    def assert_char_at(self, line: int, column: int, expected: str) -> None:
        actual = self.lines[line][column]
        assert actual == expected, (
            f"Char at ({line},{column}) expected {expected!r}, got {actual!r}"
        )

    def assert_line_equals(self, line: int, expected: str) -> None:
        actual = self.get_line(line).rstrip()
        expected = expected.ljust(DISPLAY_WIDTH).rstrip()
        assert actual == expected, (
            f"Line {line}: expected {expected!r}, got {actual!r}"
        )

    def assert_display_on(self, on: bool = True) -> None:
        assert self.display_on is on, (
            f"Display on expected {on}, got {self.display_on}"
        )

    def assert_backlight(self, on: bool = True) -> None:
        assert self.backlight is on, (
            f"Backlight expected {on}, got {self.backlight}"
        )

    def dump(self) -> str:
        return "\n".join(f"Line {i}: '{line}'" for i, line in enumerate(self.render()))
