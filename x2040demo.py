#!/usr/bin/env python3
"""
Pertelian X2040 LCD Demo

Runs a single action against the display:
- on / off: Power sequence (display and backlight)
- clear, blank: Clear everything or a single line
- print, center: Positioned or centered text
- light-on / light-off: Backlight only
- splash: Box drawing with custom characters
- glyphs: Cycles through a few user-defined characters
- all: Walks through everything above

Hardware Requirements:
- Pertelian X2040 (4x20 characters), VID 0x0403 / PID 0x6001
- Either raw USB access (pyusb + libusb) or the ftdi_sio serial port
"""

import argparse
import logging
import os
import time

from x2040 import PertelianX2040, X2040DisplayError
from x2040char import X2040Char

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)-8s [X2040] %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger('X2040_Demo')

DEFAULT_SERIAL_PORT = os.environ.get('X2040_PORT', '/dev/ttyUSB0')

DEMO_GLYPHS = {
    'heart': X2040Char.from_rows(
        "     ",
        " # # ",
        "#####",
        "#####",
        " ### ",
        "  #  ",
        "     ",
        "     ",
    ),
    'bell': X2040Char.from_rows(
        "  #  ",
        " ### ",
        " ### ",
        " ### ",
        "#####",
        "     ",
        "  #  ",
        "     ",
    ),
    'check': X2040Char.from_rows(
        "     ",
        "    #",
        "   ##",
        "# ## ",
        "###  ",
        " #   ",
        "     ",
        "     ",
    ),
}


def open_display(args) -> PertelianX2040:
    """Open the display over the transport selected on the command line."""
    if args.transport == 'sim':
        logger.info("Using in-memory simulator")
        return PertelianX2040.create_simulator_only(debug=args.verbose)
    if args.transport == 'serial':
        logger.info(f"Opening serial port {args.port} at {args.baud} baud")
        return PertelianX2040.open_serial(args.port, args.baud, debug=args.verbose)
    logger.info(f"Opening USB device {args.vid:04x}:{args.pid:04x}")
    return PertelianX2040.open_usb(args.vid, args.pid, debug=args.verbose)


def demo_glyphs(display: PertelianX2040, pause: float) -> None:
    """Store the demo glyphs and show them with their names."""
    display.clear()
    display.print_centered(0, "CUSTOM CHARACTERS")
    for slot, (name, char) in enumerate(DEMO_GLYPHS.items()):
        display.set_character(slot, char)
        ref = display.render_glyph_references([slot])
        display.print_at(slot + 1, 2, f"{ref} {name}")
        time.sleep(pause)


def demo_text(display: PertelianX2040, pause: float) -> None:
    """Positioned, centered and cursor text."""
    display.clear()
    for line in range(display.DISPLAY_HEIGHT):
        display.print_at(line, line * 2, f"LINE {line}")
    time.sleep(pause)
    display.clear()
    display.print_centered(1, "CENTERED")
    display.print_centered(2, "TEXT")
    time.sleep(pause)
    display.blank_line(1)
    time.sleep(pause)


def run_action(display: PertelianX2040, args) -> None:
    action = args.action
    if action == 'on':
        display.power_on()
    elif action == 'off':
        display.power_off()
    elif action == 'clear':
        display.clear()
    elif action == 'blank':
        display.blank_line(args.line)
    elif action == 'print':
        display.print_at(args.line, args.column, args.text)
    elif action == 'center':
        display.print_centered(args.line, args.text)
    elif action == 'light-on':
        display.set_backlight(True)
    elif action == 'light-off':
        display.set_backlight(False)
    elif action == 'splash':
        display.draw_splash_screen()
    elif action == 'glyphs':
        demo_glyphs(display, args.pause)
    elif action == 'all':
        display.power_on()
        display.draw_splash_screen()
        time.sleep(args.pause)
        demo_text(display, args.pause)
        demo_glyphs(display, args.pause)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Pertelian X2040 LCD Demo")
    parser.add_argument('action', nargs='?', default='all',
                        choices=['on', 'off', 'clear', 'blank', 'print', 'center',
                                 'light-on', 'light-off', 'splash', 'glyphs', 'all'],
                        help='Action to run (default: all)')
    parser.add_argument('--transport', choices=['usb', 'serial', 'sim'], default='usb',
                        help='How to reach the display (default: usb)')
    parser.add_argument('--port', default=DEFAULT_SERIAL_PORT,
                        help='Serial port device (default: $X2040_PORT or /dev/ttyUSB0)')
    parser.add_argument('--baud', type=int, default=9600,
                        help='Baud rate (default: 9600)')
    parser.add_argument('--vid', type=lambda v: int(v, 0), default=0x0403,
                        help='USB vendor id (default: 0x0403)')
    parser.add_argument('--pid', type=lambda v: int(v, 0), default=0x6001,
                        help='USB product id (default: 0x6001)')
    parser.add_argument('--line', type=int, default=0,
                        help='Line for print/center/blank (0-3)')
    parser.add_argument('--column', type=int, default=0,
                        help='Column for print (0-19)')
    parser.add_argument('--text', default='',
                        help='Text for print/center')
    parser.add_argument('--pause', type=float, default=2.0,
                        help='Seconds between demo steps')
    parser.add_argument('--verbose', action='store_true',
                        help='Enable verbose debug logging')
    return parser


def main(argv=None) -> int:
    """Main demo execution with CLI configuration."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        with open_display(args) as display:
            run_action(display, args)
            if display.simulator:
                print(display.simulator.dump())
            logger.info(f"Action '{args.action}' completed")
    except X2040DisplayError as e:
        logger.error(f"Display error: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Demo interrupted by user")
        return 130
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
