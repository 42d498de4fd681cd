import pytest
from unittest.mock import MagicMock, patch

import x2040demo
from x2040 import PertelianX2040


@pytest.fixture
def mock_display():
    disp = MagicMock(spec=PertelianX2040)
    disp.DISPLAY_HEIGHT = 4
    disp.render_glyph_references.side_effect = lambda slots: ''.join(chr(s + 1) for s in slots)
    return disp


def parse(*argv):
    return x2040demo.build_parser().parse_args(list(argv))


def test_defaults():
    args = parse()
    assert args.action == 'all'
    assert args.transport == 'usb'
    assert args.vid == 0x0403
    assert args.pid == 0x6001
    assert args.baud == 9600


def test_hex_ids():
    args = parse('on', '--vid', '0x1234', '--pid', '0xabcd')
    assert args.vid == 0x1234
    assert args.pid == 0xABCD


@pytest.mark.parametrize("action,method", [
    ('on', 'power_on'),
    ('off', 'power_off'),
    ('clear', 'clear'),
    ('splash', 'draw_splash_screen'),
])
def test_simple_actions(mock_display, action, method):
    x2040demo.run_action(mock_display, parse(action))
    getattr(mock_display, method).assert_called_once()


def test_print_action(mock_display):
    x2040demo.run_action(mock_display, parse('print', '--line', '2', '--column', '3', '--text', 'HI'))
    mock_display.print_at.assert_called_once_with(2, 3, 'HI')


def test_center_and_light_actions(mock_display):
    x2040demo.run_action(mock_display, parse('center', '--line', '1', '--text', 'MID'))
    x2040demo.run_action(mock_display, parse('light-off'))
    mock_display.print_centered.assert_called_once_with(1, 'MID')
    mock_display.set_backlight.assert_called_once_with(False)


def test_all_invokes_everything(mock_display):
    with patch('time.sleep'):
        x2040demo.run_action(mock_display, parse('all', '--pause', '0'))
    mock_display.power_on.assert_called_once()
    mock_display.draw_splash_screen.assert_called_once()
    mock_display.blank_line.assert_called_once_with(1)
    assert mock_display.set_character.call_count == len(x2040demo.DEMO_GLYPHS)


def test_main_simulator_splash(capsys):
    assert x2040demo.main(['splash', '--transport', 'sim']) == 0
    out = capsys.readouterr().out
    assert "Pertelian  X2040" in out


def test_main_reports_display_errors():
    assert x2040demo.main(['print', '--transport', 'sim', '--line', '4', '--text', 'x']) == 1


def test_main_serial_transport():
    with patch.object(PertelianX2040, 'open_serial') as mock_open:
        assert x2040demo.main(['clear', '--transport', 'serial', '--port', '/dev/ttyUSB3']) == 0
    mock_open.assert_called_once_with('/dev/ttyUSB3', 9600, debug=False)
    display = mock_open.return_value.__enter__.return_value
    display.clear.assert_called_once()
