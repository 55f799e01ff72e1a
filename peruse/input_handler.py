import os
import sys
import json
import logging

from .events import Key

# Default keyboard shortcuts; each command takes a key name or a list of them
DEFAULT_KEYBOARD_SHORTCUTS = {
    "navigation": {
        "next_page": ["l", "down", "right"],
        "prev_page": ["h", "up", "left"],
        "jump_to_page": "g",
        "search": "/",
    },
    "bookmarks": {
        "prev_bookmark": "w",
        "next_bookmark": "s",
        "prev_bookmark_skip": "W",
        "next_bookmark_skip": "S",
        "expand_bookmark": "d",
        "collapse_bookmark": "a",
        "open_bookmark": "enter",
    },
    "display_controls": {
        "zoom_in": ["+", "="],
        "zoom_out": "-",
    },
    "application": {
        "quit": ["q", "esc", "ctrl-c"],
    },
}

# Global variable to store loaded keyboard shortcuts
KEYBOARD_SHORTCUTS = DEFAULT_KEYBOARD_SHORTCUTS

_ESCAPE_SEQUENCES = {
    "\x1b[A": "up",
    "\x1b[B": "down",
    "\x1b[C": "right",
    "\x1b[D": "left",
    "\x1bOA": "up",
    "\x1bOB": "down",
    "\x1bOC": "right",
    "\x1bOD": "left",
}

_CONTROL_KEYS = {
    "\r": "enter",
    "\n": "enter",
    "\x7f": "backspace",
    "\x08": "backspace",
    "\x03": "ctrl-c",
    "\t": "tab",
}


def load_keyboard_shortcuts(file_path=None):
    """Load keyboard shortcuts from a JSON file merged over the defaults.

    Unknown or unreadable files leave the defaults in place.
    """
    global KEYBOARD_SHORTCUTS

    shortcuts = {group: dict(commands) for group, commands in DEFAULT_KEYBOARD_SHORTCUTS.items()}
    if file_path:
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                custom = json.load(f)
            for group, commands in custom.items():
                if isinstance(commands, dict):
                    shortcuts.setdefault(group, {}).update(commands)
        except (OSError, json.JSONDecodeError, AttributeError) as e:
            logging.error(f"Cannot load keyboard shortcuts from {file_path}: {e}")
    KEYBOARD_SHORTCUTS = shortcuts
    return shortcuts


def command_for_key(key_name, shortcuts=None):
    """Map a key name to a command name, or None if it is unbound."""
    shortcuts = shortcuts or KEYBOARD_SHORTCUTS
    for commands in shortcuts.values():
        for command, keys in commands.items():
            if isinstance(keys, str):
                keys = [keys]
            if key_name in keys:
                return command
    return None


class KeyDecoder:
    """Turns raw terminal input into key names, keeping partial escape sequences."""

    def __init__(self):
        self.buffer = ""
        self._escape_waited = False

    def feed(self, data):
        self.buffer += data
        self._escape_waited = False
        keys = []
        while self.buffer:
            char = self.buffer[0]
            if char == "\x1b":
                if len(self.buffer) == 1:
                    # Could be the start of a sequence split across reads
                    break
                sequence = self.buffer[:3]
                if sequence in _ESCAPE_SEQUENCES:
                    keys.append(_ESCAPE_SEQUENCES[sequence])
                    self.buffer = self.buffer[3:]
                    continue
                if self.buffer[1] in "[O":
                    end = 2
                    while end < len(self.buffer) and not self.buffer[end].isalpha() and self.buffer[end] != "~":
                        end += 1
                    if end >= len(self.buffer):
                        # Incomplete sequence; wait for the rest
                        break
                    # Unmapped sequence (mouse, function keys); drop it
                    self.buffer = self.buffer[end + 1:]
                    continue
                keys.append("esc")
                self.buffer = self.buffer[1:]
                continue
            self.buffer = self.buffer[1:]
            if char in _CONTROL_KEYS:
                keys.append(_CONTROL_KEYS[char])
            elif char.isprintable():
                keys.append(char)
        return keys

    def flush(self):
        """
        Called on every tick. A lone ESC still buffered after a full tick
        without further input is the Esc key.
        """
        if self.buffer != "\x1b":
            return []
        if not self._escape_waited:
            self._escape_waited = True
            return []
        self.buffer = ""
        self._escape_waited = False
        return ["esc"]


def process_input(viewer):
    """Read pending stdin bytes and emit a Key event for each key."""
    try:
        data = os.read(sys.stdin.fileno(), 1024)
    except (BlockingIOError, InterruptedError):
        return
    except OSError as e:
        logging.error(f"Reading terminal input failed: {e}")
        return
    if not data:
        return
    for key in viewer.key_decoder.feed(data.decode('utf-8', errors='ignore')):
        viewer.bus.emit(Key(key))
