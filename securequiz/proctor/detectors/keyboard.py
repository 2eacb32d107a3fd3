"""
Key Combination Source - intercepts task-switching and restricted shortcuts

Key combos:
- Alt+Tab, Ctrl+Shift+Tab: task switching (very-high)
- Windows/Meta key: checked 100 ms later for a lost focus or hidden page
- F11, Escape in fullscreen: checked 100 ms later for a fullscreen exit
- Developer tools, clipboard, save/print/reload shortcuts: KeyboardShortcut
"""

import logging
from typing import Optional, Set

from ..models import Confidence, ViolationType
from ..platform import KEYDOWN, KEYUP
from .base import SignalSource

logger = logging.getLogger(__name__)


MODIFIER_KEYS = {
    "Control": "ctrl",
    "Shift": "shift",
    "Alt": "alt",
    "Meta": "meta",
    "OS": "meta",
}

CTRL_SHORTCUT_KEYS = {"U", "S", "A", "C", "V", "R", "P"}
CTRL_SHIFT_SHORTCUT_KEYS = {"I", "J"}
BARE_SHORTCUT_KEYS = {"F12", "F5", "PrintScreen"}


class KeyComboSource(SignalSource):
    name = "key-combo"

    FOLLOWUP = "key-followup:"
    RESET = "key-reset"

    def on_attach(self):
        self._held: Set[str] = set()
        self.listen(KEYDOWN, self._on_keydown)
        self.listen(KEYUP, self._on_keyup)

    def _modifiers(self, data) -> Set[str]:
        mods = set(self._held)
        for flag in ("ctrl", "shift", "alt", "meta"):
            if data.get(flag):
                mods.add(flag)
        return mods

    def _on_keyup(self, event):
        modifier = MODIFIER_KEYS.get(event.data.get("key", ""))
        if modifier:
            self._held.discard(modifier)

    def _on_keydown(self, event):
        if not event.trusted:
            return

        key = event.data.get("key", "")
        modifier = MODIFIER_KEYS.get(key)
        if modifier:
            self._held.add(modifier)
        mods = self._modifiers(event.data)
        self.start_timer(self.RESET, self.settings.KEY_STATE_RESET, self._held.clear)

        if key == "Tab" and "alt" in mods:
            self.emit(ViolationType.TAB_SWITCH, "alt-tab", "Alt+Tab pressed", Confidence.VERY_HIGH)
        elif key == "Tab" and "ctrl" in mods and "shift" in mods:
            self.emit(ViolationType.TAB_SWITCH, "ctrl-shift-tab", "Ctrl+Shift+Tab pressed", Confidence.VERY_HIGH)
        elif modifier == "meta":
            self.start_timer(self.FOLLOWUP + "windows", self.settings.KEY_FOLLOWUP_DELAY, self._check_windows_key)

        if key == "F11":
            self.start_timer(self.FOLLOWUP + "f11", self.settings.KEY_FOLLOWUP_DELAY,
                             lambda: self._check_fullscreen_exit("f11-fullscreen-exit", "F11"))
        elif key == "Escape" and self.platform.is_exclusive():
            self.start_timer(self.FOLLOWUP + "escape", self.settings.KEY_FOLLOWUP_DELAY,
                             lambda: self._check_fullscreen_exit("escape-fullscreen-exit", "Escape"))

        combo = self.restricted_combo(key, mods)
        if combo:
            self.emit(
                ViolationType.KEYBOARD_SHORTCUT,
                f"shortcut:{combo}",
                f"Restricted shortcut {combo} pressed",
                Confidence.VERY_HIGH,
            )

    @staticmethod
    def restricted_combo(key: str, mods: Set[str]) -> Optional[str]:
        """Name of the restricted shortcut formed by key + mods, if any"""
        upper = key.upper() if len(key) == 1 else key
        if key in BARE_SHORTCUT_KEYS:
            return key
        if "ctrl" in mods and "alt" in mods and key not in MODIFIER_KEYS:
            return f"Ctrl+Alt+{upper}"
        if "ctrl" in mods and "shift" in mods and upper in CTRL_SHIFT_SHORTCUT_KEYS:
            return f"Ctrl+Shift+{upper}"
        if "ctrl" in mods and "shift" not in mods and upper in CTRL_SHORTCUT_KEYS:
            return f"Ctrl+{upper}"
        return None

    def _check_windows_key(self):
        if not self.attached:
            return
        if self.platform.is_hidden() or not self.platform.has_focus():
            self.emit(
                ViolationType.TAB_SWITCH,
                "windows-key-navigation",
                "Windows key followed by loss of focus",
                Confidence.HIGH,
            )

    def _check_fullscreen_exit(self, method: str, key: str):
        if not self.attached:
            return
        if not self.platform.is_exclusive():
            self.emit(
                ViolationType.FULLSCREEN_EXIT,
                method,
                f"{key} pressed and fullscreen was exited",
                Confidence.HIGH,
            )
