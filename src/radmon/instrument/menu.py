from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .calibration import CalibrationTable, commit_rows
from .config import (
    CALIBRATION_FACTOR_MAX,
    CALIBRATION_FACTOR_MIN,
    CumDoseMode,
    LiveConfig,
    StagedConfig,
)
from .eventlog import ExportError
from .feedback import Haptic, HapticSink
from .processing import CumulativeDoseState, ManualRunState

logger = logging.getLogger(__name__)

WINDOW_SIZE = 4

PRG_OPTIONS: List[str] = [
    "1. Rad Units",
    "2. Alarm Set Point",
    "3. Calibration Factor",
    "4. Cum Dose Reset",
    "5. Cum Dose Mode",
    "6. Read/Set Lookup Table",
    "7. Data Download",
    "8. Save Parameters",
]
RESET_OPTIONS: List[str] = ["Yes", "No"]
MODE_OPTIONS: List[CumDoseMode] = [CumDoseMode.AUTO, CumDoseMode.MANUAL]


class Button(str, enum.Enum):
    UP = "UP"
    DOWN = "DOWN"
    ENT_SRT = "ENT_SRT"
    EXT_STP = "EXT_STP"
    PRG = "PRG"


class MenuState(str, enum.Enum):
    NORMAL = "normal"
    PRG_MENU = "prg_menu"
    UNIT_SELECT = "unit_select"
    ALARM_SET_POINT_SELECT = "alarm_set_point_select"
    CALIBRATION_EDIT = "calibration_edit"
    CUM_DOSE_RESET_CONFIRM = "cum_dose_reset_confirm"
    CUM_DOSE_MODE_SELECT = "cum_dose_mode_select"
    LOOKUP_TABLE_EDIT = "lookup_table_edit"
    SAVE_CONFIRMATION = "save_confirmation"


EDITOR_STATES = {
    MenuState.UNIT_SELECT,
    MenuState.ALARM_SET_POINT_SELECT,
    MenuState.CALIBRATION_EDIT,
    MenuState.CUM_DOSE_RESET_CONFIRM,
    MenuState.CUM_DOSE_MODE_SELECT,
    MenuState.LOOKUP_TABLE_EDIT,
}

BUTTON_HAPTICS: Dict[Button, Haptic] = {
    Button.UP: Haptic.IMPACT_LIGHT,
    Button.DOWN: Haptic.IMPACT_LIGHT,
    Button.PRG: Haptic.IMPACT_MEDIUM,
    Button.EXT_STP: Haptic.IMPACT_MEDIUM,
    Button.ENT_SRT: Haptic.IMPACT_HEAVY,
}


@dataclass
class ListCursor:
    """
    Circular cursor over `count` options shown through a window of `size` rows.

    `start` is the first visible option; the window always contains `index`.
    """

    count: int
    index: int = 0
    start: int = 0
    size: int = WINDOW_SIZE

    @classmethod
    def seeded(cls, count: int, index: int, size: int = WINDOW_SIZE) -> "ListCursor":
        index = min(max(index, 0), count - 1)
        return cls(count=count, index=index, start=max(0, index - size + 1), size=size)

    def down(self) -> None:
        if self.index == self.count - 1:
            self.index = 0
            self.start = 0
            return
        self.index += 1
        if self.index >= self.start + self.size:
            self.start = self.index - self.size + 1

    def up(self) -> None:
        if self.index == 0:
            self.index = self.count - 1
            self.start = max(0, self.count - self.size)
            return
        self.index -= 1
        if self.index < self.start:
            self.start = self.index

    @property
    def window(self) -> Tuple[int, int]:
        return self.start, min(self.start + self.size, self.count)


@dataclass
class BinaryChoice:
    index: int = 0

    def toggle(self) -> None:
        self.index = 1 - self.index


@dataclass
class DigitEditor:
    """Three-digit `d.dd` editor for the calibration factor."""

    digits: List[int]
    selected: int = 0

    @classmethod
    def from_factor(cls, factor: float) -> "DigitEditor":
        text = f"{factor:.2f}"
        return cls(digits=[int(char) for char in text if char != "."])

    def up(self) -> None:
        if self.selected == 0:
            self.digits[0] = 0 if self.digits[0] == 1 else 1
        else:
            self.digits[self.selected] = (self.digits[self.selected] + 1) % 10

    def down(self) -> None:
        if self.selected == 0:
            self.digits[0] = 1 if self.digits[0] == 0 else 0
        else:
            self.digits[self.selected] = (self.digits[self.selected] - 1 + 10) % 10

    def advance(self) -> None:
        self.selected = (self.selected + 1) % 3

    @property
    def value(self) -> float:
        return float(f"{self.digits[0]}.{self.digits[1]}{self.digits[2]}")


@dataclass
class LookupEditor:
    """Working copy of the calibration table with inline cell entry."""

    rows: List[List[float]]
    editing: Optional[Tuple[int, int]] = None
    buffer: str = ""

    @classmethod
    def from_table(cls, table: CalibrationTable, blank_rows: int = 2) -> "LookupEditor":
        rows: List[List[float]] = [[point.cps, point.dose] for point in table]
        rows.extend([0, 0] for _ in range(blank_rows))
        return cls(rows=rows)

    def select_cell(self, row: int, col: int) -> None:
        if not 0 <= row < len(self.rows) or col not in (0, 1):
            raise IndexError(f"no lookup cell at row={row} col={col}")
        value = self.rows[row][col]
        self.editing = (row, col)
        self.buffer = str(int(value)) if float(value).is_integer() else str(value)

    def edit(self, text: str) -> str:
        self.buffer = re.sub(r"[^0-9]", "", text)
        return self.buffer

    def commit_cell(self) -> None:
        if self.editing is not None and self.buffer:
            try:
                value = int(self.buffer)
            except ValueError:
                logger.debug("Ignoring unparsable cell input %r", self.buffer)
            else:
                row, col = self.editing
                self.rows[row][col] = value
        self.editing = None
        self.buffer = ""

    def pairs(self) -> List[Tuple[int, float]]:
        return [(int(cps), dose) for cps, dose in self.rows]


@dataclass
class Notice:
    title: str
    message: str


@dataclass
class MenuView:
    """What the current state wants shown; rendering belongs to the display collaborator."""

    state: MenuState
    title: str
    rows: List[str] = field(default_factory=list)
    selected: Optional[int] = None


class MenuController:
    """
    Front-panel state machine.

    Exactly one `MenuState` is active. Edits are staged while the PRG menu is
    open and reach the live configuration only through Save Parameters, the
    lookup-table Set action or the cumulative dose reset.
    """

    def __init__(
        self,
        live: LiveConfig,
        dose: CumulativeDoseState,
        *,
        unit_options: Sequence[str],
        alarm_set_point_options: Sequence[float],
        exporter: Callable[[], Path],
        haptics: HapticSink,
        on_commit: Optional[Callable[[], None]] = None,
    ):
        self.live = live
        self.dose = dose
        self.unit_options = list(unit_options)
        self.alarm_set_point_options = list(alarm_set_point_options)
        self._exporter = exporter
        self._haptics = haptics
        self._on_commit = on_commit
        self.state = MenuState.NORMAL
        self.staged: Optional[StagedConfig] = None
        self.prg = ListCursor(count=len(PRG_OPTIONS))
        self.unit_cursor: Optional[ListCursor] = None
        self.alarm_cursor: Optional[ListCursor] = None
        self.choice = BinaryChoice()
        self.digits: Optional[DigitEditor] = None
        self.lookup: Optional[LookupEditor] = None
        self.notices: List[Notice] = []
        self._handlers: Dict[Button, Callable[[], None]] = {
            Button.PRG: self._on_prg,
            Button.UP: self._on_up,
            Button.DOWN: self._on_down,
            Button.ENT_SRT: self._on_ent,
            Button.EXT_STP: self._on_ext,
        }

    def press(self, button: Button) -> MenuState:
        self._haptics.trigger(BUTTON_HAPTICS[button])
        before = self.state
        self._handlers[button]()
        if self.state is not before:
            logger.debug("Menu %s -> %s on %s", before.value, self.state.value, button.value)
        return self.state

    # -- buttons ---------------------------------------------------------

    def _on_prg(self) -> None:
        if self.state is MenuState.NORMAL:
            self.staged = self.live.staged()
            self.prg = ListCursor(count=len(PRG_OPTIONS))
            self.state = MenuState.PRG_MENU
        elif self.state is MenuState.PRG_MENU:
            self._close_menu()

    def _on_up(self) -> None:
        self._move(up=True)

    def _on_down(self) -> None:
        self._move(up=False)

    def _move(self, *, up: bool) -> None:
        cursor = {
            MenuState.PRG_MENU: self.prg,
            MenuState.UNIT_SELECT: self.unit_cursor,
            MenuState.ALARM_SET_POINT_SELECT: self.alarm_cursor,
        }.get(self.state)
        if cursor is not None:
            if up:
                cursor.up()
            else:
                cursor.down()
        elif self.state in (MenuState.CUM_DOSE_RESET_CONFIRM, MenuState.CUM_DOSE_MODE_SELECT):
            self.choice.toggle()
        elif self.state is MenuState.CALIBRATION_EDIT and self.digits is not None:
            if up:
                self.digits.up()
            else:
                self.digits.down()

    def _on_ent(self) -> None:
        state = self.state
        staged = self.staged
        if state is MenuState.NORMAL:
            self._manual_start()
        elif state is MenuState.PRG_MENU:
            self._open_option(self.prg.index)
        elif state is MenuState.UNIT_SELECT and staged and self.unit_cursor:
            staged.unit = self.unit_options[self.unit_cursor.index]
            self._back_to_prg()
        elif state is MenuState.ALARM_SET_POINT_SELECT and staged and self.alarm_cursor:
            staged.alarm_set_point = self.alarm_set_point_options[self.alarm_cursor.index]
            self._back_to_prg()
        elif state is MenuState.CALIBRATION_EDIT and self.digits is not None:
            self.digits.advance()
        elif state is MenuState.CUM_DOSE_RESET_CONFIRM:
            if RESET_OPTIONS[self.choice.index] == "Yes":
                self.dose.reset()
                logger.info("Cumulative dose reset")
            self._back_to_prg()
        elif state is MenuState.CUM_DOSE_MODE_SELECT and staged:
            staged.cum_dose_mode = MODE_OPTIONS[self.choice.index]
            self._back_to_prg()
        elif state is MenuState.SAVE_CONFIRMATION:
            self.state = MenuState.NORMAL

    def _on_ext(self) -> None:
        state = self.state
        if state is MenuState.CALIBRATION_EDIT:
            self._confirm_calibration()
        elif state in EDITOR_STATES:
            self._back_to_prg()
        elif state is MenuState.SAVE_CONFIRMATION:
            self.state = MenuState.NORMAL
        elif state is MenuState.PRG_MENU:
            self._close_menu()
        elif self.live.cum_dose_mode is CumDoseMode.MANUAL:
            self.dose.manual_run_state = ManualRunState.ARMED_RESTART
            logger.info("Manual dose integration stopped")

    # -- transitions -----------------------------------------------------

    def _open_option(self, option: int) -> None:
        staged = self.staged
        assert staged is not None
        if option == 0:
            index = self.unit_options.index(staged.unit) if staged.unit in self.unit_options else 0
            self.unit_cursor = ListCursor.seeded(len(self.unit_options), index)
            self.state = MenuState.UNIT_SELECT
        elif option == 1:
            options = self.alarm_set_point_options
            closest = min(range(len(options)), key=lambda i: abs(options[i] - staged.alarm_set_point))
            self.alarm_cursor = ListCursor.seeded(len(options), closest)
            self.state = MenuState.ALARM_SET_POINT_SELECT
        elif option == 2:
            self.digits = DigitEditor.from_factor(staged.calibration_factor)
            self.state = MenuState.CALIBRATION_EDIT
        elif option == 3:
            self.choice = BinaryChoice()
            self.state = MenuState.CUM_DOSE_RESET_CONFIRM
        elif option == 4:
            self.choice = BinaryChoice(index=MODE_OPTIONS.index(staged.cum_dose_mode))
            self.state = MenuState.CUM_DOSE_MODE_SELECT
        elif option == 5:
            self.lookup = LookupEditor.from_table(self.live.calibration_table)
            self.state = MenuState.LOOKUP_TABLE_EDIT
        elif option == 6:
            self._export()
            self._close_menu()
        elif option == 7:
            self.live.apply(staged)
            logger.info(
                "Parameters saved (unit=%s set_point=%.1f factor=%.2f mode=%s)",
                staged.unit,
                staged.alarm_set_point,
                staged.calibration_factor,
                staged.cum_dose_mode.value,
            )
            self._committed()
            self.staged = None
            self.state = MenuState.SAVE_CONFIRMATION

    def _back_to_prg(self) -> None:
        self.unit_cursor = None
        self.alarm_cursor = None
        self.digits = None
        self.lookup = None
        self.state = MenuState.PRG_MENU

    def _close_menu(self) -> None:
        self.staged = None
        self.state = MenuState.NORMAL

    def _confirm_calibration(self) -> None:
        assert self.digits is not None and self.staged is not None
        value = self.digits.value
        if value < CALIBRATION_FACTOR_MIN or value > CALIBRATION_FACTOR_MAX:
            logger.warning("Rejected calibration factor %.2f", value)
            self._notify(
                "Invalid Value",
                f"Calibration factor must be between {CALIBRATION_FACTOR_MIN} and {CALIBRATION_FACTOR_MAX}",
            )
            return
        self.staged.calibration_factor = value
        self._back_to_prg()

    def _manual_start(self) -> None:
        if self.live.cum_dose_mode is not CumDoseMode.MANUAL:
            return
        run_state = self.dose.manual_run_state
        if run_state is not ManualRunState.STOPPED:
            # Both a running restart and an armed restart begin from zero.
            self.dose.reset()
        self.dose.manual_run_state = ManualRunState.RUNNING
        logger.info("Manual dose integration running (was %s)", run_state.value)

    def _export(self) -> None:
        try:
            self._exporter()
        except ExportError as exc:
            logger.warning("Log export failed: %s", exc)
            self._notify("Export Failed", "Could not save or share the CSV file.")

    def _committed(self) -> None:
        if self._on_commit is not None:
            self._on_commit()

    def _notify(self, title: str, message: str) -> None:
        self.notices.append(Notice(title=title, message=message))

    def pop_notices(self) -> List[Notice]:
        """Hand pending notices to the presenter and clear them."""
        pending, self.notices = self.notices, []
        return pending

    # -- lookup table ----------------------------------------------------

    def _require_lookup(self) -> LookupEditor:
        if self.state is not MenuState.LOOKUP_TABLE_EDIT or self.lookup is None:
            raise RuntimeError("Lookup table editor is not open")
        return self.lookup

    def select_cell(self, row: int, col: int) -> str:
        lookup = self._require_lookup()
        self._haptics.trigger(Haptic.IMPACT_LIGHT)
        lookup.commit_cell()
        lookup.select_cell(row, col)
        return lookup.buffer

    def edit_cell(self, text: str) -> str:
        return self._require_lookup().edit(text)

    def commit_cell(self) -> None:
        self._require_lookup().commit_cell()

    def set_calibration(self) -> Optional[CalibrationTable]:
        lookup = self._require_lookup()
        lookup.commit_cell()
        try:
            table = commit_rows(lookup.pairs())
        except ValueError as exc:
            logger.warning("Rejected calibration table: %s", exc)
            self._notify("Invalid Table", str(exc))
            return None
        self.live.calibration_table = table
        self._committed()
        self._notify("Calibration Updated", "The new CPS to Dose mapping has been applied")
        self._back_to_prg()
        return table

    # -- view ------------------------------------------------------------

    def view(self) -> MenuView:
        state = self.state
        if state is MenuState.PRG_MENU:
            return self._list_view("PRG", PRG_OPTIONS, self.prg)
        if state is MenuState.UNIT_SELECT and self.unit_cursor:
            return self._list_view("Rad Units", self.unit_options, self.unit_cursor)
        if state is MenuState.ALARM_SET_POINT_SELECT and self.alarm_cursor:
            labels = [f"{value:.1f} mR/h" for value in self.alarm_set_point_options]
            return self._list_view("Alarm Set Point", labels, self.alarm_cursor)
        if state is MenuState.CALIBRATION_EDIT and self.digits:
            digits = self.digits.digits
            return MenuView(
                state, "Calibration Factor", [f"{digits[0]}.{digits[1]}{digits[2]}"], self.digits.selected
            )
        if state is MenuState.CUM_DOSE_RESET_CONFIRM:
            return MenuView(state, "Cum Dose Reset", list(RESET_OPTIONS), self.choice.index)
        if state is MenuState.CUM_DOSE_MODE_SELECT:
            return MenuView(state, "Cum Dose Mode", [mode.value for mode in MODE_OPTIONS], self.choice.index)
        if state is MenuState.LOOKUP_TABLE_EDIT and self.lookup:
            rows = [f"{int(cps)},{dose:g}" for cps, dose in self.lookup.rows]
            selected = self.lookup.editing[0] if self.lookup.editing else None
            return MenuView(state, "CPS vs Dose Calibration Table", rows, selected)
        if state is MenuState.SAVE_CONFIRMATION:
            return MenuView(state, "Save Parameters", ["Result: Saved"])
        return MenuView(state, "Normal")

    def _list_view(self, title: str, labels: Sequence[str], cursor: ListCursor) -> MenuView:
        start, end = cursor.window
        return MenuView(self.state, title, list(labels[start:end]), cursor.index - start)
