"""
Interactive device selection
Command parsing and the selection state machine that turns operator input
into a validated, duplicate-free SelectionSet
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple, Union

from .device_inventory import DeviceInventory, InventorySnapshot
from .error_handler import EnumerationError, InvalidSelectionInput, error_handler
from .models import ClassifiedDevice, SafetyLevel, SelectionSet, group_by_level
from .safety_classifier import DEFAULT_POLICY, SafetyPolicy, classify_all

logger = logging.getLogger(__name__)

SYSTEM_ACKNOWLEDGMENT = "YES"

LEVEL_ICONS = {
    SafetyLevel.SAFE: "🟢",
    SafetyLevel.CAUTION: "🟡",
    SafetyLevel.DANGEROUS: "🔴",
    SafetyLevel.SYSTEM: "⛔",
}

@dataclass(frozen=True)
class SelectByIndices:
    indices: Tuple[int, ...]

@dataclass(frozen=True)
class SelectAllSafe:
    pass

@dataclass(frozen=True)
class SelectAllNonDangerous:
    pass

@dataclass(frozen=True)
class Refresh:
    pass

@dataclass(frozen=True)
class Quit:
    pass

@dataclass(frozen=True)
class Invalid:
    reason: str

Command = Union[SelectByIndices, SelectAllSafe, SelectAllNonDangerous, Refresh, Quit, Invalid]

KEYWORDS = {
    "all-safe": SelectAllSafe(),
    "all-non-dangerous": SelectAllNonDangerous(),
    "refresh": Refresh(),
    "r": Refresh(),
    "quit": Quit(),
    "q": Quit(),
}

def parse_command(text: str) -> Command:
    """Parse one line of operator input

    Keywords are case-insensitive. Anything else must be whitespace
    separated positive integers; one bad token rejects the whole line.
    """
    stripped = (text or "").strip()
    if not stripped:
        return Invalid("No input given")

    keyword = KEYWORDS.get(stripped.lower())
    if keyword is not None:
        return keyword

    indices = []
    for token in stripped.split():
        # ASCII digits only; int() also accepts "+2" and "1_0"
        if not (token.isascii() and token.isdigit()):
            return Invalid(f"'{token}' is not a device number")
        number = int(token)
        if number < 1:
            return Invalid(f"'{token}' is not a device number")
        indices.append(number)
    return SelectByIndices(tuple(indices))

class SessionPhase(Enum):
    SHOW_LIST = "show_list"
    AWAIT_INPUT = "await_input"
    VALIDATING = "validating"
    REFRESH = "refresh"
    ACCEPTED = "accepted"
    QUIT = "quit"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionPhase.ACCEPTED, SessionPhase.QUIT)

@dataclass(frozen=True)
class SessionState:
    """Immutable state of a selection session; every transition builds a new one"""
    phase: SessionPhase
    snapshot: InventorySnapshot
    devices: Tuple[ClassifiedDevice, ...] = ()
    selection: SelectionSet = field(default_factory=SelectionSet)
    command: Optional[Command] = None
    message: Optional[str] = None

    def selected_devices(self) -> List[ClassifiedDevice]:
        """Selected devices in selection order"""
        by_path = {entry.path: entry for entry in self.devices}
        return [by_path[path] for path in self.selection if path in by_path]

def resolve_command(command: Command, devices: Tuple[ClassifiedDevice, ...],
                    acknowledge: Callable[[ClassifiedDevice], bool] = None) -> SelectionSet:
    """Resolve a selection command against the devices currently shown

    ``acknowledge`` is asked once for each SYSTEM device chosen by index;
    a refusal drops that device only.

    Raises:
        InvalidSelectionInput: bad or out-of-range input, or nothing selected
    """
    selection = SelectionSet()

    if isinstance(command, Invalid):
        raise InvalidSelectionInput(command.reason)

    if isinstance(command, SelectByIndices):
        out_of_range = [i for i in command.indices if i > len(devices)]
        if out_of_range:
            if devices:
                raise InvalidSelectionInput(
                    f"Invalid number: {out_of_range[0]} (valid range: 1-{len(devices)})")
            raise InvalidSelectionInput("No devices to select from")

        for index in command.indices:
            entry = devices[index - 1]
            if entry.path in selection:
                continue
            if entry.level == SafetyLevel.SYSTEM and acknowledge is not None:
                if not acknowledge(entry):
                    logger.info(f"SYSTEM device {entry.path} dropped from selection")
                    continue
            selection = selection.with_path(entry.path)

    elif isinstance(command, SelectAllSafe):
        for entry in devices:
            if entry.level == SafetyLevel.SAFE:
                selection = selection.with_path(entry.path)

    elif isinstance(command, SelectAllNonDangerous):
        for entry in devices:
            if entry.level <= SafetyLevel.CAUTION:
                selection = selection.with_path(entry.path)

    else:
        raise InvalidSelectionInput(f"Not a selection command: {command}")

    if not selection:
        raise InvalidSelectionInput("No drives selected")
    return selection

def render_device_list(devices: Tuple[ClassifiedDevice, ...]) -> List[str]:
    """Numbered device table lines with level and reasons"""
    if not devices:
        return ["No block devices found."]

    lines = [f"{'#':>3}  {'Device':<16} {'Size':<10} {'Bus':<6} {'Model':<28} {'Level':<10}",
             "-" * 80]
    for number, entry in enumerate(devices, start=1):
        device = entry.device
        lines.append(
            f"{number:>3}  {device.path:<16} {device.size_formatted:<10} "
            f"{device.bus_type.name:<6} {device.display_name[:28]:<28} "
            f"{LEVEL_ICONS[entry.level]} {entry.level.label}"
        )
        for description in entry.assessment.descriptions:
            lines.append(f"{'':<7}- {description}")

    groups = group_by_level(devices)
    counts = ", ".join(f"{len(groups[level])} {level.label}" for level in SafetyLevel)
    lines.append("-" * 80)
    lines.append(f"{len(devices)} device(s): {counts}")
    return lines

SELECTION_HELP = [
    "Selection options:",
    "  1 3 4              select devices by number",
    "  all-safe           select every SAFE device",
    "  all-non-dangerous  select every SAFE or CAUTION device",
    "  refresh (r)        rescan devices",
    "  quit (q)           exit without wiping",
]

class SelectionSession:
    """Drives the selection state machine against injected input and output"""

    def __init__(self, inventory: DeviceInventory, snapshot: InventorySnapshot,
                 input_fn: Callable[[str], str] = input,
                 output_fn: Callable[[str], None] = print,
                 policy: SafetyPolicy = DEFAULT_POLICY,
                 require_system_acknowledgment: bool = True):
        self.inventory = inventory
        self.initial_snapshot = snapshot
        self.input_fn = input_fn
        self.output_fn = output_fn
        self.policy = policy
        self.require_system_acknowledgment = require_system_acknowledgment

    def initial_state(self, message: Optional[str] = None) -> SessionState:
        return SessionState(SessionPhase.SHOW_LIST, self.initial_snapshot, message=message)

    def run(self, message: Optional[str] = None) -> SessionState:
        """Step until the session is ACCEPTED or QUIT"""
        state = self.initial_state(message)
        while not state.phase.is_terminal:
            state = self.step(state)
        logger.info(f"Selection session ended in {state.phase.name} with {len(state.selection)} device(s)")
        return state

    def step(self, state: SessionState) -> SessionState:
        handlers = {
            SessionPhase.SHOW_LIST: self._show_list,
            SessionPhase.AWAIT_INPUT: self._await_input,
            SessionPhase.VALIDATING: self._validate,
            SessionPhase.REFRESH: self._refresh,
        }
        return handlers[state.phase](state)

    def _show_list(self, state: SessionState) -> SessionState:
        """Reclassify against fresh host facts and render the list"""
        host_facts = self.inventory.host_facts(state.snapshot)
        devices = tuple(classify_all(state.snapshot.devices, host_facts, self.policy))

        self.output_fn("")
        self.output_fn("💽 Block Devices:")
        for line in render_device_list(devices):
            self.output_fn(line)
        self.output_fn("")
        for line in SELECTION_HELP:
            self.output_fn(line)
        if state.message:
            self.output_fn(f"\n❌ {state.message}")

        return dataclasses.replace(state, phase=SessionPhase.AWAIT_INPUT, devices=devices,
                                   selection=SelectionSet(), command=None, message=None)

    def _await_input(self, state: SessionState) -> SessionState:
        try:
            text = self.input_fn("\nYour selection: ")
        except EOFError:
            return dataclasses.replace(state, phase=SessionPhase.QUIT)

        command = parse_command(text)
        if isinstance(command, Quit):
            return dataclasses.replace(state, phase=SessionPhase.QUIT, command=command)
        if isinstance(command, Refresh):
            return dataclasses.replace(state, phase=SessionPhase.REFRESH, command=command)
        return dataclasses.replace(state, phase=SessionPhase.VALIDATING, command=command)

    def _validate(self, state: SessionState) -> SessionState:
        acknowledge = self._acknowledge_system_device if self.require_system_acknowledgment else None
        try:
            selection = resolve_command(state.command, state.devices, acknowledge)
        except InvalidSelectionInput as e:
            error_handler.handle_error(e, {"input": repr(state.command)})
            return dataclasses.replace(state, phase=SessionPhase.SHOW_LIST, message=str(e))

        return dataclasses.replace(state, phase=SessionPhase.ACCEPTED, selection=selection)

    def _refresh(self, state: SessionState) -> SessionState:
        self.output_fn("🔄 Rescanning devices...")
        try:
            snapshot = self.inventory.scan()
        except EnumerationError as e:
            error_handler.handle_error(e, {"operation": "refresh"})
            return dataclasses.replace(state, phase=SessionPhase.SHOW_LIST,
                                       message=f"Refresh failed, showing previous scan: {e}")
        return dataclasses.replace(state, phase=SessionPhase.SHOW_LIST, snapshot=snapshot)

    def _acknowledge_system_device(self, entry: ClassifiedDevice) -> bool:
        self.output_fn(f"\n⛔ {entry.path} is a SYSTEM device: {', '.join(entry.assessment.descriptions)}")
        try:
            answer = self.input_fn(f"Type {SYSTEM_ACKNOWLEDGMENT} to keep it in the selection: ")
        except EOFError:
            return False
        return answer.strip() == SYSTEM_ACKNOWLEDGMENT
