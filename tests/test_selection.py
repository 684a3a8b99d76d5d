from hypothesis import given, strategies as st

import pytest

from drive_shredder.core.device_inventory import DeviceInventory
from drive_shredder.core.error_handler import InvalidSelectionInput
from drive_shredder.core.models import BusType, SafetyLevel
from drive_shredder.core.platforms.base_handler import BlockDeviceEntry, DeviceAttributes
from drive_shredder.core.selection import (
    Invalid, Quit, Refresh, SelectAllNonDangerous, SelectAllSafe, SelectByIndices,
    SelectionSession, SessionPhase, parse_command, render_device_list, resolve_command,
)

from conftest import FakeHandler, make_classified, make_device

FIVE_PATHS = ["/dev/sdb", "/dev/sdc", "/dev/sdd", "/dev/sde", "/dev/sdf"]

def scripted(answers):
    answers = list(answers)

    def input_fn(prompt=""):
        if not answers:
            raise EOFError
        return answers.pop(0)
    return input_fn

def make_session(devices, answers, output=None, **kwargs):
    handler = FakeHandler(devices)
    inventory = DeviceInventory(handler)
    snapshot = inventory.scan()
    output = output if output is not None else []
    session = SelectionSession(inventory, snapshot, input_fn=scripted(answers),
                               output_fn=output.append, **kwargs)
    return session, handler

def five_usb_devices():
    return [make_device(path, bus_type=BusType.USB) for path in FIVE_PATHS]

# ----------------- parse_command -----------------

@pytest.mark.parametrize("text,expected", [
    ("1 3 4", SelectByIndices((1, 3, 4))),
    ("  2  ", SelectByIndices((2,))),
    ("all-safe", SelectAllSafe()),
    ("ALL-SAFE", SelectAllSafe()),
    ("all-non-dangerous", SelectAllNonDangerous()),
    ("r", Refresh()),
    ("refresh", Refresh()),
    ("q", Quit()),
    ("quit", Quit()),
])
def test_parse_command(text, expected):
    assert parse_command(text) == expected

@pytest.mark.parametrize("text", ["", "   ", "0", "-1", "1 x", "one", "1,2", "all",
                                  "1_0", "+2", "2 \u0663", "1.0"])
def test_parse_command_rejects_bad_input(text):
    assert isinstance(parse_command(text), Invalid)

# ----------------- resolve_command -----------------

def test_duplicates_collapse():
    devices = tuple(make_classified(p) for p in FIVE_PATHS)
    selection = resolve_command(parse_command("2 2 3"), devices)
    assert selection.paths == ("/dev/sdc", "/dev/sdd")

def test_out_of_range_rejects_whole_batch():
    devices = tuple(make_classified(p) for p in FIVE_PATHS)
    with pytest.raises(InvalidSelectionInput, match="valid range: 1-5"):
        resolve_command(parse_command("1 9"), devices)

def test_all_safe_and_all_non_dangerous():
    devices = (
        make_classified("/dev/sdb", SafetyLevel.SAFE),
        make_classified("/dev/sdc", SafetyLevel.CAUTION),
        make_classified("/dev/sdd", SafetyLevel.DANGEROUS),
        make_classified("/dev/sde", SafetyLevel.SYSTEM),
    )
    assert resolve_command(SelectAllSafe(), devices).paths == ("/dev/sdb",)
    assert resolve_command(SelectAllNonDangerous(), devices).paths == ("/dev/sdb", "/dev/sdc")

def test_all_safe_with_no_safe_devices_is_invalid():
    devices = (make_classified("/dev/sdc", SafetyLevel.CAUTION),)
    with pytest.raises(InvalidSelectionInput, match="No drives selected"):
        resolve_command(SelectAllSafe(), devices)

def test_system_device_dropped_without_acknowledgment():
    devices = (
        make_classified("/dev/sdb", SafetyLevel.SAFE),
        make_classified("/dev/sda", SafetyLevel.SYSTEM),
    )
    asked = []

    def decline(entry):
        asked.append(entry.path)
        return False

    selection = resolve_command(parse_command("1 2 2"), devices, decline)
    assert selection.paths == ("/dev/sdb",)
    assert asked == ["/dev/sda"]

def test_only_system_device_declined_is_invalid():
    devices = (make_classified("/dev/sda", SafetyLevel.SYSTEM),)
    with pytest.raises(InvalidSelectionInput):
        resolve_command(parse_command("1"), devices, lambda entry: False)

@given(st.lists(st.lists(st.integers(min_value=1, max_value=5), min_size=1, max_size=10), min_size=1, max_size=5))
def test_selection_never_contains_duplicates(batches):
    devices = tuple(make_classified(p) for p in FIVE_PATHS)
    for batch in batches:
        command = parse_command(" ".join(str(i) for i in batch))
        selection = resolve_command(command, devices)
        assert len(selection.paths) == len(set(selection.paths))
        assert set(selection.paths) == {FIVE_PATHS[i - 1] for i in batch}

# ----------------- SelectionSession -----------------

def test_session_accepts_indices():
    session, _ = make_session(five_usb_devices(), ["2 2 3"])
    state = session.run()
    assert state.phase == SessionPhase.ACCEPTED
    assert state.selection.paths == ("/dev/sdc", "/dev/sdd")
    assert [entry.path for entry in state.selected_devices()] == ["/dev/sdc", "/dev/sdd"]

def test_out_of_range_returns_to_show_list_with_empty_selection():
    session, _ = make_session(five_usb_devices(), ["9"])
    state = session.initial_state()
    state = session.step(state)
    assert state.phase == SessionPhase.AWAIT_INPUT
    state = session.step(state)
    assert state.phase == SessionPhase.VALIDATING
    state = session.step(state)
    assert state.phase == SessionPhase.SHOW_LIST
    assert len(state.selection) == 0
    assert "out of range" in state.message or "valid range" in state.message

def test_invalid_then_valid_input():
    output = []
    session, _ = make_session(five_usb_devices(), ["9", "1"], output=output)
    state = session.run()
    assert state.selection.paths == ("/dev/sdb",)
    assert any("valid range" in line for line in output)

def test_quit_and_end_of_input():
    session, _ = make_session(five_usb_devices(), ["q"])
    assert session.run().phase == SessionPhase.QUIT
    session, _ = make_session(five_usb_devices(), [])
    assert session.run().phase == SessionPhase.QUIT

def test_refresh_rescans_devices():
    session, handler = make_session(five_usb_devices()[:2], ["r", "3"])
    handler.entries.append(BlockDeviceEntry("/dev/sdz", 8_000_000_000, "disk"))
    handler.attributes["/dev/sdz"] = DeviceAttributes(bus_type=BusType.USB)
    state = session.run()
    assert state.phase == SessionPhase.ACCEPTED
    assert state.selection.paths == ("/dev/sdz",)

def test_failed_refresh_keeps_previous_snapshot():
    output = []
    session, handler = make_session(five_usb_devices()[:2], ["r", "2"], output=output)
    handler.enumeration_error = "lsblk timed out"
    state = session.run()
    assert state.selection.paths == ("/dev/sdc",)
    assert any("Refresh failed" in line for line in output)

def test_devices_are_reclassified_each_time_the_list_is_shown():
    devices = [make_device("/dev/sdb", bus_type=BusType.USB)]
    session, handler = make_session(devices, ["r", "1"])
    state = session.step(session.initial_state())
    assert state.devices[0].level == SafetyLevel.SAFE

    handler.mount_table = {"/dev/sdb": ("/",)}
    state = session.step(state)
    assert state.phase == SessionPhase.REFRESH
    state = session.step(state)
    assert state.phase == SessionPhase.SHOW_LIST
    state = session.step(state)
    assert state.phase == SessionPhase.AWAIT_INPUT
    assert state.devices[0].level == SafetyLevel.SYSTEM

def test_system_device_requires_yes():
    devices = [make_device("/dev/sdb", bus_type=BusType.USB), make_device("/dev/sdc", bus_type=BusType.USB)]
    session, handler = make_session(devices, ["1 2", "YES"])
    handler.mount_table = {"/dev/sdc": ("/home",)}
    state = session.run()
    assert state.selection.paths == ("/dev/sdb", "/dev/sdc")

def test_system_device_declined_is_dropped():
    devices = [make_device("/dev/sdb", bus_type=BusType.USB), make_device("/dev/sdc", bus_type=BusType.USB)]
    session, handler = make_session(devices, ["1 2", "yes"])
    handler.mount_table = {"/dev/sdc": ("/home",)}
    state = session.run()
    assert state.selection.paths == ("/dev/sdb",)

def test_render_device_list_counts_levels():
    devices = (make_classified("/dev/sdb"), make_classified("/dev/sdc", SafetyLevel.DANGEROUS))
    lines = render_device_list(devices)
    assert any("/dev/sdb" in line for line in lines)
    assert "2 device(s): 1 SAFE, 0 CAUTION, 1 DANGEROUS, 0 SYSTEM" in lines[-1]
