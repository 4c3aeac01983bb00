# src/csinstaller/menu.py

from typing import Callable, List, Optional, Sequence

from pick import pick

from csinstaller.build_tool import Device
from csinstaller.ranking import Candidate


def format_candidates(candidates: Sequence[Candidate]) -> List[str]:
    """Return one display line per candidate, e.g. '1 - v4.2.1-Prod'."""
    return [f"{candidate.index} - {candidate.label}" for candidate in candidates]


def prompt_for_selection(
    candidates: Sequence[Candidate],
    input_func: Callable[[str], str] = input,
    output_func: Callable[[str], None] = print,
) -> Candidate:
    """
    Show the candidate list and read a selection index until a valid one is given.

    Any input that is not an integer in [1, sentinel index] is rejected and the
    prompt is repeated. End of input counts as choosing the sentinel.

    Parameters:
        candidates: The ranked candidates, ending with the sentinel.
        input_func: Reads one line of operator input.
        output_func: Writes one line of output.

    Returns:
        Candidate: The chosen candidate (possibly the sentinel).
    """
    by_index = {candidate.index: candidate for candidate in candidates}
    highest = max(by_index)

    output_func("Select the version of CommandStation-EX to install:")
    for line in format_candidates(candidates):
        output_func(line)

    while True:
        try:
            answer = input_func(f"Enter a number between 1 and {highest}: ")
        except EOFError:
            return by_index[highest]
        try:
            choice = int(answer.strip())
        except ValueError:
            output_func(f"'{answer.strip()}' is not a number.")
            continue
        if choice in by_index:
            return by_index[choice]
        output_func(f"{choice} is not a valid choice.")


def select_device(devices: Sequence[Device]) -> Optional[Device]:
    """
    Present an interactive menu of connected devices and return the chosen one.

    Returns:
        Device | None: The selected device, or None if there are no devices.
    """
    if not devices:
        print("No connected devices found.")
        return None
    title = "Select the device to upload to (press ENTER to confirm):"
    options = [device.label for device in devices]
    _option, index = pick(options, title, indicator="*")
    return devices[index]
