"""
Interactive questions asked on the terminal.
"""

from typing import List, Optional

from .progress_indicator import Colors

EXIT_CHOICE = "exit"


def select(message: str, choices: List[str], allow_exit: bool = True) -> Optional[str]:
    """
    Ask the user to pick one of the choices by number or name.
    Returns None when the user picks exit or cancels with Ctrl-C / EOF.
    """
    options = list(choices) + ([EXIT_CHOICE] if allow_exit else [])

    while True:
        print(f"\n{Colors.OKCYAN}{message}{Colors.ENDC}")
        for index, option in enumerate(options, start=1):
            print(f"{index}. {option}")

        try:
            choice = input(
                f"\n{Colors.BOLD}Enter your choice (1-{len(options)}): {Colors.ENDC}"
            ).strip()
        except (EOFError, KeyboardInterrupt):
            print(f"\n{Colors.WARNING}Cancelled by user{Colors.ENDC}")
            return None

        if choice.isdigit() and 1 <= int(choice) <= len(options):
            selected = options[int(choice) - 1]
        elif choice in options:
            selected = choice
        else:
            print(
                f"{Colors.WARNING}Invalid choice. "
                f"Please enter a number between 1 and {len(options)}.{Colors.ENDC}"
            )
            continue

        return None if selected == EXIT_CHOICE else selected


def confirm(message: str, default: bool = False) -> bool:
    """Yes/no question; Ctrl-C / EOF count as no"""
    suffix = "(Y/n)" if default else "(y/N)"
    try:
        response = input(f"\n{Colors.BOLD}{message} {suffix}: {Colors.ENDC}").strip().lower()
    except (EOFError, KeyboardInterrupt):
        print(f"\n{Colors.WARNING}Cancelled by user{Colors.ENDC}")
        return False

    if not response:
        return default
    return response in ["y", "yes"]
