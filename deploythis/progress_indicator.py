"""
Terminal output shared by every dt command: colors, numbered workflow steps,
status-prefixed messages and the aligned tables of `dt status`, `dt iam` and
`dt pipelines`.
"""

from typing import Any, Dict, List


class Colors:
    """ANSI color codes for terminal output"""

    HEADER = "\033[95m"
    OKBLUE = "\033[94m"
    OKCYAN = "\033[96m"
    OKGREEN = "\033[92m"
    WARNING = "\033[93m"
    FAIL = "\033[91m"
    ENDC = "\033[0m"
    BOLD = "\033[1m"
    UNDERLINE = "\033[4m"


class ProgressIndicator:
    """
    Step counter for the deploy / rollback / init workflows.
    With total_steps=0 it only prints messages and steps are not numbered.
    """

    def __init__(self, total_steps: int = 0):
        self.total_steps = total_steps
        self.current_step = 0

    def header(self, title: str):
        print(f"\n{Colors.HEADER}{Colors.BOLD}{title}{Colors.ENDC}")

    def next_step(self, description: str):
        self.current_step += 1
        if self.total_steps:
            label = f"[{self.current_step}/{self.total_steps}] {description}"
        else:
            label = description
        print(f"\n{Colors.OKBLUE}{label}{Colors.ENDC}")

    def success(self, message: str):
        print(f"{Colors.OKGREEN}[OK] {message}{Colors.ENDC}")

    def warning(self, message: str):
        print(f"{Colors.WARNING}[WARNING] {message}{Colors.ENDC}")

    def error(self, message: str):
        print(f"{Colors.FAIL}[ERROR] {message}{Colors.ENDC}")

    def info(self, message: str):
        print(f"{Colors.OKCYAN}[INFO] {message}{Colors.ENDC}")

    def table(self, rows: List[Dict[str, Any]], columns: List[str]):
        """Print rows as a plain aligned table"""
        if not rows:
            print("   (none)")
            return

        widths = {
            column: max(len(column), *(len(str(row.get(column, ""))) for row in rows))
            for column in columns
        }
        header = "  ".join(column.ljust(widths[column]) for column in columns)
        print(f"   {Colors.BOLD}{header}{Colors.ENDC}")
        print("   " + "  ".join("-" * widths[column] for column in columns))
        for row in rows:
            print(
                "   "
                + "  ".join(
                    str(row.get(column, "")).ljust(widths[column]) for column in columns
                )
            )
