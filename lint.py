#!/usr/bin/env python3
"""
Lint and test runner for DeployThis.

Runs, in order and stopping at the first failure:
1. isort   - import order
2. black   - formatting
3. flake8  - linting
4. pytest  - unit tests

Usage:
    python lint.py           # fix imports / formatting, then lint and test
    python lint.py --check   # only report, change nothing (CI)
"""

import argparse
import shutil
import subprocess
import sys
from typing import List, Tuple


def run_command(command: List[str], description: str) -> Tuple[bool, str]:
    """Run a command and return (success, combined output)."""
    print(f"\n🔍 {description}...")
    print(f"   Running: {' '.join(command)}")

    if shutil.which(command[0]) is None:
        error_msg = f"Command not found: {command[0]}"
        print(f"❌ {description} failed - {error_msg}")
        return False, error_msg

    result = subprocess.run(command, capture_output=True, text=True, check=False)
    output = (result.stdout.strip() + "\n" + result.stderr.strip()).strip()

    if result.returncode == 0:
        print(f"✅ {description} completed successfully!")
        return True, output

    print(f"❌ {description} failed!")
    print(f"   Error:\n{output}")
    return False, output


def build_commands(check_only: bool) -> List[Tuple[List[str], str]]:
    isort_cmd = ["isort", "deploythis", "tests", "lint.py"]
    black_cmd = ["black", "deploythis", "tests", "lint.py"]
    if check_only:
        isort_cmd.append("--check-only")
        black_cmd.append("--check")

    return [
        (isort_cmd, "Sorting imports with isort"),
        (black_cmd, "Formatting Python code with black"),
        (["flake8", "deploythis", "tests", "lint.py"], "Linting Python code with flake8"),
        (["pytest"], "Running Python tests with pytest"),
    ]


def main():
    parser = argparse.ArgumentParser(description="Lint and test DeployThis")
    parser.add_argument(
        "--check",
        action="store_true",
        help="Report problems without rewriting files.",
    )
    args = parser.parse_args()

    print("🚀 Starting DeployThis linting and testing...")
    print("=" * 60)

    results = []
    for command, description in build_commands(args.check):
        success, _ = run_command(command, description)
        results.append((description, success))
        if not success:
            print("\nStopping due to a failing check.")
            break

    print("\n" + "=" * 60)
    print("📊 SUMMARY:")
    for description, success in results:
        print(f"   {'✅ PASSED' if success else '❌ FAILED'}: {description}")

    if all(success for _, success in results):
        print("\n🎉 All checks passed!")
        sys.exit(0)

    print("\n⚠️  Some checks failed. Please review the output above.")
    sys.exit(1)


if __name__ == "__main__":
    main()
