"""
Reading and updating dotenv-style files (.env, .env.dt.<stage>).
"""

import os
import re
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from dotenv import dotenv_values

from .progress_indicator import Colors

PathLike = Union[str, Path]

_REFERENCE_PATTERN = re.compile(r"\$\{(.*?)\}")


def load_env_file(env_file: PathLike) -> Dict[str, str]:
    """Parse a dotenv file into a plain dict, without touching os.environ"""
    env_path = Path(env_file)
    if not env_path.exists():
        raise FileNotFoundError(f"dotEnv file not found at {env_path}")

    values = dotenv_values(env_path, interpolate=False)
    return {key: value if value is not None else "" for key, value in values.items()}


def expand_references(value: str) -> str:
    """Replace ${NAME} with the value of NAME from the process environment"""
    return _REFERENCE_PATTERN.sub(
        lambda match: os.environ.get(match.group(1), match.group(0)), value
    )


def apply_if(target: Dict[str, str], defaults: Mapping[str, str]) -> Dict[str, str]:
    """Copy keys from defaults that are not already present in target"""
    for key, value in defaults.items():
        if key not in target:
            target[key] = value
    return target


def patch_envs(
    env_file: PathLike,
    patches: Optional[Mapping[str, str]] = None,
    merge: bool = False,
) -> Dict[str, str]:
    """
    Load an env file, expand ${NAME} references and fill in missing keys from patches.
    With merge=True the process environment is used as the base.
    Returns an empty dict when the file cannot be loaded.
    """
    try:
        key_values = {
            key: expand_references(value)
            for key, value in load_env_file(env_file).items()
        }
    except (OSError, ValueError) as e:
        print(f"{Colors.FAIL}patch_envs failed: {e}{Colors.ENDC}\n")
        return {}

    if merge:
        key_values = {**os.environ, **key_values}

    return apply_if(key_values, patches or {})


def update_env_file(env_file: PathLike, updates: Mapping[str, str]) -> None:
    """Replace KEY=... lines in place, appending keys that are not present"""
    env_path = Path(env_file)
    content = env_path.read_text(encoding="utf-8")

    for key, value in updates.items():
        pattern = re.compile(rf"^{re.escape(key)}=.*$", re.MULTILINE)
        replacement = f'{key}="{value}"'
        if pattern.search(content):
            content = pattern.sub(lambda _: replacement, content)
        else:
            if content and not content.endswith("\n"):
                content += "\n"
            content += f"{replacement}\n"

    env_path.write_text(content, encoding="utf-8")
