# src/corpdao/env.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

_LOADED = False


def load_dotenv_if_present(dotenv_path: Optional[str] = None) -> bool:
    """
    Load a .env file once per process.

    Path rules:
        1) If dotenv_path arg provided, use it.
        2) Else if CORPDAO_DOTENV_PATH is set, use that.
        3) Else default to ".env" in current working directory.

    Variables already present in the environment win over the file.
    Returns True if a dotenv file was found AND loaded, else False.
    """
    global _LOADED
    if _LOADED:
        return False

    path_s = dotenv_path or os.getenv("CORPDAO_DOTENV_PATH", ".env")
    path = Path(path_s).expanduser()

    if not path.exists() or not path.is_file():
        _LOADED = True
        return False

    load_dotenv(dotenv_path=str(path), override=False)
    _LOADED = True
    return True


def reset_dotenv_state() -> None:
    """Tests only: allow a second load in the same process."""
    global _LOADED
    _LOADED = False
