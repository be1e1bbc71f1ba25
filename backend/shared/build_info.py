"""Build metadata reported by the health endpoints.

RUMBLE_VERSION and GIT_COMMIT come from the deployment environment. Outside
a deployment the commit is read from the local git checkout.
"""

import os
import subprocess
from functools import cache


def _git_short_sha() -> str:
    try:
        return subprocess.check_output(
            ["git", "rev-parse", "--short", "HEAD"],  # noqa: S607
            text=True,
            stderr=subprocess.DEVNULL,
        ).strip()
    except (FileNotFoundError, subprocess.CalledProcessError):
        return "dev"


APP_VERSION: str = os.environ.get("RUMBLE_VERSION", "dev")


@cache
def git_commit() -> str:
    return os.environ.get("GIT_COMMIT") or _git_short_sha()


def build_info() -> dict[str, str]:
    return {"version": APP_VERSION, "commit": git_commit()}
