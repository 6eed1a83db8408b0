"""Format and lint the garimpo package and its tests with ruff."""

import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent


def main() -> None:
    targets = ["garimpo", "scripts", *sorted(p.name for p in ROOT.glob("*.py"))]
    for command in (["format"], ["check", "--fix"]):
        result = subprocess.run(["ruff", *command, *targets], cwd=ROOT)
        if result.returncode:
            sys.exit(result.returncode)


if __name__ == "__main__":
    main()
