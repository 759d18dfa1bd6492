#!/usr/bin/env python3
"""Run Black over the linkdok package and its tests.

Pass --check to report files that would change without rewriting them.
"""

import subprocess
import sys

TARGETS = ["linkdok", "tests"]

args = [sys.executable, "-m", "black", *TARGETS]
if "--check" in sys.argv[1:]:
    args += ["--check", "--diff"]

result = subprocess.run(args, capture_output=True, text=True)

print(result.stdout)
if result.stderr:
    print(result.stderr, file=sys.stderr)

sys.exit(result.returncode)
