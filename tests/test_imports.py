"""
Import Order Tests

Each public module must import cleanly as the first import of a fresh
interpreter, whatever else it pulls in.
"""

import os
import subprocess
import sys
from pathlib import Path

import pytest

SRC_DIR = Path(__file__).resolve().parent.parent / "src"


@pytest.mark.parametrize("statement", [
    "import repairquote.export",
    "from repairquote.export import format_brl, render_budget_text",
    "import repairquote.export.message",
    "import repairquote.computation",
    "import repairquote.computation.budget",
    "from repairquote.computation.budget import BudgetCalculator",
    "import repairquote.providers",
    "import repairquote.api",
    "import repairquote.main",
])
def test_fresh_interpreter_import(statement):
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC_DIR), env.get("PYTHONPATH")]))

    result = subprocess.run(
        [sys.executable, "-c", statement],
        capture_output=True,
        text=True,
        env=env,
        timeout=60,
    )

    assert result.returncode == 0, result.stderr
