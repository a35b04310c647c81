"""
Layer boundary contract.

1. cashflow_kernel/** may NOT import cashflow_engines, cashflow_config or
   cashflow_services.  The kernel never depends upward.

2. cashflow_engines/** may NOT import cashflow_config, cashflow_services
   or sqlalchemy.  Engines are pure functions over values.

3. cashflow_config/** may NOT import cashflow_services.

These tests read source code via AST and never import the packages.
"""

import ast
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent.parent


def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _extract_imports(path: Path) -> list[tuple[int, str]]:
    """(line_number, module) for every import statement in ``path``."""
    tree = ast.parse(path.read_text(), filename=str(path))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module and node.level == 0:
                results.append((node.lineno, node.module))
    return results


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found: list[str] = []
    for path in _python_files(package):
        for lineno, module in _extract_imports(path):
            for prefix in forbidden:
                if module == prefix or module.startswith(f"{prefix}."):
                    found.append(f"  {path.relative_to(ROOT)}:{lineno} imports '{module}'")
    return found


@pytest.mark.parametrize(
    "package, forbidden",
    [
        ("cashflow_kernel", ("cashflow_engines", "cashflow_config", "cashflow_services")),
        ("cashflow_engines", ("cashflow_config", "cashflow_services", "sqlalchemy")),
        ("cashflow_config", ("cashflow_services",)),
    ],
)
def test_no_upward_imports(package, forbidden):
    assert _python_files(package), f"{package} has no source files"
    violations = _violations(package, forbidden)
    assert not violations, (
        f"Layer boundary violation in {package}:\n" + "\n".join(violations)
    )


def test_only_services_touch_the_unit_of_work():
    """Engines and config never open transactions."""
    violations = _violations("cashflow_engines", ("cashflow_kernel.db",))
    violations += _violations("cashflow_config", ("cashflow_kernel.db",))
    assert not violations, "Transaction access outside services:\n" + "\n".join(violations)
