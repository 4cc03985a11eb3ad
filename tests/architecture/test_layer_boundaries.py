"""
Layer boundary contract.

Dependency direction, lowest layer first:

    receivables_kernel  <-  receivables_engines  <-  receivables_config
        <-  receivables_services  <-  receivables_batch

1. receivables_kernel/** imports none of the packages above it.
2. receivables_engines/** imports neither config, services, batch nor any
   database code, and never reads the wall clock.
3. receivables_config/** imports neither services nor batch.
4. receivables_services/** imports receivables_batch only inside functions.

These tests read source code via AST -- they cannot break anything.
"""

import ast
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(package: str) -> list[Path]:
    """Return all .py files of ``package`` under the project root."""
    return sorted((ROOT / package).rglob("*.py"))


def _parse(filepath: Path) -> ast.Module:
    return ast.parse(filepath.read_text(), filename=str(filepath))


def _imports(nodes) -> list[tuple[int, str]]:
    results: list[tuple[int, str]] = []
    for node in nodes:
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _all_imports(filepath: Path) -> list[tuple[int, str]]:
    """Every import in the file, including those nested in functions."""
    return _imports(ast.walk(_parse(filepath)))


def _module_level_imports(filepath: Path) -> list[tuple[int, str]]:
    """Imports executed when the module is loaded."""
    return _imports(_parse(filepath).body)


def _violations(package: str, forbidden: tuple[str, ...], extract=_all_imports) -> list[str]:
    found: list[str] = []
    for filepath in _python_files(package):
        for lineno, module in extract(filepath):
            if any(module == p or module.startswith(f"{p}.") for p in forbidden):
                found.append(f"  {filepath.relative_to(ROOT)}:{lineno} imports '{module}'")
    return found


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestKernelBoundary:
    """The kernel never depends upward."""

    def test_kernel_imports_nothing_above_it(self):
        violations = _violations("receivables_kernel", (
            "receivables_engines",
            "receivables_config",
            "receivables_services",
            "receivables_batch",
        ))
        assert not violations, "Kernel boundary violation:\n" + "\n".join(violations)


class TestEngineBoundary:
    """Engines are pure: no configuration, no sessions, no clock."""

    def test_engines_import_no_upper_layer(self):
        violations = _violations("receivables_engines", (
            "receivables_config",
            "receivables_services",
            "receivables_batch",
        ))
        assert not violations, "Engine boundary violation:\n" + "\n".join(violations)

    def test_engines_have_no_database_access(self):
        violations = _violations("receivables_engines", (
            "sqlalchemy",
            "psycopg2",
            "receivables_kernel.db",
            "receivables_kernel.models",
            "receivables_kernel.services",
        ))
        assert not violations, "Engine I/O violation:\n" + "\n".join(violations)

    def test_engines_never_read_the_clock(self):
        violations: list[str] = []
        for filepath in _python_files("receivables_engines"):
            for node in ast.walk(_parse(filepath)):
                if (
                    isinstance(node, ast.Call)
                    and isinstance(node.func, ast.Attribute)
                    and node.func.attr in ("now", "today", "utcnow")
                    and isinstance(node.func.value, ast.Name)
                    and node.func.value.id in ("datetime", "date")
                ):
                    violations.append(f"  {filepath.relative_to(ROOT)}:{node.lineno}")
        assert not violations, "Engines must take as_of explicitly:\n" + "\n".join(violations)


class TestConfigBoundary:

    def test_config_imports_no_services_or_batch(self):
        violations = _violations("receivables_config", (
            "receivables_services",
            "receivables_batch",
        ))
        assert not violations, "Config boundary violation:\n" + "\n".join(violations)


class TestServiceBoundary:

    def test_services_load_without_batch(self):
        violations = _violations(
            "receivables_services", ("receivables_batch",), extract=_module_level_imports,
        )
        assert not violations, (
            "receivables_services may only import receivables_batch lazily:\n"
            + "\n".join(violations)
        )

    def test_batch_tasks_load_without_services(self):
        violations = _violations(
            "receivables_batch", ("receivables_services",), extract=_module_level_imports,
        )
        assert not violations, (
            "receivables_batch may only import receivables_services lazily:\n"
            + "\n".join(violations)
        )
