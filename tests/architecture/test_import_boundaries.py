"""
Import-boundary enforcement for the layered packages.

1. Kernel independence  -- bursar_kernel/** may not import engines,
                           services or config.
2. Domain purity        -- bursar_kernel/domain/** may not import the ORM,
                           the database layer or SQLAlchemy.
3. Engine purity        -- bursar_engines/** may not import services,
                           SQLAlchemy or the kernel's models/db layers.
4. Engine no-impure     -- bursar_engines/** may not read the wall clock or
                           the environment.
5. Config centralisation -- only bursar_config itself imports its loader.

All scanning is done via AST; these tests are read-only.
"""

import ast
import glob
from pathlib import Path


def _python_files(root: str) -> list[str]:
    """Return all .py files under *root*, sorted for deterministic order."""
    return sorted(glob.glob(f"{root}/**/*.py", recursive=True))


def _parse(filepath: str) -> ast.AST | None:
    try:
        return ast.parse(Path(filepath).read_text(), filename=filepath)
    except (SyntaxError, UnicodeDecodeError):
        return None


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every import in *filepath*."""
    tree = _parse(filepath)
    if tree is None:
        return []

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _extract_attribute_calls(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, 'receiver.attr') for two-level attribute references."""
    tree = _parse(filepath)
    if tree is None:
        return []
    return [
        (node.lineno, f"{node.value.id}.{node.attr}")
        for node in ast.walk(tree)
        if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name)
    ]


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    """True if *module* equals or is a child of any prefix."""
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _violations(root: str, forbidden: tuple[str, ...]) -> list[str]:
    return [
        f"  {filepath}:{lineno} imports '{module}'"
        for filepath in _python_files(root)
        for lineno, module in _extract_imports(filepath)
        if _matches_any(module, forbidden)
    ]


class TestKernelIndependence:

    def test_kernel_does_not_import_upper_layers(self):
        violations = _violations(
            "bursar_kernel", ("bursar_engines", "bursar_services", "bursar_config")
        )
        assert not violations, (
            "bursar_kernel/** must not import engines, services or config:\n"
            + "\n".join(violations)
        )


class TestDomainPurity:

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "sqlite3",
        "bursar_kernel.models",
        "bursar_kernel.db",
    )

    def test_domain_has_no_persistence_imports(self):
        violations = _violations("bursar_kernel/domain", self.FORBIDDEN_PREFIXES)
        assert not violations, (
            "bursar_kernel/domain/** must stay free of the ORM and database layer:\n"
            + "\n".join(violations)
        )


class TestEnginePurity:

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "sqlite3",
        "bursar_kernel.models",
        "bursar_kernel.db",
        "bursar_services",
        "bursar_config.loader",
    )

    def test_engine_files_have_no_forbidden_imports(self):
        violations = _violations("bursar_engines", self.FORBIDDEN_PREFIXES)
        assert not violations, (
            "bursar_engines/** must not import services, the database layer "
            "or the config loader:\n" + "\n".join(violations)
        )


class TestEngineNoImpureFunctions:
    """Engines take dates and clocks as parameters.

    ``time.monotonic`` is allowed; the tracer uses it for durations only.
    """

    FORBIDDEN_CALLS = frozenset({
        "datetime.now",
        "datetime.utcnow",
        "date.today",
        "time.time",
        "os.environ",
        "os.getenv",
    })

    def test_no_impure_calls_in_engines(self):
        violations = [
            f"  {filepath}:{lineno} calls '{qualname}'"
            for filepath in _python_files("bursar_engines")
            for lineno, qualname in _extract_attribute_calls(filepath)
            if qualname in self.FORBIDDEN_CALLS
        ]
        assert not violations, (
            "bursar_engines/** must not read the wall clock or environment. "
            "Use an explicit clock parameter instead:\n" + "\n".join(violations)
        )


class TestConfigCentralization:

    def test_loader_only_imported_inside_config(self):
        violations = [
            v
            for root in ("bursar_kernel", "bursar_engines", "bursar_services")
            for v in _violations(root, ("bursar_config.loader",))
        ]
        assert not violations, (
            "Import configuration through bursar_config, not its loader:\n"
            + "\n".join(violations)
        )


class TestScanSanity:
    """The scans above are only meaningful if they find the packages."""

    def test_packages_found(self):
        for root in ("bursar_kernel", "bursar_engines", "bursar_services", "bursar_config"):
            assert _python_files(root), f"no Python files found under {root}"
