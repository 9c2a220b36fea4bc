import ast
from pathlib import Path


def _imports(directory: Path) -> list[tuple[Path, str]]:
    found: list[tuple[Path, str]] = []
    for path in sorted(directory.rglob("*.py")):
        tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
        for node in ast.walk(tree):
            if isinstance(node, ast.Import):
                found.extend((path, alias.name) for alias in node.names)
            elif isinstance(node, ast.ImportFrom) and node.module is not None:
                found.append((path, node.module))
    return found


def test_foundation_does_not_import_runtime_modules():
    package_dir = Path(__file__).resolve().parents[1] / "brickkit"
    offenders = [
        f"{path}: {module}"
        for path, module in _imports(package_dir / "foundation")
        if module.startswith("brickkit") and not module.startswith("brickkit.foundation")
    ]
    assert offenders == []


def test_state_does_not_import_engine_or_bricks():
    package_dir = Path(__file__).resolve().parents[1] / "brickkit"
    forbidden = ("brickkit.engine", "brickkit.bricks", "brickkit.brick_types", "brickkit.resolver")
    offenders = [
        f"{path}: {module}"
        for path, module in _imports(package_dir / "state")
        if module.startswith(forbidden)
    ]
    assert offenders == []


def test_engine_does_not_import_builtin_bricks():
    package_dir = Path(__file__).resolve().parents[1] / "brickkit"
    offenders = [
        f"{path}: {module}"
        for path, module in _imports(package_dir / "engine")
        if module.startswith("brickkit.bricks")
    ]
    assert offenders == []
