from __future__ import annotations

from pathlib import Path


def test_required_package_paths_exist() -> None:
    root = Path(__file__).resolve().parents[1]
    required = [
        "pyproject.toml",
        "src/hello_mcp/server.py",
        "src/hello_mcp/transport.py",
        "src/hello_mcp/config.py",
        "src/hello_mcp/tools/__init__.py",
        "src/hello_mcp/logging/__init__.py",
    ]
    for rel in required:
        assert (root / rel).exists(), rel
