from __future__ import annotations

import os
from pathlib import Path

import pytest
from hypothesis import HealthCheck
from hypothesis import settings

settings.register_profile(
    "ci",
    max_examples=50,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


@pytest.fixture
def sample_tree(tmp_path: Path) -> Path:
    """
    Build a small directory tree:

        root/
            .gitignore      ignored.log
            .hidden         5 bytes
            a.txt           10 bytes
            ignored.log     7 bytes
            empty/
            sub/
                b.rs        20 bytes
                c.py        30 bytes
    """
    root = tmp_path / "root"
    (root / "sub").mkdir(parents=True)
    (root / "empty").mkdir()

    (root / ".gitignore").write_text("ignored.log\n")
    (root / ".hidden").write_bytes(b"x" * 5)
    (root / "a.txt").write_bytes(b"x" * 10)
    (root / "ignored.log").write_bytes(b"x" * 7)
    (root / "sub" / "b.rs").write_bytes(b"x" * 20)
    (root / "sub" / "c.py").write_bytes(b"x" * 30)

    return root
