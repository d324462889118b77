import sys
from pathlib import Path
import pytest

# Add project root to sys.path
# This ensures that 'codex_bridge' and 'tests.common' are importable during tests
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture
def config_override():
    """Temporarily set ``config.<SECTION>.<KEY>`` values; restored after the test."""
    from codex_bridge.config import config

    saved: list[tuple[str, str, object]] = []

    def _set(section: str, key: str, value: object) -> None:
        node = getattr(config, section)
        saved.append((section, key, getattr(node, key)))
        config.defrost()
        setattr(node, key, value)
        config.freeze()

    try:
        yield _set
    finally:
        config.defrost()
        for section, key, value in reversed(saved):
            setattr(getattr(config, section), key, value)
        config.freeze()


@pytest.fixture(autouse=True)
def fresh_chunk_cache():
    from codex_bridge.change_mode.chunk_cache import reset_chunk_cache

    reset_chunk_cache()
    try:
        yield
    finally:
        reset_chunk_cache()
