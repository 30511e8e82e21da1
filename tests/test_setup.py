"""Test that the project setup is working correctly."""

import wallet_insight


def test_version() -> None:
    """Test that version is defined."""
    assert wallet_insight.__version__ == "0.1.0"


def test_import_modules() -> None:
    """Test that all submodules can be imported."""
    from wallet_insight import cache
    from wallet_insight import ingestor
    from wallet_insight import profiler
    from wallet_insight import scoring
    from wallet_insight import storage

    # Just verify imports work
    assert ingestor is not None
    assert profiler is not None
    assert scoring is not None
    assert cache is not None
    assert storage is not None
