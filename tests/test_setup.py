"""Test that the project setup is working correctly."""

import solana_whale_tracker


def test_version() -> None:
    """Test that version is defined."""
    assert solana_whale_tracker.__version__ == "0.1.0"


def test_import_modules() -> None:
    """Test that all submodules can be imported."""
    from solana_whale_tracker import alerter, health, ingestor, pipeline, scheduler

    # Just verify imports work
    assert ingestor is not None
    assert alerter is not None
    assert health is not None
    assert scheduler is not None
    assert pipeline is not None
