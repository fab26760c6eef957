"""Module export tests.

These tests verify:
- Every name in orderflow.__all__ is importable
- Subpackage exports are available
"""

from __future__ import annotations

import orderflow


class TestPackageExports:
    """Test that the public surface is exported."""

    def test_all_names_resolve(self):
        """Test every name listed in __all__ exists on the package."""
        missing = [name for name in orderflow.__all__ if not hasattr(orderflow, name)]
        assert missing == []

    def test_version(self):
        assert orderflow.__version__ == "0.1.0"

    def test_subpackage_exports(self):
        """Test subpackages expose their public names."""
        from orderflow import localities, operations, retry, verification

        for module in (localities, operations, retry, verification):
            for name in module.__all__:
                assert hasattr(module, name), f"{module.__name__}.{name}"
