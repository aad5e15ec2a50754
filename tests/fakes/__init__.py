"""Test fakes for executor testing."""

from tests.fakes.fake_executor import FakeExecutor

__all__ = ["FakeExecutor"]
