"""Tests for the terminal UI helpers."""
from agentrelay.ui import InputRecall


class TestInputRecall:
    """Tests for InputRecall."""

    def test_walks_back_and_forth(self):
        """Test walking older and newer through recalled inputs."""
        recall = InputRecall(["first", "second", "third"])
        assert recall.older() == "third"
        assert recall.older() == "second"
        assert recall.older() == "first"
        assert recall.older() == "first"
        assert recall.newer() == "second"
        assert recall.newer() == "third"
        assert recall.newer() == ""
        assert recall.newer() is None

    def test_empty(self):
        """Test that an empty recall returns None."""
        recall = InputRecall()
        assert recall.older() is None
        assert recall.newer() is None

    def test_remember_moves_duplicate_to_newest(self):
        """Test that remembering a duplicate moves it to the newest slot."""
        recall = InputRecall(["a", "b"])
        recall.older()
        recall.remember("a")
        assert recall.entries == ["b", "a"]
        assert recall.older() == "a"
