"""PiggyBank personal finance data core."""

__version__ = "1.0.0"
