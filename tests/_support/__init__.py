"""Test support utilities for Stratus tests."""
