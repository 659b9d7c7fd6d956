"""Tests for skillflow."""
