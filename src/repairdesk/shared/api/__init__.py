"""Shared HTTP plumbing."""
