"""Filesystem-facing subsystems."""
