"""Shared helpers for the DevOps productivity tools."""
