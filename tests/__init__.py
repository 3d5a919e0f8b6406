"""Test package for the IMAP session engine.

What:
  Marks ``tests`` as a package so the CLI wiring suite and the end-to-end
  scenarios import under stable module names.

Interfaces:
  No public interfaces are defined here.
"""
