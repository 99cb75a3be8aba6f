#!/usr/bin/env python3
"""
Entry point for running orbiter as a module.

Usage:
    python -m orbiter [--config PATH] [--no-midi] [--lfo] ...
"""

from orbiter.app import main

main()
