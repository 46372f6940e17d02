#!/usr/bin/env python3
"""
Convenience entry point for running servicebooker directly.

Usage: python main.py [command] [options]
"""

from servicebooker.cli.app import app

if __name__ == "__main__":
    app()
