#!/usr/bin/env python3
"""
Quick Start - A settings record that saves itself and forgets stale tokens.

Usage:
    python examples/quick_start.py
"""

from ttlstore import Expiring, RecordController


def main():
    with RecordController("settings", "sqlite:///settings.db") as ctl:
        settings = ctl.record

        settings["theme"] = "dark"
        settings["session"] = Expiring.create("abc123", max_age=30 * 60_000)

        print(f"Theme: {settings['theme']}")
        print(f"Session: {settings.get('session')}")
        print(f"Stored: {ctl.backend.get('settings')}")


if __name__ == "__main__":
    main()
