#!/usr/bin/env python3
"""
Debounced Saves - Coalesce a burst of edits into a single backend write.

Usage:
    python examples/debounced_saves.py
"""

import asyncio

from ttlstore import MemoryBackend, RecordController


async def main():
    backend = MemoryBackend()
    backend.connect()

    ctl = RecordController(
        "editor",
        backend,
        save_delay=200,
        change_threshold=50,
        changed=lambda field, new, old, record: print(f"  {field}: {old!r} -> {new!r}"),
        on_saved=lambda record: print(f"Saved {len(record)} field(s)"),
    )

    print("Typing...")
    text = "hello"
    for i in range(1, len(text) + 1):
        ctl.record["draft"] = text[:i]
        await asyncio.sleep(0.05)

    print("Waiting for the debounce...")
    await asyncio.sleep(0.3)
    print(f"Stored: {backend.get('editor')}")


if __name__ == "__main__":
    asyncio.run(main())
