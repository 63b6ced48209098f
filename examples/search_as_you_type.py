"""
search_as_you_type.py: keyed debounce example.

Simulates a user typing a search query. Every keystroke submits a request
under the same key; only the last one inside the debounce window reaches
the backend, and every keystroke's subscriber receives its result.

Usage:
    python examples/search_as_you_type.py
"""

import asyncio
import logging

from keyed_debounce import DebounceCoalescer, DebounceSettings, Observer, unary_executor


async def search_backend(query: str) -> list[str]:
    await asyncio.sleep(0.05)
    corpus = ["hello", "help", "helmet", "world"]
    return [word for word in corpus if word.startswith(query)]


async def main() -> None:
    logging.basicConfig(level=logging.DEBUG)
    coalescer = DebounceCoalescer(
        unary_executor(search_backend),
        settings=DebounceSettings(default_delay_s=0.2),
    )

    for prefix in ("h", "he", "hel"):
        coalescer.submit(
            "search-box",
            prefix,
            Observer(on_data=lambda hits, p=prefix: print(f"{p!r} -> {hits}")),
        )
        await asyncio.sleep(0.05)

    async for hits in coalescer.stream("search-box", "help"):
        print(f"'help' (stream) -> {hits}")

    await coalescer.join()
    await coalescer.aclose()


if __name__ == "__main__":
    asyncio.run(main())
