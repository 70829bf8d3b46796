"""
Async file I/O utilities
Wraps blocking file operations to prevent blocking the event loop.
"""
import asyncio
import os
from typing import List, Sequence


async def read_bytes_async(file_path: str) -> bytes:
    """
    Async binary file read

    Args:
        file_path: Path to file

    Returns:
        File contents as bytes
    """
    def _read():
        with open(file_path, 'rb') as f:
            return f.read()

    return await asyncio.to_thread(_read)


async def read_many_async(file_paths: Sequence[str]) -> List[bytes]:
    """Read several files concurrently, preserving order."""
    return list(await asyncio.gather(*(read_bytes_async(path) for path in file_paths)))


async def path_exists_async(path: str) -> bool:
    """
    Async path existence check

    Args:
        path: Path to check

    Returns:
        True if path exists
    """
    return await asyncio.to_thread(os.path.exists, path)
