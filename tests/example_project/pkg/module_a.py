from __future__ import annotations

from typing import Optional


def add(a: int, b: int) -> int:
    return a + b


def _sum(values: list[int]) -> int:
    total = 0
    for value in values:
        total += value
    return total


class Encoder:
    def __init__(self, prefix: str = "", width: int = 0) -> None:
        self.prefix = prefix
        self.width = width

    def encode(self, value: str) -> str:
        return (self.prefix + value).rjust(self.width)

    @staticmethod
    def version() -> str:
        return "1"

    @classmethod
    def default(cls) -> "Encoder":
        return cls()

    @property
    def name(self) -> str:
        return self.prefix

    def _reset(self) -> None:
        self.prefix = ""


def parse_port(text: str, default: Optional[int] = None) -> int:
    if not text and default is not None:
        return default
    port = int(text)
    if not 0 < port < 65536:
        raise ValueError(f"port out of range: {port}")
    return port


def divide(a: int, b: int) -> tuple[int, int]:
    return a // b, a % b


def reset() -> None:
    def helper() -> int:
        return 1

    helper()


async def fetch(key: str, *, timeout: float = 1.0) -> bytes:
    return key.encode()
