"""Pluggable disassembly of native code ranges.

Decoding machine instructions is outside this package; reports only need a
``disassemble(start, end) -> text`` callable.  The default implementation
prints raw instruction units as hex, sized for the archive's instruction set,
so a real disassembler can be dropped in through :func:`register_disassembler`.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List

from .container import Container, InstructionSet

LOGGER = logging.getLogger(__name__)

Disassemble = Callable[[int, int], str]
DisassemblerFactory = Callable[[Container], Disassemble]

_UNIT_WIDTH: Dict[InstructionSet, int] = {
    InstructionSet.NONE: 1,
    InstructionSet.ARM: 4,
    InstructionSet.THUMB2: 2,
    InstructionSet.X86: 1,
    InstructionSet.MIPS: 4,
}

_FACTORIES: Dict[InstructionSet, DisassemblerFactory] = {}


class HexDisassembler:
    """Render code as one instruction unit per line: ``0xADDR: 1234abcd``."""

    def __init__(self, container: Container, *, indent: str = "\t\t\t") -> None:
        self.container = container
        self.indent = indent
        self.unit_width = _UNIT_WIDTH.get(container.instruction_set, 1)

    def __call__(self, start: int, end: int) -> str:
        if end <= start:
            return ""
        begin = self.container.begin
        data = self.container.data[start - begin : end - begin]
        lines: List[str] = []
        width = self.unit_width
        for index in range(0, len(data), width):
            unit = data[index : index + width]
            value = int.from_bytes(unit, "little")
            lines.append(
                f"{self.indent}0x{start + index:08x}: {value:0{len(unit) * 2}x}\n"
            )
        return "".join(lines)


def register_disassembler(instruction_set: InstructionSet, factory: DisassemblerFactory) -> None:
    _FACTORIES[instruction_set] = factory


def create_disassembler(container: Container) -> Disassemble:
    factory = _FACTORIES.get(container.instruction_set)
    if factory is None:
        LOGGER.debug("No disassembler for %s; using hex dump", container.instruction_set)
        return HexDisassembler(container)
    return factory(container)


__all__ = [
    "Disassemble",
    "HexDisassembler",
    "create_disassembler",
    "register_disassembler",
]
