"""
stackgraph.core.errors — Assembly error taxonomy.

Every error is raised synchronously while a stack is being
assembled. Assembly is all-or-nothing: the first offending
declaration aborts it and no partial graph is returned.
"""

from __future__ import annotations


class AssemblyError(Exception):
    """Base class for stack assembly errors.

    ``logical_id`` names the first offending declaration (or output),
    ``None`` when the failure is not tied to a single declaration.
    """

    kind = "assembly"

    def __init__(self, message: str, logical_id: str | None = None):
        super().__init__(message)
        self.logical_id = logical_id


class DuplicateIdError(AssemblyError):
    """Two declarations share a logical id within one stack."""

    kind = "duplicate-id"


class UnknownReferenceError(AssemblyError):
    """A reference names a logical id, attribute or context flag that does not exist."""

    kind = "unknown-reference"


class GatedReferenceError(UnknownReferenceError):
    """A reference crosses into a conditional subgraph it is not part of."""

    kind = "gated-reference"


class CyclicReferenceError(AssemblyError):
    """References between declarations form a cycle."""

    kind = "cyclic-reference"

    def __init__(self, cycle: list[str]):
        self.cycle = list(cycle)
        super().__init__(
            f"Cyclic reference: {' -> '.join(self.cycle)}",
            logical_id=self.cycle[0] if self.cycle else None,
        )


class InvalidPropertyError(AssemblyError):
    """A property value fails validation for its resource kind."""

    kind = "invalid-property"

    def __init__(self, message: str, logical_id: str | None = None,
                 prop: str | None = None):
        super().__init__(message, logical_id=logical_id)
        self.prop = prop
