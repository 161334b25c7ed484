"""
Result envelope shared by every pyanova computation.

A Result pairs a frozen parameter payload (AnovaParams, ContrastParams) with
the bookkeeping that every analysis produces the same way: design metadata,
stage timings, non-fatal warnings and the library versions that produced it.
The user-facing *Solution classes wrap a Result and add accessors.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import numpy as np
import scipy

P = TypeVar('P')  # payload type


def _default_provenance() -> dict[str, Any]:
    import pyanova
    return {
        'pyanova_version': pyanova.__version__,
        'numpy_version': np.__version__,
        'scipy_version': scipy.__version__,
    }


@dataclass(frozen=True)
class Result(Generic[P]):
    """
    Immutable envelope around a computation's payload.

    Attributes:
        params: Payload (ANOVA table, contrasts, ...)
        info: Design metadata (design type, input source, shape, factor types)
        timing: Seconds per stage plus 'total_seconds', or None
        backend_name: Code path that produced the result ('cpu')
        warnings: Non-fatal issues, e.g. clipped variance components
        provenance: Library versions

    Examples:
        >>> Result(
        ...     params=AnovaParams(...),
        ...     info={'design_type': 'mixed'},
        ...     timing={'total_seconds': 0.01},
        ...     backend_name='cpu',
        ... )
    """
    params: P
    info: dict[str, Any]
    timing: dict[str, float] | None
    backend_name: str
    warnings: tuple[str, ...] = field(default_factory=tuple)
    provenance: dict[str, Any] = field(default_factory=_default_provenance)

    def has_warning(self, substring: str) -> bool:
        """True if any warning contains substring."""
        return any(substring in w for w in self.warnings)
