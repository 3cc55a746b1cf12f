"""Job parameters and job key derivation.

A ``JobParameters`` value is an ordered, immutable set of typed parameters.
Each parameter is flagged identifying or non-identifying; only identifying
parameters take part in the job key, so two runs that differ only in a
non-identifying value (``shouldfail``, a run timestamp, ...) belong to the
same job instance.

Example:
    >>> params = (
    ...     JobParametersBuilder()
    ...     .add_string("name", "foo")
    ...     .add("shouldfail", True, identifying=False)
    ...     .to_job_parameters()
    ... )
    >>> default_job_key("import", params) == default_job_key(
    ...     "import", JobParametersBuilder().add_string("name", "foo").to_job_parameters()
    ... )
    True
"""

from __future__ import annotations

import json
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Protocol

from stepwise.core.hashing import compute_hash

SUPPORTED_PARAMETER_TYPES: tuple[type, ...] = (str, int, float, datetime, date, bool)


@dataclass(frozen=True)
class JobParameter:
    """A single typed job parameter."""

    value: Any
    type: type
    identifying: bool = True

    def __post_init__(self) -> None:
        if self.type not in SUPPORTED_PARAMETER_TYPES:
            raise TypeError(f"Unsupported job parameter type: {self.type.__name__}")
        if self.value is not None and not _matches_type(self.value, self.type):
            raise TypeError(
                f"Job parameter value {self.value!r} is not of type {self.type.__name__}"
            )

    @classmethod
    def of(cls, value: Any, identifying: bool = True) -> JobParameter:
        """Build a parameter, inferring its type from the value."""
        return cls(value=value, type=_infer_type(value), identifying=identifying)

    def __str__(self) -> str:
        return f"{self.value}({self.type.__name__})"


def _infer_type(value: Any) -> type:
    # bool before int, datetime before date
    for candidate in (bool, str, int, float, datetime, date):
        if isinstance(value, candidate):
            return candidate
    raise TypeError(f"Unsupported job parameter type: {type(value).__name__}")


def _matches_type(value: Any, expected: type) -> bool:
    if expected is int:
        return isinstance(value, int) and not isinstance(value, bool)
    if expected is date:
        return isinstance(value, date) and not isinstance(value, datetime)
    if expected is float:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    return isinstance(value, expected)


class JobParameters(Mapping[str, JobParameter]):
    """Ordered, immutable mapping of parameter name to :class:`JobParameter`."""

    __slots__ = ("_parameters",)

    def __init__(self, parameters: Mapping[str, JobParameter] | None = None):
        self._parameters: dict[str, JobParameter] = dict(parameters or {})

    def __getitem__(self, name: str) -> JobParameter:
        return self._parameters[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._parameters)

    def __len__(self) -> int:
        return len(self._parameters)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, JobParameters):
            return NotImplemented
        return self._parameters == other._parameters

    def __hash__(self) -> int:
        return hash(tuple(self._parameters.items()))

    def __repr__(self) -> str:
        body = ", ".join(
            f"{name}={param}{'' if param.identifying else ' [non-identifying]'}"
            for name, param in self._parameters.items()
        )
        return f"JobParameters({body})"

    def _value(self, name: str, default: Any) -> Any:
        param = self._parameters.get(name)
        return default if param is None else param.value

    def get_string(self, name: str, default: str | None = None) -> str | None:
        return self._value(name, default)

    def get_long(self, name: str, default: int | None = None) -> int | None:
        return self._value(name, default)

    def get_double(self, name: str, default: float | None = None) -> float | None:
        return self._value(name, default)

    def get_date(self, name: str, default: date | None = None) -> date | None:
        return self._value(name, default)

    def get_datetime(self, name: str, default: datetime | None = None) -> datetime | None:
        return self._value(name, default)

    def get_bool(self, name: str, default: bool | None = None) -> bool | None:
        return self._value(name, default)

    @property
    def identifying_parameters(self) -> dict[str, JobParameter]:
        return {name: p for name, p in self._parameters.items() if p.identifying}

    def to_dict(self) -> dict[str, Any]:
        """Plain ``name -> value`` view."""
        return {name: p.value for name, p in self._parameters.items()}

    @property
    def is_empty(self) -> bool:
        return not self._parameters


class JobParametersBuilder:
    """Fluent builder for :class:`JobParameters`."""

    def __init__(self, parameters: JobParameters | None = None):
        self._parameters: dict[str, JobParameter] = dict(parameters or {})

    def add(self, name: str, value: Any, identifying: bool = True) -> JobParametersBuilder:
        self._parameters[name] = JobParameter.of(value, identifying)
        return self

    def add_parameter(self, name: str, parameter: JobParameter) -> JobParametersBuilder:
        self._parameters[name] = parameter
        return self

    def add_string(self, name: str, value: str, identifying: bool = True) -> JobParametersBuilder:
        self._parameters[name] = JobParameter(value, str, identifying)
        return self

    def add_long(self, name: str, value: int, identifying: bool = True) -> JobParametersBuilder:
        self._parameters[name] = JobParameter(value, int, identifying)
        return self

    def add_double(self, name: str, value: float, identifying: bool = True) -> JobParametersBuilder:
        self._parameters[name] = JobParameter(float(value), float, identifying)
        return self

    def add_date(self, name: str, value: date, identifying: bool = True) -> JobParametersBuilder:
        self._parameters[name] = JobParameter(value, date, identifying)
        return self

    def add_datetime(self, name: str, value: datetime, identifying: bool = True) -> JobParametersBuilder:
        self._parameters[name] = JobParameter(value, datetime, identifying)
        return self

    def add_bool(self, name: str, value: bool, identifying: bool = True) -> JobParametersBuilder:
        self._parameters[name] = JobParameter(value, bool, identifying)
        return self

    def add_job_parameters(self, parameters: JobParameters) -> JobParametersBuilder:
        self._parameters.update(parameters)
        return self

    def remove(self, name: str) -> JobParametersBuilder:
        self._parameters.pop(name, None)
        return self

    def to_job_parameters(self) -> JobParameters:
        return JobParameters(self._parameters)


# =============================================================================
# Job key
# =============================================================================


class JobKeyGenerator(Protocol):
    """Derives the identity key of a job instance."""

    def generate_key(self, job_name: str, parameters: JobParameters) -> str:
        ...


def default_job_key(job_name: str, parameters: JobParameters) -> str:
    """SHA-256 digest of the job name and its identifying parameters.

    Parameters are sorted by name and each is encoded as a JSON
    ``[name, type, value]`` triple, so declaration order and
    non-identifying values never affect the key, and no parameter value
    can pass for a delimiter between two others.
    """
    encoded = json.dumps(
        [
            job_name,
            [
                [name, param.type.__name__, str(param.value)]
                for name, param in sorted(parameters.identifying_parameters.items())
            ],
        ],
        separators=(",", ":"),
    )
    return compute_hash(encoded)


class DefaultJobKeyGenerator:
    """:class:`JobKeyGenerator` backed by :func:`default_job_key`."""

    def generate_key(self, job_name: str, parameters: JobParameters) -> str:
        return default_job_key(job_name, parameters)


__all__ = [
    "SUPPORTED_PARAMETER_TYPES",
    "JobParameter",
    "JobParameters",
    "JobParametersBuilder",
    "JobKeyGenerator",
    "DefaultJobKeyGenerator",
    "default_job_key",
]
