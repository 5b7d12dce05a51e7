"""Command options, mesh packaging formats, input models and errors."""

from __future__ import annotations

import enum
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, NamedTuple

import numpy as np

MESH_FORMAT_TAG = "📦"
VERTEX_MERGE_TAG = "≈"
COMMAND_TAG = "▶"

IDENTITY_MATRIX: tuple[float, ...] = (
    1.0, 0.0, 0.0, 0.0,
    0.0, 1.0, 0.0, 0.0,
    0.0, 0.0, 1.0, 0.0,
    0.0, 0.0, 0.0, 1.0,
)

Vector3 = tuple[float, float, float]


class HallrError(Exception):
    """Base class of every error raised by this package."""


class InvalidInputDataError(HallrError, ValueError):
    """The input options or model data are not acceptable."""


class MeshOverflowError(HallrError, OverflowError):
    """A generated mesh is too large to be indexed."""


class MeshFormat(enum.Enum):
    """How the indices of a model are packaged."""

    TRIANGULATED = "△"
    EDGES = "⸗"

    def __str__(self) -> str:
        return self.value


_TRUE_WORDS = {"true"}
_FALSE_WORDS = {"false"}


def _parse(key: str, text: str, kind: Callable[[str], Any]) -> Any:
    if kind is bool:
        if text in _TRUE_WORDS:
            return True
        if text in _FALSE_WORDS:
            return False
        raise InvalidInputDataError(f"Could not parse option {key!r}={text!r} as bool")
    try:
        return kind(text)
    except (TypeError, ValueError) as error:
        raise InvalidInputDataError(
            f"Could not parse option {key!r}={text!r}: {error}"
        ) from error


class Options(Mapping[str, str]):
    """A read-only set of string options handed to a command."""

    def __init__(self, values: Mapping[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(values or {})

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Options({self._values!r})"

    def does_option_exist(self, key: str) -> bool:
        return key in self._values

    def get_mandatory_option(self, key: str) -> str:
        try:
            return self._values[key]
        except KeyError:
            raise InvalidInputDataError(f"Missing mandatory option {key!r}") from None

    def get_parsed_option(self, key: str, kind: Callable[[str], Any]) -> Any:
        """Return the option converted by ``kind``, or None if it is absent."""
        text = self._values.get(key)
        if text is None:
            return None
        return _parse(key, text, kind)

    def get_mandatory_parsed_option(self, key: str, kind: Callable[[str], Any]) -> Any:
        return _parse(key, self.get_mandatory_option(key), kind)

    def confirm_mesh_packaging(self, model_index: int, mesh_format: MeshFormat) -> None:
        """Raise unless model ``model_index`` is packaged as ``mesh_format``."""
        packaging = self.get_mandatory_option(MESH_FORMAT_TAG)
        if model_index >= len(packaging):
            raise InvalidInputDataError(
                f"No mesh packaging given for model {model_index}"
            )
        found = packaging[model_index]
        if found != mesh_format.value:
            raise InvalidInputDataError(
                f"Model {model_index} is packaged as {found!r}, expected {mesh_format.value!r}"
            )


def as_options(config: Mapping[str, str]) -> Options:
    return config if isinstance(config, Options) else Options(config)


@dataclass
class Model:
    """A mesh in world coordinates together with its world orientation matrix."""

    vertices: Sequence[Vector3] = field(default_factory=list)
    indices: Sequence[int] = field(default_factory=list)
    world_orientation: Sequence[float] = IDENTITY_MATRIX

    def has_identity_orientation(self) -> bool:
        return tuple(float(v) for v in self.world_orientation) == IDENTITY_MATRIX

    def world_to_local_transform(self) -> Callable[[Vector3], Vector3] | None:
        """Return a function mapping world points to local ones, or None for identity."""
        if len(self.world_orientation) != 16:
            raise InvalidInputDataError("The world orientation must hold 16 values")
        if self.has_identity_orientation():
            return None
        # Stored column by column.
        matrix = np.asarray(self.world_orientation, dtype=np.float64).reshape(4, 4).T
        try:
            inverse = np.linalg.inv(matrix)
        except np.linalg.LinAlgError as error:
            raise InvalidInputDataError("The world orientation is not invertible") from error

        def transform(point: Vector3) -> Vector3:
            x, y, z, w = inverse @ np.array([point[0], point[1], point[2], 1.0])
            if w != 1.0 and w != 0.0:
                x, y, z = x / w, y / w, z / w
            return (float(x), float(y), float(z))

        return transform


class CommandResult(NamedTuple):
    """Output of a command: vertices, indices, world matrix and return options."""

    vertices: list[Vector3]
    indices: list[int]
    world_matrix: list[float]
    config: dict[str, str]