"""Trackway data model: footprint sequences, medial trajectories, collections.

A trackway is the ordered sequence of footprints left by one individual.
Its medial trajectory is the polyline of midpoints between consecutive
footprints, so a trackway with ``n`` footprints has an ``n - 1`` point
trajectory. A ``TrackwayCollection`` holds several trackways as aligned
sequences of trajectories, footprints and names, and is the input of every
analysis in the package.

Simulated trackways carry trajectories only; their footprint entries are
``None``.

Examples
--------
>>> import numpy as np
>>> from ichnospatial import Footprints, TrackwayCollection
>>> xy = np.array([[0.0, 0.5], [1.0, -0.5], [2.0, 0.5], [3.0, -0.5]])
>>> tracks = TrackwayCollection.from_footprints([Footprints.from_coordinates(xy)])
>>> tracks.names
('Track_01',)
>>> tracks.trajectories[0]
array([[0.5, 0. ],
       [1.5, 0. ],
       [2.5, 0. ]])
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Literal

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from ichnospatial.validation import TrackwayValidationError, validate_trajectory

__all__ = [
    "Footprints",
    "TrackwayCollection",
    "default_track_names",
    "medial_trajectory",
]

_SIDE_ALIASES = {"L": "L", "LEFT": "L", "R": "R", "RIGHT": "R"}
_PROVENANCE = ("Actual", "Inferred")
# Side label of a footprint whose side was not recorded
_UNLABELED = ""


def _readonly(arr: NDArray) -> NDArray:
    arr = np.array(arr, copy=True)
    arr.flags.writeable = False
    return arr


def _is_missing(value: object) -> bool:
    if isinstance(value, str):
        return not value.strip()
    return value is None or bool(pd.isna(value))


def _normalize_sides(side: Sequence[str | None], n: int) -> NDArray[np.str_]:
    values = list(side)
    if len(values) != n:
        raise TrackwayValidationError(
            f"side must have one entry per footprint ({n}), got {len(values)}."
        )
    out = []
    for i, value in enumerate(values):
        if _is_missing(value):
            out.append(_UNLABELED)
            continue
        key = str(value).strip().upper()
        if key not in _SIDE_ALIASES:
            raise TrackwayValidationError(
                f"side[{i}] must be one of 'L', 'R', 'Left', 'Right' or missing, "
                f"got {value!r}."
            )
        out.append(_SIDE_ALIASES[key])
    return np.array(out, dtype="<U1")


def medial_trajectory(xy: NDArray[np.float64]) -> NDArray[np.float64]:
    """Midpoints of consecutive footprints.

    Parameters
    ----------
    xy : NDArray[np.float64], shape (n_footprints, 2)
        Footprint coordinates in trackway order.

    Returns
    -------
    NDArray[np.float64], shape (n_footprints - 1, 2)
        Medial trajectory. Empty when fewer than two footprints are given.
    """
    xy = np.asarray(xy, dtype=np.float64)
    if len(xy) < 2:
        return np.empty((0, 2), dtype=np.float64)
    return (xy[:-1] + xy[1:]) / 2.0


def default_track_names(n: int) -> tuple[str, ...]:
    """Names ``Track_01 .. Track_n`` zero-padded to a common width."""
    width = max(2, len(str(n)))
    return tuple(f"Track_{i:0{width}d}" for i in range(1, n + 1))


@dataclass(frozen=True)
class Footprints:
    """Ordered footprint records of a single trackway.

    Attributes
    ----------
    xy : NDArray[np.float64], shape (n_footprints, 2)
        Footprint coordinates. NaN marks a coordinate that could not be
        digitized.
    side : NDArray[np.str_] or None, shape (n_footprints,)
        ``"L"`` or ``"R"`` per footprint, ``""`` for a footprint whose side
        was not recorded, or None when side information is unavailable.
    provenance : NDArray[np.str_], shape (n_footprints,)
        ``"Actual"`` for digitized footprints and ``"Inferred"`` for
        footprints reconstructed from their neighbours.
    image : str
        Reference of the source image.
    id : str
        Identifier of the trackway within the source image.
    """

    xy: NDArray[np.float64]
    side: NDArray[np.str_] | None = None
    provenance: NDArray[np.str_] | None = None
    image: str = ""
    id: str = ""

    def __post_init__(self) -> None:
        """Validate shapes and freeze arrays."""
        xy = validate_trajectory(self.xy, "footprints.xy", allow_nan=True)
        n = len(xy)
        object.__setattr__(self, "xy", _readonly(xy))

        if self.side is not None:
            object.__setattr__(self, "side", _readonly(_normalize_sides(self.side, n)))

        if self.provenance is None:
            provenance = np.full(n, "Actual", dtype="<U8")
        else:
            provenance = np.asarray(self.provenance, dtype="<U8")
            if provenance.shape != (n,):
                raise TrackwayValidationError(
                    f"provenance must have shape ({n},), got {provenance.shape}."
                )
            bad = sorted(set(provenance.tolist()) - set(_PROVENANCE))
            if bad:
                raise TrackwayValidationError(
                    f"provenance values must be 'Actual' or 'Inferred', got {bad}."
                )
        object.__setattr__(self, "provenance", _readonly(provenance))

    def __len__(self) -> int:
        return len(self.xy)

    @property
    def has_sides(self) -> bool:
        """True when every footprint has a side label."""
        return self.side is not None and bool(np.all(self.side != _UNLABELED))

    @property
    def n_inferred(self) -> int:
        """Number of footprints reconstructed rather than digitized."""
        assert self.provenance is not None
        return int(np.sum(self.provenance == "Inferred"))

    def trajectory(self) -> NDArray[np.float64]:
        """Medial trajectory of these footprints."""
        return medial_trajectory(self.xy)

    @classmethod
    def from_coordinates(
        cls,
        xy: NDArray[np.float64],
        *,
        first_side: Literal["L", "R"] | None = "L",
        inferred: Sequence[int] | None = None,
        image: str = "",
        id: str = "",
    ) -> Footprints:
        """Build footprints with alternating sides.

        Parameters
        ----------
        xy : array-like, shape (n_footprints, 2)
            Footprint coordinates in trackway order.
        first_side : {"L", "R"} or None, default="L"
            Side of the first footprint. Sides then alternate by index.
            None leaves the trackway without side information.
        inferred : sequence of int, optional
            Indices of footprints that were reconstructed.
        image, id : str
            Source metadata.

        Returns
        -------
        Footprints

        Examples
        --------
        >>> fp = Footprints.from_coordinates([[0, 0], [1, 1], [2, 0]], first_side="R")
        >>> fp.side.tolist()
        ['R', 'L', 'R']
        """
        xy = np.asarray(xy, dtype=np.float64)
        side = None
        if first_side is not None:
            first = _SIDE_ALIASES.get(str(first_side).upper())
            if first is None:
                raise TrackwayValidationError(
                    f"first_side must be 'L', 'R' or None, got {first_side!r}."
                )
            other = "R" if first == "L" else "L"
            side = np.where(np.arange(len(xy)) % 2 == 0, first, other)

        provenance = np.full(len(xy), "Actual", dtype="<U8")
        if inferred is not None:
            idx = np.asarray(list(inferred), dtype=int)
            if idx.size and (idx.min() < 0 or idx.max() >= len(xy)):
                raise TrackwayValidationError(
                    f"inferred indices must lie in [0, {len(xy) - 1}], "
                    f"got {idx.tolist()}."
                )
            provenance[idx] = "Inferred"

        return cls(xy=xy, side=side, provenance=provenance, image=image, id=id)

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> Footprints:
        """Build footprints from a digitization table.

        Recognised columns are ``X``, ``Y``, ``Side``, ``IMAGE``, ``ID`` and
        ``missing`` (provenance). A table without ``Side`` yields footprints
        without side information; a table without ``X`` or ``Y`` yields
        all-NaN coordinates so that downstream parameters become NaN with a
        warning instead of aborting a batch.
        """
        n = len(df)
        x = df["X"].to_numpy(dtype=np.float64) if "X" in df else np.full(n, np.nan)
        y = df["Y"].to_numpy(dtype=np.float64) if "Y" in df else np.full(n, np.nan)
        side = df["Side"].tolist() if "Side" in df else None
        provenance = df["missing"].astype(str).tolist() if "missing" in df else None
        image = str(df["IMAGE"].iloc[0]) if "IMAGE" in df and n else ""
        track_id = str(df["ID"].iloc[0]) if "ID" in df and n else ""
        return cls(
            xy=np.column_stack([x, y]),
            side=side,
            provenance=provenance,
            image=image,
            id=track_id,
        )


@dataclass(frozen=True)
class TrackwayCollection:
    """Aligned trajectories, footprints and names of several trackways.

    Attributes
    ----------
    trajectories : tuple of NDArray[np.float64]
        Medial trajectory of each trackway, each shape (n_points, 2).
    footprints : tuple of Footprints or None
        Footprints of each trackway; None for simulated trackways.
    names : tuple of str
        Unique trackway names, used to label every output table.

    Raises
    ------
    TrackwayValidationError
        If the three sequences differ in length or names repeat.
    """

    trajectories: tuple[NDArray[np.float64], ...]
    footprints: tuple[Footprints | None, ...] = field(default=())
    names: tuple[str, ...] = field(default=())

    def __post_init__(self) -> None:
        """Validate alignment and freeze arrays."""
        trajectories = tuple(
            _readonly(
                validate_trajectory(
                    t, f"trajectories[{i}]", min_points=0, allow_nan=True
                )
            )
            for i, t in enumerate(self.trajectories)
        )
        n = len(trajectories)
        footprints = tuple(self.footprints) if self.footprints else (None,) * n
        names = tuple(str(s) for s in self.names) if self.names else default_track_names(n)

        if len(footprints) != n:
            raise TrackwayValidationError(
                f"footprints must align with trajectories: got {len(footprints)} "
                f"footprint sequences for {n} trajectories."
            )
        if len(names) != n:
            raise TrackwayValidationError(
                f"names must align with trajectories: got {len(names)} names "
                f"for {n} trajectories."
            )
        if len(set(names)) != n:
            raise TrackwayValidationError(f"names must be unique, got {list(names)}.")
        for i, fp in enumerate(footprints):
            if fp is not None and not isinstance(fp, Footprints):
                raise TrackwayValidationError(
                    f"footprints[{i}] must be Footprints or None, "
                    f"got {type(fp).__name__}."
                )

        object.__setattr__(self, "trajectories", trajectories)
        object.__setattr__(self, "footprints", footprints)
        object.__setattr__(self, "names", names)

    def __len__(self) -> int:
        return len(self.trajectories)

    def __iter__(self) -> Iterator[tuple[str, NDArray[np.float64], Footprints | None]]:
        return iter(zip(self.names, self.trajectories, self.footprints, strict=True))

    @classmethod
    def from_footprints(
        cls,
        footprints: Sequence[Footprints | pd.DataFrame | NDArray[np.float64]],
        names: Sequence[str] | None = None,
    ) -> TrackwayCollection:
        """Build a collection from footprint sequences.

        Each entry may be a ``Footprints`` object, a digitization DataFrame
        or an (n, 2) coordinate array (sides alternate starting with left).
        Trajectories are the medial lines of the footprints.
        """
        fps: list[Footprints] = []
        for item in footprints:
            if isinstance(item, Footprints):
                fps.append(item)
            elif hasattr(item, "columns"):
                fps.append(Footprints.from_dataframe(item))
            else:
                fps.append(Footprints.from_coordinates(item))
        return cls(
            trajectories=tuple(fp.trajectory() for fp in fps),
            footprints=tuple(fps),
            names=tuple(names) if names is not None else (),
        )

    @classmethod
    def from_trajectories(
        cls,
        trajectories: Sequence[NDArray[np.float64]],
        names: Sequence[str] | None = None,
    ) -> TrackwayCollection:
        """Build a collection of trajectories without footprints."""
        return cls(
            trajectories=tuple(trajectories),
            names=tuple(names) if names is not None else (),
        )

    def subset(self, indices: Sequence[int]) -> TrackwayCollection:
        """Return the trackways at ``indices``, in that order.

        Raises
        ------
        TrackwayValidationError
            If any index is out of range.
        """
        idx = [int(i) for i in indices]
        bad = [i for i in idx if not -len(self) <= i < len(self)]
        if bad:
            raise TrackwayValidationError(
                f"indices out of range for {len(self)} trackways: {bad}."
            )
        return TrackwayCollection(
            trajectories=tuple(self.trajectories[i] for i in idx),
            footprints=tuple(self.footprints[i] for i in idx),
            names=tuple(self.names[i] for i in idx),
        )

    def with_trajectories(
        self, trajectories: Sequence[NDArray[np.float64]]
    ) -> TrackwayCollection:
        """Replace every trajectory, keeping names and dropping footprints."""
        if len(trajectories) != len(self):
            raise TrackwayValidationError(
                f"trajectories must have one entry per trackway ({len(self)}), "
                f"got {len(trajectories)}."
            )
        return TrackwayCollection(trajectories=tuple(trajectories), names=self.names)
