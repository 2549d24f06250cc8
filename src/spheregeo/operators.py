#!/usr/bin/env python3
"""
Vectorized geography operators.

Operators run over ordered sequences of optional geographies. Position is
the only link between inputs and outputs: a missing (None) input produces a
missing output at the same position instead of aborting the batch.
"""

from abc import ABC, abstractmethod
from typing import Dict, Generic, List, Optional, Sequence, TypeVar
import logging
import math

import numpy as np

from .errors import MissingInput
from .geography import Geography
from .shape_index import (
    ClosestEdgeQuery,
    FurthestEdgeQuery,
    MutableShapeIndex,
    ShapeIndexTarget,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UnaryGeographyOperator(ABC, Generic[T]):
    """Maps each geography to one value; missing geographies map to None."""

    def process_vector(self, geographies: Sequence[Optional[Geography]]) -> List[Optional[T]]:
        return [
            None if feature is None else self.process_feature(feature, i)
            for i, feature in enumerate(geographies)
        ]

    @abstractmethod
    def process_feature(self, feature: Geography, i: int) -> Optional[T]:
        pass


class MatrixGeographyOperator(ABC):
    """Computes one float per (i, j) pair; cells with a missing side are nan."""

    def process_vectors(
        self,
        geographies1: Sequence[Optional[Geography]],
        geographies2: Sequence[Optional[Geography]],
    ) -> np.ndarray:
        output = np.full((len(geographies1), len(geographies2)), np.nan)
        for i, feature1 in enumerate(geographies1):
            if feature1 is None:
                continue
            for j, feature2 in enumerate(geographies2):
                if feature2 is None:
                    continue
                output[i, j] = self.process_feature(feature1, feature2, i, j)
        return output

    @abstractmethod
    def process_feature(
        self, feature1: Geography, feature2: Geography, i: int, j: int
    ) -> float:
        pass


class ClosestFeatureOperator(UnaryGeographyOperator[int]):
    """
    Finds, for each geography, the 1-based position of the closest one in
    a second collection.
    """

    def __init__(self) -> None:
        self.index = MutableShapeIndex()
        self.index_source: Dict[int, int] = {}

    def build_index(self, geographies: Sequence[Optional[Geography]]) -> None:
        """
        Index every geography of the second collection together.

        Raises:
            MissingInput: If any element is None
        """
        for j, feature in enumerate(geographies):
            if feature is None:
                raise MissingInput(
                    f"Missing geography at position {j + 1} of `y` "
                    f"not allowed in closest_feature()"
                )
            for shape_id in feature.build_shape_index(self.index):
                self.index_source[shape_id] = j
        logger.debug(
            f"Built combined index of {self.index.num_shapes()} shape(s) "
            f"from {len(geographies)} geographies"
        )

    def process_feature(self, feature: Geography, i: int) -> Optional[int]:
        query = ClosestEdgeQuery(self.index)
        result = query.find_closest_edge(ShapeIndexTarget(feature.shape_index()))
        if result.is_empty():
            return None
        return self.index_source[result.shape_id] + 1


class DistanceMatrixOperator(MatrixGeographyOperator):
    """Minimum angular distance in radians between each pair."""

    def process_feature(
        self, feature1: Geography, feature2: Geography, i: int, j: int
    ) -> float:
        query = ClosestEdgeQuery(feature1.shape_index())
        result = query.find_closest_edge(ShapeIndexTarget(feature2.shape_index()))
        if math.isinf(result.distance):
            return math.nan
        return result.distance


class MaxDistanceMatrixOperator(MatrixGeographyOperator):
    """Maximum angular distance in radians between each pair."""

    def process_feature(
        self, feature1: Geography, feature2: Geography, i: int, j: int
    ) -> float:
        query = FurthestEdgeQuery(feature1.shape_index())
        result = query.find_furthest_edge(ShapeIndexTarget(feature2.shape_index()))
        # -1 means one side is empty
        if result.distance < 0:
            return math.nan
        return result.distance


def closest_feature(
    x: Sequence[Optional[Geography]], y: Sequence[Optional[Geography]]
) -> List[Optional[int]]:
    """
    For each geography in x, the 1-based position of the closest geography in y.

    Args:
        x: Geographies to look up; None entries give None
        y: Candidate geographies; must not contain None

    Returns:
        List the length of x; None where x is missing or nothing was found

    Raises:
        MissingInput: If y contains None
    """
    op = ClosestFeatureOperator()
    op.build_index(y)
    return op.process_vector(x)


def distance_matrix(
    x: Sequence[Optional[Geography]], y: Sequence[Optional[Geography]]
) -> np.ndarray:
    """
    Pairwise minimum distances in radians.

    Returns:
        Array of shape (len(x), len(y)); nan where either side is missing
        or empty
    """
    return DistanceMatrixOperator().process_vectors(x, y)


def max_distance_matrix(
    x: Sequence[Optional[Geography]], y: Sequence[Optional[Geography]]
) -> np.ndarray:
    """
    Pairwise maximum distances in radians.

    Returns:
        Array of shape (len(x), len(y)); nan where either side is missing
        or empty, never negative
    """
    return MaxDistanceMatrixOperator().process_vectors(x, y)
