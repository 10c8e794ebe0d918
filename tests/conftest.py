import importlib
import math
import sys
from pathlib import Path

import pytest

# Ensure the package under test is importable without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from cfrank.vectors import SparseVector  # noqa: E402


# Users: dog, rabbit, cow, donkey. Items: burger, hotdog, berries, icecream.
DOG, RABBIT, COW, DONKEY = 1, 2, 3, 4
BURGER, HOTDOG, BERRIES, ICECREAM = 1, 2, 3, 4

ANIMAL_PREFERENCES = [
    (DOG, BURGER, 5.0),
    (DOG, HOTDOG, 5.0),
    (DOG, BERRIES, 2.0),
    (RABBIT, BURGER, 2.0),
    (RABBIT, BERRIES, 3.0),
    (RABBIT, ICECREAM, 5.0),
    (COW, HOTDOG, 5.0),
    (COW, ICECREAM, 3.0),
    (DONKEY, BURGER, 3.0),
    (DONKEY, ICECREAM, 5.0),
]

# Tanimoto coefficients of the user vectors above
ANIMAL_USER_SIMILARITIES = [
    (DOG, RABBIT, 0.5),
    (DOG, COW, 0.25),
    (DOG, DONKEY, 0.25),
    (RABBIT, COW, 0.25),
    (RABBIT, DONKEY, 2.0 / 3.0),
    (COW, DONKEY, 1.0 / 3.0),
]


class IdentityMeasure:
    """Leaves rows untouched; norm is the Euclidean length."""

    def normalize(self, vector: SparseVector) -> SparseVector:
        return vector.copy()

    def norm(self, vector: SparseVector) -> float:
        return math.sqrt(sum(v * v for _, v in vector.nonzeroes()))


class UnitLengthMeasure(IdentityMeasure):
    """Scales rows to unit Euclidean length."""

    def normalize(self, vector: SparseVector) -> SparseVector:
        length = self.norm(vector)
        return vector.times(1.0 / length) if length else vector.copy()


@pytest.fixture
def fresh_config(monkeypatch):
    """
    Reload config so environment overrides made by a test take effect,
    and restore defaults afterwards.
    """
    import cfrank.config as config

    yield lambda: importlib.reload(config)

    monkeypatch.undo()
    importlib.reload(config)


@pytest.fixture
def animal_data():
    from cfrank.pipeline import build_preference_matrix, build_similarity_matrix

    preferences, user_map, item_map = build_preference_matrix(ANIMAL_PREFERENCES)
    similarity = build_similarity_matrix(ANIMAL_USER_SIMILARITIES, user_map)
    return preferences, similarity, user_map, item_map


@pytest.fixture
def identity_measure():
    return IdentityMeasure()


@pytest.fixture
def unit_length_measure():
    return UnitLengthMeasure()
