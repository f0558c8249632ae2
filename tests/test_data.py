from __future__ import annotations

import pandas as pd
import pytest

from comrec.data import RatingData, load_ratings_csv


def ratings_frame() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "userId": [10, 10, 20, 30, 30, 30],
            "itemId": ["a", "b", "a", "a", "b", "c"],
            "rating": [5, 3, 4, 1, 2, 5],
        }
    )


def test_from_frame_encodes_ids_to_dense_indices() -> None:
    data = RatingData.from_frame(ratings_frame())

    assert data.train.shape == (3, 3)
    assert data.test.nnz == 0
    assert data.train.nnz == 6
    assert data.rating_scale == (1.0, 5.0)

    u = data.inner_user_id(30)
    j = data.inner_item_id("c")
    assert data.train[u, j] == 5.0
    assert data.raw_user_id(u) == 30
    assert data.raw_item_id(j) == "c"


def test_split_shares_one_id_space() -> None:
    data = RatingData.from_frame(ratings_frame(), test_size=0.5, random_state=0)

    assert data.train.shape == data.test.shape == (3, 3)
    assert data.train.nnz + data.test.nnz == 6
    assert data.train.multiply(data.test).nnz == 0


def test_unknown_ids_raise_key_error() -> None:
    data = RatingData.from_frame(ratings_frame())
    with pytest.raises(KeyError):
        data.inner_user_id(99)
    with pytest.raises(KeyError):
        data.inner_item_id("zzz")


@pytest.mark.parametrize(
    "frame",
    [
        pd.DataFrame({"userId": [1], "rating": [3.0]}),
        pd.DataFrame({"userId": [], "itemId": [], "rating": []}),
        pd.DataFrame({"userId": [1, 1], "itemId": [2, 2], "rating": [3.0, 4.0]}),
    ],
)
def test_invalid_frames(frame: pd.DataFrame) -> None:
    with pytest.raises(ValueError):
        RatingData.from_frame(frame)


def test_load_ratings_csv(tmp_path) -> None:
    path = tmp_path / "ratings.csv"
    ratings_frame().assign(timestamp=0).to_csv(path, index=False)

    df = load_ratings_csv(path)
    assert {"userId", "itemId", "rating", "timestamp"} <= set(df.columns)

    (tmp_path / "bad.csv").write_text("user,item\n1,2\n")
    with pytest.raises(ValueError):
        load_ratings_csv(tmp_path / "bad.csv")
