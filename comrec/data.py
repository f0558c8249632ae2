from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd
from scipy import sparse
from sklearn import model_selection
from sklearn.preprocessing import LabelEncoder


REQUIRED_COLUMNS = ("userId", "itemId", "rating")


@dataclass(frozen=True)
class RatingData:
    """Train/test rating matrices over dense inner ids, plus the raw-id encoders.

    Both matrices are `n_users x n_items` CSR matrices sharing one id space, so an
    inner id means the same user/item in train and test.
    """

    train: sparse.csr_matrix
    test: sparse.csr_matrix
    user_encoder: LabelEncoder
    item_encoder: LabelEncoder

    @property
    def num_users(self) -> int:
        return int(self.train.shape[0])

    @property
    def num_items(self) -> int:
        return int(self.train.shape[1])

    @property
    def rating_scale(self) -> tuple[float, float]:
        values = np.concatenate([self.train.data, self.test.data])
        if values.size == 0:
            return 0.0, 0.0
        return float(values.min()), float(values.max())

    def inner_user_id(self, raw_id: object) -> int:
        return _encode(self.user_encoder, raw_id, "user")

    def inner_item_id(self, raw_id: object) -> int:
        return _encode(self.item_encoder, raw_id, "item")

    def raw_user_id(self, inner_id: int) -> object:
        return _decode(self.user_encoder, inner_id)

    def raw_item_id(self, inner_id: int) -> object:
        return _decode(self.item_encoder, inner_id)

    @classmethod
    def from_frame(
        cls,
        ratings: pd.DataFrame,
        *,
        test_size: float = 0.0,
        random_state: int = 42,
    ) -> "RatingData":
        """Encode raw ids to contiguous indices and split into train/test matrices.

        Expected ratings columns: userId, itemId, rating
        """
        missing = set(REQUIRED_COLUMNS) - set(ratings.columns)
        if missing:
            raise ValueError(f"ratings missing required columns: {sorted(missing)}")

        df = ratings[list(REQUIRED_COLUMNS)].dropna().reset_index(drop=True)
        if df.empty:
            raise ValueError("ratings is empty")
        if df.duplicated(subset=["userId", "itemId"]).any():
            raise ValueError("ratings contains duplicate (userId, itemId) rows")
        df["rating"] = df["rating"].astype(float)

        le_user = LabelEncoder()
        le_item = LabelEncoder()
        df["user_idx"] = le_user.fit_transform(df["userId"].values)
        df["item_idx"] = le_item.fit_transform(df["itemId"].values)
        shape = (len(le_user.classes_), len(le_item.classes_))

        if test_size > 0.0:
            df_train, df_test = model_selection.train_test_split(
                df, test_size=float(test_size), random_state=int(random_state)
            )
        else:
            df_train, df_test = df, df.iloc[0:0]

        return cls(
            train=_to_csr(df_train, shape),
            test=_to_csr(df_test, shape),
            user_encoder=le_user,
            item_encoder=le_item,
        )


def load_ratings_csv(path: Path) -> pd.DataFrame:
    """Read a `userId,itemId,rating` CSV (extra columns are ignored)."""
    df = pd.read_csv(Path(path))
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"{Path(path).name} missing columns: {missing}")
    return df


def _to_csr(df: pd.DataFrame, shape: tuple[int, int]) -> sparse.csr_matrix:
    matrix = sparse.csr_matrix(
        (
            df["rating"].to_numpy(dtype=np.float64),
            (df["user_idx"].to_numpy(dtype=np.int64), df["item_idx"].to_numpy(dtype=np.int64)),
        ),
        shape=shape,
    )
    matrix.sort_indices()
    return matrix


def _encode(encoder: LabelEncoder, raw_id: object, kind: str) -> int:
    try:
        return int(encoder.transform([raw_id])[0])
    except ValueError as exc:
        raise KeyError(f"Unknown {kind} id: {raw_id!r}") from exc


def _decode(encoder: LabelEncoder, inner_id: int) -> object:
    value = encoder.classes_[int(inner_id)]
    # numpy scalars back to plain Python values
    return value.item() if isinstance(value, np.generic) else value
