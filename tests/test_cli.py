from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from comrec.recsys.cli import build_arg_parser, main


def test_cli_prints_recommendations(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    ratings = pd.DataFrame(
        {
            "userId": [1, 1, 2, 2, 3, 3, 4],
            "itemId": [10, 11, 10, 12, 11, 13, 13],
            "rating": [5.0, 4.0, 4.0, 2.0, 3.0, 5.0, 4.0],
        }
    )
    ratings_path = tmp_path / "ratings.csv"
    ratings.to_csv(ratings_path, index=False)
    config_path = tmp_path / "config.yaml"
    config_path.write_text("knn:\n  k: 2\ntrain:\n  factors: 2\n")

    main(
        [
            "--ratings", str(ratings_path),
            "--config", str(config_path),
            "--user-id", "1",
            "--k", "2",
            "--algorithm", "slpa",
            "--iterations", "2",
            "--log-level", "WARNING",
        ]
    )

    out = capsys.readouterr().out
    assert "Recommended Items" in out
    assert "12" in out and "13" in out


def test_cli_rejects_unknown_algorithm() -> None:
    with pytest.raises(SystemExit):
        build_arg_parser().parse_args(["--ratings", "r.csv", "--user-id", "1", "--algorithm", "louvain"])
