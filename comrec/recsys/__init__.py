"""Community-aware neighborhood SVD++ (ComNeighSVD++).

- `model.py`: parameter tables (biases, factors, neighborhood weights)
- `aggregates.py`: community ratings and per-user community ratings
- `train.py`: per-rating SGD, bold-driver learning rate, convergence
- `recommender.py`: initialization sequence, prediction, recommendations
"""
