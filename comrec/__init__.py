"""Community-aware neighborhood SVD++ recommender.

Core idea:
- Build user-user and item-item k-NN similarity graphs from the training ratings
- Detect user and item communities on those graphs (Walktrap, DMID or SLPA)
- Train a neighborhood + latent-factor model whose biases and factors are
  enriched with the detected communities
"""
